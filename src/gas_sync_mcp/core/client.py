"""Remote store client for Apps Script projects.

``RemoteStore`` is the three-call interface the sync engine depends on;
``ScriptApiClient`` implements it over the Apps Script REST API
(``projects/{scriptId}/content``).  The API has no per-file endpoints, so
``write`` and ``delete`` fetch the full file list, edit it, and PUT it
back.

Remote file types are validated here: ``SERVER_JS``, ``HTML`` and ``JSON``
map onto ``RemoteFileType`` and anything else is rejected, so nothing
downstream ever branches on raw type strings.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

import requests

from ..config import Config
from ..errors import RemoteFailureError
from ..sync.models import RemoteFile, RemoteFileType

logger = logging.getLogger(__name__)

_API_TYPES: dict[str, RemoteFileType] = {
    "SERVER_JS": RemoteFileType.CODE,
    "HTML": RemoteFileType.MARKUP,
    "JSON": RemoteFileType.DATA,
}
_TYPE_API: dict[RemoteFileType, str] = {v: k for k, v in _API_TYPES.items()}


class RemoteStore(Protocol):
    """Fetch and update the typed file list of a remote project."""

    def list(self, script_id: str) -> list[RemoteFile]: ...

    def write(
        self, script_id: str, name: str, content: str, file_type: RemoteFileType
    ) -> list[RemoteFile]: ...

    def delete(self, script_id: str, name: str) -> list[RemoteFile]: ...


def parse_update_time(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp such as ``2024-05-01T10:00:00.123Z``."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable updateTime %r", value)
        return None


def file_from_api(entry: dict[str, Any], position: int) -> RemoteFile:
    """Convert one API file entry into a ``RemoteFile``.

    Raises:
        RemoteFailureError: The entry carries an unknown file type.
    """
    api_type = entry.get("type")
    file_type = _API_TYPES.get(api_type)
    if file_type is None:
        raise RemoteFailureError(
            "list", f"unsupported file type {api_type!r} for {entry.get('name')!r}"
        )
    return RemoteFile(
        name=entry["name"],
        type=file_type,
        content=entry.get("source", ""),
        position=position,
        update_time=parse_update_time(entry.get("updateTime")),
    )


def file_to_api(remote: RemoteFile) -> dict[str, Any]:
    return {"name": remote.name, "type": _TYPE_API[remote.type], "source": remote.content}


class ScriptApiClient:
    """Apps Script API client with a thread-local ``requests.Session``.

    Args:
        config: Runtime configuration (API URL, token, timeout).
        token_provider: Callable returning a valid bearer token.  Defaults
            to the static ``config.access_token``.
    """

    def __init__(
        self,
        config: Config,
        token_provider: Callable[[], str | None] | None = None,
    ):
        self.config = config
        self._token_provider = token_provider or (lambda: config.access_token)
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = requests.Session()
        return self._thread_local.session

    def _content_url(self, script_id: str) -> str:
        return f"{self.config.api_url}/projects/{script_id}/content"

    def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> dict:
        token = self._token_provider()
        if not token:
            raise RemoteFailureError(
                operation, "no access token configured (set GAS_ACCESS_TOKEN)"
            )
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = self._get_session().request(
                method,
                url,
                headers=headers,
                timeout=(10, self.config.request_timeout),
                **kwargs,
            )
            response.raise_for_status()
            return response.json() if response.content else {}
        except requests.HTTPError as exc:
            resp = exc.response
            if resp is None:
                raise RemoteFailureError(operation, str(exc)) from exc
            raise RemoteFailureError(
                operation, f"HTTP {resp.status_code}: {resp.text[:500]}"
            ) from exc
        except (requests.RequestException, ValueError) as exc:
            raise RemoteFailureError(operation, str(exc)) from exc

    def _files_from(self, payload: dict) -> list[RemoteFile]:
        return [file_from_api(entry, i) for i, entry in enumerate(payload.get("files", []))]

    def list(self, script_id: str) -> list[RemoteFile]:
        """Fetch every file of the project, in execution order."""
        payload = self._request("list", "GET", self._content_url(script_id))
        files = self._files_from(payload)
        logger.debug("Listed %d files in %s", len(files), script_id)
        return files

    def _put(self, operation: str, script_id: str, files: list[RemoteFile]) -> list[RemoteFile]:
        payload = self._request(
            operation,
            "PUT",
            self._content_url(script_id),
            json={"files": [file_to_api(f) for f in files]},
        )
        return self._files_from(payload)

    def write(
        self, script_id: str, name: str, content: str, file_type: RemoteFileType
    ) -> list[RemoteFile]:
        """Replace or append one file and return the updated list."""
        files = self.list(script_id)
        updated = RemoteFile(name=name, type=file_type, content=content)
        for i, existing in enumerate(files):
            if existing.name == name:
                files[i] = updated.model_copy(update={"position": existing.position})
                break
        else:
            files.append(updated.model_copy(update={"position": len(files)}))
        logger.info("Writing %s to %s", name, script_id)
        return self._put("write", script_id, files)

    def delete(self, script_id: str, name: str) -> list[RemoteFile]:
        """Remove one file and return the updated list."""
        files = self.list(script_id)
        remaining = [f for f in files if f.name != name]
        if len(remaining) == len(files):
            raise RemoteFailureError("delete", f"file {name!r} not found in {script_id}")
        logger.info("Deleting %s from %s", name, script_id)
        return self._put("delete", script_id, remaining)

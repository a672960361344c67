"""Git-config style INI parsing and serialisation for breadcrumbs.

Sections may carry a quoted subsection (``[remote "origin"]``), which is
represented as a nested dict: ``{"remote": {"origin": {"url": ...}}}``.
Keys are kept verbatim, dotted keys such as ``lastSync.timestamp``
included.  ``true``/``false`` and integer values are coerced on parse.
"""

from __future__ import annotations

import re
from typing import Any

_SECTION = re.compile(r'^\[\s*([^\s\]"]+)(?:\s+"((?:\\.|[^"\\])*)")?\s*\]$')
_NEEDS_QUOTES = re.compile(r'[\s=;#"]')


def _coerce(raw: str) -> Any:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    # Inline comments only apply to unquoted values
    value = re.split(r"\s[;#]", value, maxsplit=1)[0].strip()
    lowered = value.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    if re.fullmatch(r"-?\d+", value):
        return int(value)
    return value


def parse_ini(text: str) -> dict[str, Any]:
    """Parse INI text into nested dicts.

    Lines before the first section header and malformed lines are
    ignored.
    """
    result: dict[str, Any] = {}
    current: dict[str, Any] | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#;":
            continue

        section = _SECTION.match(line)
        if section:
            name, sub = section.group(1), section.group(2)
            current = result.setdefault(name, {})
            if sub is not None:
                sub = re.sub(r"\\(.)", r"\1", sub)
                current = current.setdefault(sub, {})
            continue

        if current is None or "=" not in line:
            continue

        key, _, value = line.partition("=")
        current[key.strip()] = _coerce(value)

    return result


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if text == "" or _NEEDS_QUOTES.search(text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def serialize_ini(data: dict[str, Any]) -> str:
    """Serialise nested dicts produced by ``parse_ini`` back to INI text."""
    blocks: list[str] = []

    for name, body in data.items():
        if not isinstance(body, dict):
            continue
        scalars = {k: v for k, v in body.items() if not isinstance(v, dict)}
        subsections = {k: v for k, v in body.items() if isinstance(v, dict)}

        if scalars or not subsections:
            lines = [f"[{name}]"]
            lines.extend(f"\t{k} = {_format_value(v)}" for k, v in scalars.items())
            blocks.append("\n".join(lines))

        for sub, sub_body in subsections.items():
            escaped = sub.replace("\\", "\\\\").replace('"', '\\"')
            lines = [f'[{name} "{escaped}"]']
            lines.extend(
                f"\t{k} = {_format_value(v)}"
                for k, v in sub_body.items()
                if not isinstance(v, dict)
            )
            blocks.append("\n".join(lines))

    return "\n".join(blocks) + "\n" if blocks else ""


def deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Return *base* with *updates* merged in recursively (new dict)."""
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged

"""CommonJS module shim used for code files stored in Apps Script.

Remote code files are wrapped in a ``_main`` function that receives
``module``, ``exports`` and ``require`` and is registered with
``__defineModule__``.  Locally only the body is kept.

Three shim flavours live here:

* **Code modules** -- ``wrap_module`` / ``unwrap_module``.  The optional
  eager-load flag is carried as the second ``__defineModule__`` argument,
  and functions annotated ``@hoisted`` get top-level bridge functions
  generated between ``_main`` and ``__defineModule__``.
* **Dotfiles** -- ``wrap_dotfile`` / ``unwrap_dotfile`` export the raw
  file text as a template literal.
* **Git files** -- ``wrap_git_file`` / ``unwrap_git_file`` export the
  native text of files under ``.git/`` as a JSON string literal.

Unwrapping is line based and tolerant: content that does not look
wrapped is returned as-is.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_MAIN_HEADER = """\
function _main(
  module = globalThis.__getCurrentModule(),
  exports = module.exports,
  require = globalThis.require
) {"""

_DEFINE_PATTERN = re.compile(
    r"__defineModule__\(\s*_main\s*(?:,\s*(true|false|null))?\s*\)\s*;?\s*$"
)

_HOISTED_BANNER = (
    "// ===== HOISTED BRIDGES =====\n"
    "// Generated from @hoisted annotations. Edit the module function instead."
)


@dataclass(frozen=True)
class HoistedFunction:
    """A module function annotated ``@hoisted`` in its JSDoc block."""

    name: str
    params: tuple[str, ...] = ()
    summary: str = ""
    line_number: int = 0
    return_type: str | None = None


@dataclass(frozen=True)
class ModuleOptions:
    """Options recovered from (and re-applied to) a wrapped module.

    Attributes:
        load_now: Eager-load flag; ``None`` means lazy (the default).
        hoisted: Names of the bridge functions found in the wrapped text.
    """

    load_now: bool | None = None
    hoisted: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Code modules
# ---------------------------------------------------------------------------


def wrap_module(
    body: str,
    module_name: str,
    options: ModuleOptions | None = None,
) -> str:
    """Wrap a module body in the ``_main`` shim.

    Args:
        body: Plain module source (no shim).
        module_name: CommonJS name used by generated hoisted bridges.
        options: Options to apply; only ``load_now`` is read, bridges are
            always regenerated from the body's annotations.

    Returns:
        The wrapped source.
    """
    trimmed = body.strip()
    indented = "\n".join(
        f"  {line}" if line else "" for line in trimmed.split("\n")
    ) if trimmed else ""

    parts = [_MAIN_HEADER]
    if indented:
        parts.append(indented)
    parts.append("}")
    wrapped = "\n".join(parts)

    hoisted = extract_hoisted_functions(trimmed)
    if hoisted:
        bridges = "\n\n".join(
            generate_hoisted_bridge(func, module_name) for func in hoisted
        )
        wrapped = f"{wrapped}\n\n{_HOISTED_BANNER}\n\n{bridges}"

    load_now = options.load_now if options else None
    if load_now is None:
        define = "__defineModule__(_main);"
    else:
        define = f"__defineModule__(_main, {'true' if load_now else 'false'});"
    return f"{wrapped}\n\n{define}"


def unwrap_module(content: str) -> tuple[str, ModuleOptions]:
    """Strip the ``_main`` shim and return the body plus recovered options.

    Finds ``function _main``, the line holding ``) {``, and the matching
    closing brace, then removes one level (two spaces) of indentation.
    """
    lines = content.split("\n")

    start = next(
        (i for i, line in enumerate(lines) if line.strip().startswith("function _main")),
        -1,
    )
    if start == -1:
        return content, ModuleOptions()

    open_line = next(
        (i for i in range(start, len(lines)) if ") {" in lines[i]), -1
    )
    if open_line == -1:
        return content, ModuleOptions()

    end = _find_closing_brace(lines, open_line)
    if end == -1:
        return content, ModuleOptions()

    inner = [
        line[2:] if line.startswith("  ") else line
        for line in lines[open_line + 1 : end]
    ]
    body = "\n".join(inner).strip()

    trailer = "\n".join(lines[end + 1 :])
    return body, ModuleOptions(
        load_now=_parse_load_now(trailer),
        hoisted=tuple(_parse_bridge_names(trailer)),
    )


def is_wrapped_module(content: str) -> bool:
    return "function _main" in content and "__defineModule__" in content


def _find_closing_brace(lines: list[str], open_line: int) -> int:
    depth = 0
    seen_open = False
    for i in range(open_line, len(lines)):
        line = lines[i]
        # Only count braces after the parameter list on the opening line.
        if i == open_line:
            line = line[line.index(") {") + 2 :]
        for ch in line:
            if ch == "{":
                depth += 1
                seen_open = True
            elif ch == "}":
                depth -= 1
                if seen_open and depth == 0:
                    return i
    return -1


def _parse_load_now(trailer: str) -> bool | None:
    match = _DEFINE_PATTERN.search(trailer.strip())
    if match is None or match.group(1) in (None, "null"):
        return None
    return match.group(1) == "true"


_BRIDGE_PATTERN = re.compile(
    r"^function\s+(\w+)\(\.\.\.args\)\s*\{\s*$", re.MULTILINE
)


def _parse_bridge_names(trailer: str) -> list[str]:
    return _BRIDGE_PATTERN.findall(trailer)


# ---------------------------------------------------------------------------
# Hoisted bridges
# ---------------------------------------------------------------------------

_FUNC_DECL = re.compile(r"^(async\s+)?function\s+(\w+)\s*\((.*?)\)")
_RETURNS = re.compile(r"@returns?\s+\{([^}]+)\}")


def extract_hoisted_functions(body: str) -> list[HoistedFunction]:
    """Find functions whose JSDoc block carries a ``@hoisted`` tag."""
    if not body:
        return []

    functions: list[HoistedFunction] = []
    lines = body.split("\n")

    for i, line in enumerate(lines):
        if "@hoisted" not in line:
            continue

        doc_start = i
        while doc_start > 0 and not lines[doc_start].strip().startswith("/**"):
            doc_start -= 1

        match = None
        func_line = i + 1
        while func_line < len(lines):
            match = _FUNC_DECL.match(lines[func_line].strip())
            if match:
                break
            func_line += 1
        if match is None:
            logger.warning(
                "@hoisted at line %d has no following function declaration",
                i + 1,
            )
            continue

        name = match.group(2)
        params = tuple(
            p if p.startswith("...") else p.split("=")[0].split(":")[0].strip()
            for p in (raw.strip() for raw in match.group(3).split(","))
            if p
        )

        doc = "\n".join(lines[doc_start:func_line])
        summary = " ".join(
            stripped
            for stripped in (
                re.sub(r"^\s*(/\*\*|\*/|\*)\s?", "", doc_line).strip()
                for doc_line in doc.split("\n")
            )
            if stripped and not stripped.startswith("@") and stripped != "*/"
        )
        returns = _RETURNS.search(doc)

        functions.append(
            HoistedFunction(
                name=name,
                params=params,
                summary=summary,
                line_number=func_line + 1,
                return_type=returns.group(1) if returns else None,
            )
        )

    return functions


def generate_hoisted_bridge(func: HoistedFunction, module_name: str) -> str:
    """Generate a top-level bridge delegating to ``require(module).name``."""
    doc = [
        "/**",
        f" * Bridge for {func.name} (module line ~{func.line_number})",
    ]
    if func.summary:
        doc.append(f" * {func.summary}")
    for param in func.params:
        if param.startswith("..."):
            doc.append(f" * @param {{...*}} {param[3:]}")
        else:
            doc.append(f" * @param {{*}} {param}")
    doc.append(f" * @returns {{{func.return_type or '*'}}}")
    doc.append(" */")
    return (
        "\n".join(doc)
        + f"\nfunction {func.name}(...args) {{\n"
        + f"  return require('{module_name}').{func.name}(...args);\n"
        + "}"
    )


# ---------------------------------------------------------------------------
# Dotfiles
# ---------------------------------------------------------------------------

_DOTFILE_CONTENT = re.compile(r"const content = `((?:\\.|[^`\\])*)`;", re.DOTALL)


def wrap_dotfile(content: str, filename: str) -> str:
    """Wrap a dotfile's text as a module exporting the raw content."""
    escaped = (
        content.replace("\\", "\\\\").replace("`", "\\`").replace("$", "\\$")
    )
    return (
        f"{_MAIN_HEADER}\n"
        f"  const content = `{escaped}`;\n"
        "  module.exports = {\n"
        f"    filename: '{filename}',\n"
        "    type: 'dotfile',\n"
        "    content: content\n"
        "  };\n"
        "}\n\n"
        "__defineModule__(_main);"
    )


def unwrap_dotfile(content: str) -> str:
    """Recover the raw text from ``wrap_dotfile`` output.

    Content that is not a dotfile module is returned unchanged.
    """
    if "type: 'dotfile'" not in content:
        return content
    match = _DOTFILE_CONTENT.search(content)
    if match is None:
        return content
    return re.sub(r"\\(.)", r"\1", match.group(1), flags=re.DOTALL)


# ---------------------------------------------------------------------------
# Git files
# ---------------------------------------------------------------------------

_RAW_CONTENT = re.compile(r'const RAW_CONTENT = ("(?:\\.|[^"\\])*");', re.DOTALL)


def git_file_format(git_path: str) -> str:
    """Classify a path relative to ``.git/`` by its native format."""
    if git_path == "config":
        return "ini"
    if git_path == "info/exclude":
        return "gitignore"
    if git_path == "info/attributes":
        return "attributes"
    if git_path == "HEAD" or git_path.startswith("refs/"):
        return "ref"
    if git_path.startswith("hooks/"):
        return "script"
    if git_path.endswith(".json"):
        return "json"
    return "text"


def wrap_git_file(content: str, git_path: str) -> str:
    """Wrap the native text of a ``.git/`` file as a module."""
    return (
        f"{_MAIN_HEADER}\n"
        f"  const RAW_CONTENT = {json.dumps(content)};\n"
        "  module.exports = {\n"
        "    raw: RAW_CONTENT,\n"
        f"    format: '{git_file_format(git_path)}',\n"
        f"    gitPath: '{git_path}'\n"
        "  };\n"
        "}\n\n"
        "__defineModule__(_main);"
    )


def unwrap_git_file(content: str) -> str:
    """Recover native git text; unwrapped (raw INI) content passes through."""
    match = _RAW_CONTENT.search(content)
    if match is None:
        return content
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.warning("Malformed RAW_CONTENT literal in git file module")
        return content

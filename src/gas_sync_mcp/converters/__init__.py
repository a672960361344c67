"""Content converters between Apps Script and local file formats."""

from .markdown_html import (
    html_to_markdown,
    is_converted_markdown,
    markdown_to_html,
)
from .module_wrapper import (
    HoistedFunction,
    ModuleOptions,
    extract_hoisted_functions,
    generate_hoisted_bridge,
    git_file_format,
    is_wrapped_module,
    unwrap_dotfile,
    unwrap_git_file,
    unwrap_module,
    wrap_dotfile,
    wrap_git_file,
    wrap_module,
)

__all__ = [
    "HoistedFunction",
    "ModuleOptions",
    "extract_hoisted_functions",
    "generate_hoisted_bridge",
    "git_file_format",
    "html_to_markdown",
    "is_converted_markdown",
    "is_wrapped_module",
    "markdown_to_html",
    "unwrap_dotfile",
    "unwrap_git_file",
    "unwrap_module",
    "wrap_dotfile",
    "wrap_git_file",
    "wrap_module",
]

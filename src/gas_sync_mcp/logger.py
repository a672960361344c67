import json
import logging
import os
import sys

_DATEFMT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MCP_LOG_FILE = "/tmp/gas-sync-mcp.log"


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    name = " %(name)s" if with_name else ""
    return logging.Formatter(
        f"[%(asctime)s] [%(levelname)s]{name} %(message)s", datefmt=_DATEFMT
    )


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    yaml_level: str | None = None,
    yaml_file: str | None = None,
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" logs to a file only, because stdout carries JSON-RPC;
            "cli" logs to stderr and optionally a file.
        debug: If True, overrides LOG_LEVEL to DEBUG.  Every git command
            is logged at DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.
        yaml_level: ``logging.level`` from the YAML config; used when
            LOG_LEVEL is unset.
        yaml_file: ``logging.file`` from the YAML config; used when
            neither *log_file* nor LOG_FILE is set.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/gas-sync-mcp.log
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", yaml_level or default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if mode == "mcp":
        target = log_file or os.getenv("LOG_FILE") or yaml_file or DEFAULT_MCP_LOG_FILE
        mcp_handler = logging.FileHandler(target, mode="a")
        mcp_handler.setFormatter(_formatter(debug_format, with_name=True))
        handlers.append(mcp_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_formatter(debug_format, with_name=False))
        handlers.append(stderr_handler)

        cli_file = log_file or yaml_file
        if cli_file:
            cli_file_handler = logging.FileHandler(cli_file, mode="a")
            cli_file_handler.setFormatter(_formatter(debug_format, with_name=True))
            handlers.append(cli_file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Quiet HTTP client chatter unless DEBUG
    if log_level != logging.DEBUG:
        for noisy in ("urllib3", "httpx", "httpcore"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

"""Logging configuration for hookwire.

Provides subsystem-level log file routing, secret sanitization,
and structlog + stdlib integration.

Subsystem hierarchy (stdlib dotted names, structlog wraps them):
    root               → ConsoleHandler (terminal)
      └─ hookwire      → RotatingFileHandler → hookwire.log (combined)
           ├─ hookwire.bot         → RFH → bot.log
           ├─ hookwire.registry    → RFH → registry.log
           ├─ hookwire.listeners   → RFH → listeners.log
           ├─ hookwire.server      → RFH → server.log
           ├─ hookwire.subscribers → RFH → subscribers.log
           ├─ hookwire.transport   → RFH → transport.log
           └─ hookwire.jenkins     → RFH → jenkins.log
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

import structlog

# Subsystem names: each gets its own RotatingFileHandler
SUBSYSTEMS = (
    "bot", "registry", "listeners", "server", "subscribers", "transport", "jenkins",
)

# stdlib logger name prefix for hierarchy-based propagation
LOGGER_PREFIX = "hookwire"

# ---------------------------------------------------------------------------
# Secret sanitization
# ---------------------------------------------------------------------------

_SECRET_PATTERNS = [
    # Slack bot/user/app/refresh tokens
    re.compile(r"xox[abprs]-[a-zA-Z0-9-]{10,}"),
    re.compile(r"xapp-[a-zA-Z0-9-]{10,}"),
    # Bearer token values in headers
    re.compile(r"Bearer\s+[a-zA-Z0-9_./-]{20,}"),
]

# user:token@host credentials embedded in URLs (Jenkins API tokens)
_URL_CREDENTIALS = re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@")

_REDACTED = "***REDACTED***"


def _scrub_value(value: str) -> str:
    """Scrub tokens and URL credentials from a single string value."""
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    value = _URL_CREDENTIALS.sub(lambda m: m.group(1) + _REDACTED + "@", value)
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that scrubs chat tokens and URL credentials.

    Walks all string values in the event dict (one level into lists,
    tuples and dicts) and replaces matches with a redacted placeholder.
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _scrub_value(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(
                _scrub_value(v) if isinstance(v, str) else v
                for v in value
            )
        elif isinstance(value, dict):
            event_dict[key] = {
                k: _scrub_value(v) if isinstance(v, str) else v
                for k, v in value.items()
            }
    return event_dict


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

DEFAULT_LOG_DIR = Path(__file__).parent.parent / "logs"


class LogSettings(NamedTuple):
    """Everything setup_logging needs, read from Config or defaulted."""

    log_dir: Path
    level: int
    subsystem_levels: Dict[str, int]
    max_bytes: int
    backup_count: int
    cache_loggers: bool

    @classmethod
    def from_config(cls, config=None) -> "LogSettings":
        if config is None:
            return cls(DEFAULT_LOG_DIR, logging.INFO, {}, 10 * 1024 * 1024, 5, False)
        level = _level(config.logging_level, logging.INFO)
        return cls(
            log_dir=config.log_dir,
            level=level,
            subsystem_levels={
                name: _level(value, level)
                for name, value in config.logging_subsystem_levels.items()
            },
            max_bytes=config.logging_max_file_size_mb * 1024 * 1024,
            backup_count=config.logging_backup_count,
            cache_loggers=True,
        )


def _level(name: Any, default: int) -> int:
    if not isinstance(name, str) or not name:
        return default
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


def _file_formatter() -> logging.Formatter:
    # Plain structured lines for files, no ANSI colors
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )


def _reset(name: Optional[str], level: int) -> logging.Logger:
    target = logging.getLogger(name)
    target.setLevel(level)
    for handler in target.handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            handler.close()
    target.handlers.clear()
    return target


def _attach_file(target: logging.Logger, path: Path, level: int,
                 settings: LogSettings, formatter: logging.Formatter) -> None:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    target.addHandler(handler)


def _log_dir_usable(log_dir: Path) -> bool:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        # Console-only; the bot must not crash on logging failure
        print(
            f"WARNING: Cannot create log directory {log_dir}: {exc}. "
            "Logging to console only.",
            file=sys.stderr,
        )
        return False
    return True


def setup_logging(config=None) -> None:
    """Route stdlib + structlog output to the console and rotating files.

    Handlers installed:
    1. Root logger: console, at the configured level.
    2. "hookwire": combined hookwire.log.
    3. "hookwire.<subsystem>": <subsystem>.log, with an optional
       per-subsystem level from ``logging.subsystem_levels``.

    Loggers propagate, so one event lands in its subsystem file, the
    combined file and the console.

    Called twice by main: once with no config (defaults, logger caching
    off so early loggers pick up the second call) and once with the
    loaded Config.
    """
    settings = LogSettings.from_config(config)
    files_ok = _log_dir_usable(settings.log_dir)
    formatter = _file_formatter()

    root = _reset(None, logging.DEBUG)
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(settings.level)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root.addHandler(console)

    package_logger = _reset(LOGGER_PREFIX, logging.DEBUG)
    package_logger.propagate = True
    if files_ok:
        _attach_file(package_logger, settings.log_dir / f"{LOGGER_PREFIX}.log",
                     settings.level, settings, formatter)

    for subsystem in SUBSYSTEMS:
        level = settings.subsystem_levels.get(subsystem, settings.level)
        sub_logger = _reset(f"{LOGGER_PREFIX}.{subsystem}", level)
        sub_logger.propagate = True
        if files_ok:
            _attach_file(sub_logger, settings.log_dir / f"{subsystem}.log",
                         level, settings, formatter)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=settings.cache_loggers,
    )

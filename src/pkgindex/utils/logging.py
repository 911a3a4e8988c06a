"""
Logging for the package index crawler.

Every module logs through a child of the "pkgindex" logger. The CLI
configures that logger once from LoggingSettings; library use without
setup_logging falls back to whatever the host application configured.

Per-job messages go through JobLogger so that every line about one
package version carries the same [path=...] [version=...] suffix.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgindex.config.settings import LoggingSettings


ROOT_LOGGER_NAME = "pkgindex"

# httpx logs every request at INFO; one line per registry call drowns
# the crawl progress messages.
NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


def setup_logging(
    settings: "LoggingSettings | None" = None,
    level: str | None = None,
) -> logging.Logger:
    """
    Attach console and rotating file handlers to the "pkgindex" logger.

    Calling it again is a no-op until reset_logging() runs.

    Args:
        settings: Logging section of the configuration; defaults when None
        level: Level name overriding settings.level (used by --verbose)
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    if _configured:
        return root

    if settings is None:
        from pkgindex.config.settings import LoggingSettings
        settings = LoggingSettings()

    log_level = getattr(logging, (level or settings.level).upper())
    formatter = logging.Formatter(fmt=settings.format, datefmt=settings.date_format)

    handlers: list[logging.Handler] = []
    if settings.log_to_console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if settings.file_path is not None:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            filename=str(settings.file_path),
            maxBytes=settings.max_file_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        ))

    root.handlers.clear()
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(log_level)
    root.propagate = False

    if log_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    return root


def reset_logging() -> None:
    """Close and detach the handlers installed by setup_logging."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.propagate = True
    _configured = False


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Logger for a module, nested under "pkgindex".

    >>> get_logger("pkgindex.crawler.worker").name
    'pkgindex.crawler.worker'
    >>> get_logger("plugin").name
    'pkgindex.plugin'
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class JobLogger(logging.LoggerAdapter):
    """Appends the job's context as [key=value] pairs to each message."""

    def process(self, msg, kwargs):
        if self.extra:
            suffix = " ".join(f"[{k}={v}]" for k, v in self.extra.items())
            msg = f"{msg} {suffix}"
        return msg, kwargs


def get_logger_with_context(name: str | None = None, **context: str) -> JobLogger:
    """
    Logger whose messages carry fixed context.

    >>> log = get_logger_with_context(__name__, path="github.com/a/b", version="v1.0.0")
    >>> log.warning("Parse failed")  # Parse failed [path=github.com/a/b] [version=v1.0.0]
    """
    return JobLogger(get_logger(name), context)

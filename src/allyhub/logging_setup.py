# src/allyhub/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Background sync traffic: per-kind fetch/apply lines, cache restores, scheduler
# ticks and the hub thread. The REPL prints collection updates itself, so these
# stay off the console below WARNING and go to their own file instead.
SYNC_LOGGERS: tuple[str, ...] = ("allyhub.sync", "allyhub.cache", "allyhub.net")

MAIN_LOG_NAME = "allyhub.log"
SYNC_LOG_NAME = "sync.log"


def _under(name: str, prefixes: tuple[str, ...]) -> bool:
    return any(name == p or name.startswith(p + ".") for p in prefixes)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Make interactive console usable:
    - allow allyhub logs (commands, services, connectors)
    - keep background sync traffic at WARNING+
    - suppress HTTP client noise (httpx/httpcore) unless WARNING+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    - suppress any other third-party logs unless ERROR+
    """

    def __init__(self, sync_loggers: tuple[str, ...] = SYNC_LOGGERS) -> None:
        super().__init__()
        self._sync_loggers = sync_loggers

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if _under(name, self._sync_loggers):
            return record.levelno >= logging.WARNING

        if name.startswith("allyhub."):
            return True

        if _under(name, ("httpx", "httpcore")):
            return record.levelno >= logging.WARNING

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        return record.levelno >= logging.ERROR


class _SyncTrafficFilter(logging.Filter):
    """Only the sync engine and the HTTP client it drives."""

    def __init__(self, sync_loggers: tuple[str, ...] = SYNC_LOGGERS) -> None:
        super().__init__()
        self._prefixes = sync_loggers + ("httpx",)

    def filter(self, record: logging.LogRecord) -> bool:
        return _under(record.name, self._prefixes)


def setup_logging(
    *,
    log_dir: str | Path = ".local/allyhub",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    sync_loggers: tuple[str, ...] = SYNC_LOGGERS,
) -> dict[str, Path]:
    """
    Three sinks:
    - stderr: command/service messages, sync problems only,
    - allyhub.log: everything at file_level,
    - sync.log: fetch requests, decode outcomes, cache writes and HTTP lines,
      so one kind's refresh history can be followed without the REPL noise.

    Call this ONCE, very early. Returns the log file paths by sink name.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    paths = {"main": log_dir / MAIN_LOG_NAME, "sync": log_dir / SYNC_LOG_NAME}

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    sync_fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter(sync_loggers))
    root.addHandler(console)

    main_file = logging.FileHandler(str(paths["main"]), encoding="utf-8")
    main_file.setLevel(file_level)
    main_file.setFormatter(fmt)
    root.addHandler(main_file)

    sync_file = logging.FileHandler(str(paths["sync"]), encoding="utf-8")
    sync_file.setLevel(logging.DEBUG)
    sync_file.setFormatter(sync_fmt)
    sync_file.addFilter(_SyncTrafficFilter(sync_loggers))
    root.addHandler(sync_file)

    # httpcore DEBUG is one line per socket event.
    logging.getLogger("httpcore").setLevel(logging.INFO)

    logging.captureWarnings(True)
    return paths

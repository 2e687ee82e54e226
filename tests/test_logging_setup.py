# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from allyhub.logging_setup import _ConsoleNoiseFilter, _SyncTrafficFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in saved_handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(saved_level)
    logging.captureWarnings(False)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("allyhub.cli.commands", logging.INFO, True),
        ("allyhub.services.updates", logging.INFO, True),
        ("allyhub.sync.coordinator", logging.INFO, False),
        ("allyhub.sync.coordinator", logging.WARNING, True),
        ("allyhub.sync.runner", logging.INFO, False),
        ("allyhub.cache.resource_cache", logging.INFO, False),
        ("httpx", logging.INFO, False),
        ("httpx", logging.WARNING, True),
        ("py.warnings", logging.WARNING, False),
        ("asyncio", logging.WARNING, False),
        ("asyncio", logging.ERROR, True),
    ],
)
def test_console_keeps_sync_traffic_quiet(name, level, shown) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


def test_sync_filter_matches_whole_logger_names() -> None:
    f = _SyncTrafficFilter()
    assert f.filter(_record("allyhub.sync.hub", logging.DEBUG))
    assert f.filter(_record("httpx", logging.INFO))
    assert not f.filter(_record("allyhub.synced", logging.INFO))
    assert not f.filter(_record("allyhub.cli.main", logging.INFO))


def test_setup_logging_splits_sync_traffic_into_its_own_file(tmp_path: Path, restore_root_logging) -> None:
    paths = setup_logging(log_dir=tmp_path / "logs", console_level=logging.CRITICAL)

    logging.getLogger("allyhub.sync.coordinator").info("Refresh tasks #1 started")
    logging.getLogger("allyhub.cli.commands").info("Command handled")
    for h in logging.getLogger().handlers:
        h.flush()

    sync_text = paths["sync"].read_text("utf-8")
    main_text = paths["main"].read_text("utf-8")
    assert "Refresh tasks #1 started" in sync_text
    assert "Command handled" not in sync_text
    assert "Refresh tasks #1 started" in main_text
    assert "Command handled" in main_text

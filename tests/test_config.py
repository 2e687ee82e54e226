# tests/test_config.py

from __future__ import annotations

import pytest

from allyhub.config import Settings, clamp_refresh_minutes


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (5, 5),
        (10, 10),
        (15, 15),
        (7, 5),
        (8, 10),
        (13, 15),
        (0, 5),
        (-3, 5),
        (100, 15),
        ("15", 15),
        ("abc", 10),
        (None, 10),
        (float("nan"), 10),
        (float("inf"), 15),
    ],
)
def test_clamp_refresh_minutes(raw, expected) -> None:
    assert clamp_refresh_minutes(raw) == expected


def test_settings_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("ALLYHUB_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("ALLYHUB_TASK_FETCH_URL", "  https://hub.example/tasks  ")
    monkeypatch.setenv("ALLYHUB_TASKS_REFRESH_MINUTES", "12")
    monkeypatch.setenv("ALLYHUB_FETCH_LIMIT", "not-a-number")
    monkeypatch.delenv("ALLYHUB_CACHE_DB_PATH", raising=False)
    monkeypatch.delenv("ALLYHUB_ACTION_FETCH_URL", raising=False)

    s = Settings.from_env()

    assert s.data_dir == tmp_path
    assert s.cache_db_path == tmp_path / "cache.sqlite3"
    assert s.task_fetch_url == "https://hub.example/tasks"
    assert s.action_fetch_url == ""
    assert s.tasks_refresh_minutes == 10
    assert s.fetch_limit == 50

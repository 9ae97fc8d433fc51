from __future__ import annotations

import importlib
import json
import os

import pytest

from sentiscope import settings


@pytest.fixture
def reload_settings(monkeypatch):
    yield lambda: importlib.reload(settings)
    monkeypatch.undo()
    importlib.reload(settings)


def test_project_root_follows_sentiscope_home(tmp_path, monkeypatch, reload_settings) -> None:
    (tmp_path / "config.json").write_text(json.dumps({"server": {"port": 8123}}), encoding="utf-8")
    monkeypatch.setenv("SENTISCOPE_HOME", str(tmp_path))
    monkeypatch.delenv("SENTISCOPE_DB_PATH", raising=False)

    reload_settings()

    assert settings.PROJECT_ROOT == str(tmp_path)
    assert settings.SERVER_PORT == 8123
    assert settings.DB_PATH == str(tmp_path / "sentiscope.db")
    assert settings.TELEGRAM_LOCK_PATH == str(tmp_path / "tmp" / "telegram-bot.lock")


def test_project_root_defaults_to_working_directory(tmp_path, monkeypatch, reload_settings) -> None:
    monkeypatch.delenv("SENTISCOPE_HOME", raising=False)
    monkeypatch.chdir(tmp_path)

    reload_settings()

    assert os.path.realpath(settings.PROJECT_ROOT) == os.path.realpath(tmp_path)
    assert settings.CONFIG == {}
    assert settings.SERVER_PORT == 5000

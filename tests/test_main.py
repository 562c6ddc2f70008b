"""Launcher tests: --new must clear the slot the app will actually use."""

import os
from unittest.mock import patch

import pytest

import main
from romance_city.storage import SaveStore


@pytest.fixture
def isolated_env(monkeypatch):
    monkeypatch.setattr(os, "environ", dict(os.environ))
    monkeypatch.delenv("DATA_DIR", raising=False)


def _run(monkeypatch, *argv: str) -> None:
    monkeypatch.setattr("sys.argv", ["main.py", *argv])
    with patch("uvicorn.run") as run:
        main.main()
    run.assert_called_once()


def test_new_clears_data_dir_from_environment(monkeypatch, tmp_path, game_state, isolated_env):
    store = SaveStore(tmp_path)
    store.save(game_state)
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    _run(monkeypatch, "--new")
    assert not store.exists()


def test_new_clears_explicit_data_dir(monkeypatch, tmp_path, game_state, isolated_env):
    store = SaveStore(tmp_path)
    store.save(game_state)
    _run(monkeypatch, "--new", "--data-dir", str(tmp_path))
    assert not store.exists()
    assert os.environ["DATA_DIR"] == str(tmp_path.resolve())


def test_without_new_keeps_save(monkeypatch, tmp_path, game_state, isolated_env):
    store = SaveStore(tmp_path)
    store.save(game_state)
    _run(monkeypatch, "--data-dir", str(tmp_path))
    assert store.exists()

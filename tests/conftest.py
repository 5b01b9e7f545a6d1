"""Shared fixtures for launcher tests."""

import json
import sys

import pytest

from helpers import FakeSpawner
from respawn.config import SupervisorConfig


@pytest.fixture
def config(tmp_path):
    config_path = tmp_path / "config.json"
    raw = {"UPDATE": {"Package": False, "EXCLUDED": []}, "removeSt": False}
    config_path.write_text(json.dumps(raw))

    return SupervisorConfig(
        config_path=config_path,
        manifest_path=tmp_path / "manifest.json",
        state_file=tmp_path / "appstate.json",
        threads_file=tmp_path / "data" / "threadsData.json",
        users_file=tmp_path / "data" / "usersData.json",
        landing_page=tmp_path / "static" / "index.html",
        worker_command=[sys.executable, "-c", "pass"],
        working_dir=tmp_path,
        host="127.0.0.1",
        update_delay=0,
        reset_grace=0,
        log_file=tmp_path / "respawn.log",
        raw=raw,
    )


@pytest.fixture
def spawner():
    return FakeSpawner()

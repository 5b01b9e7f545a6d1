import json
import logging

import pytest

from respawn.__main__ import main


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_missing_config_exits_with_error(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--config", str(tmp_path / "missing.json"), "--no-console"])

    assert exc.value.code == 1
    assert "Error loading config" in capsys.readouterr().err


def test_reset_flag_exits_cleanly(tmp_path, monkeypatch, restore_logging):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RESET_GRACE", "0")
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "respawn.log"))
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"removeSt": True}))

    with pytest.raises(SystemExit) as exc:
        main(["--config", str(config_path), "--no-console"])

    assert exc.value.code == 0
    assert (tmp_path / "appstate.json").read_text(encoding="utf-8") == "(›^-^)›"
    assert json.loads(config_path.read_text())["removeSt"] is False

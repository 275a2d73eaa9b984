import faulthandler
import logging
import sys

import pytest
from PySide6.QtCore import QSettings

from error_log import ErrorLog
from main import install_crash_handler, parse_args, run_command, setup_logging
from settings import AppSettings


@pytest.fixture
def settings(tmp_path):
    qs = QSettings(str(tmp_path / "settings.ini"), QSettings.Format.IniFormat)
    return AppSettings(qs, environ={})


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
def test_parse_args():
    args = parse_args(["--game-dir", "D:/Game", "--no-persist-settings", "enable", "Foo", "Bar"])

    assert args.command == "enable"
    assert args.names == ["Foo", "Bar"]
    assert args.game_dir == "D:/Game"
    assert args.no_persist_settings is True
    assert args.verbose is False


def test_enable_requires_names():
    with pytest.raises(SystemExit):
        parse_args(["enable"])


@pytest.mark.asyncio
async def test_set_game_dir(settings, tmp_path):
    code = await run_command(parse_args(["set-game-dir", str(tmp_path)]), settings, ErrorLog(tmp_path))

    assert code == 0
    assert settings.game_dir == tmp_path


@pytest.mark.asyncio
async def test_set_game_dir_rejects_missing_path(settings, tmp_path):
    missing = tmp_path / "missing"

    code = await run_command(parse_args(["set-game-dir", str(missing)]), settings, ErrorLog(tmp_path))

    assert code == 1
    assert settings.game_dir is None


@pytest.mark.asyncio
async def test_remove_all_locked_file_exits_cleanly(settings, tmp_path, monkeypatch, capsys):
    game = tmp_path / "game"
    (game / "BepInEx" / "plugins").mkdir(parents=True)
    settings.set_game_dir(game)
    error_log = ErrorLog(tmp_path / "logs")

    def locked(path, *args, **kwargs):
        raise PermissionError(13, "file in use", str(path))

    monkeypatch.setattr("mod_installer.shutil.rmtree", locked)

    code = await run_command(parse_args(["remove-all"]), settings, error_log)

    assert code == 1
    err = capsys.readouterr().err
    assert "Failed to remove mods" in err
    assert str(tmp_path / "logs" / "errors.log") in err


@pytest.mark.parametrize("verbose, console_level", [(False, logging.WARNING), (True, logging.DEBUG)])
def test_setup_logging(tmp_path, root_handlers, verbose, console_level):
    logger, log_dir = setup_logging(tmp_path / "logs", verbose=verbose)

    logger.warning("hello from the test")

    assert log_dir == tmp_path / "logs"
    levels = {type(h).__name__: h.level for h in logging.getLogger().handlers}
    assert levels["StreamHandler"] == console_level
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello from the test" in (log_dir / "stalkingstairsmodmanager.log").read_text(encoding="utf-8")


def test_crash_handler_writes_error_log(tmp_path, root_handlers, monkeypatch, capsys):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    error_log = ErrorLog(tmp_path / "logs")
    logger = logging.getLogger("stalkingstairsmodmanager.test")

    install_crash_handler(logger, tmp_path, error_log)
    try:
        try:
            raise RuntimeError("boom")
        except RuntimeError as exc:
            sys.excepthook(type(exc), exc, exc.__traceback__)
    finally:
        faulthandler.disable()

    text = (tmp_path / "logs" / "errors.log").read_text(encoding="utf-8")
    assert "Unhandled exception" in text
    assert "RuntimeError: boom" in text
    assert str(tmp_path / "logs" / "errors.log") in capsys.readouterr().err
    assert (tmp_path / "crash.log").exists()

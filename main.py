#!/usr/bin/env python3
"""Stalking Stairs Mod Manager - Entry Point"""

import argparse
import asyncio
import faulthandler
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from error_log import ErrorLog, default_log_dir
from errors import ModManagerError
from game_locator import detect_game_dir
from mod_manager import ModManager
from settings import GAME_DIR_KEY, MANIFEST_URL_KEY, SETTINGS_APP, SETTINGS_ORG, AppSettings

LOG_FILENAME = "stalkingstairsmodmanager.log"
CRASH_LOG_FILENAME = "crash.log"


def setup_logging(log_dir: Path | None = None, verbose: bool = False) -> tuple[logging.Logger, Path]:
    log_dir = log_dir or default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s: %(message)s"))

    # Progress already reaches the terminal through log_callback; stderr only
    # gets problems unless --verbose
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    # Module loggers are top-level names, so attach to the root logger
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.addHandler(console)
    return logging.getLogger("stalkingstairsmodmanager"), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path, error_log: ErrorLog | None = None):
    # Unhandled exceptions go to the rotating log and to errors.log, which is
    # the file every user-facing failure message points at
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )
        if error_log is not None:
            path = error_log.record("Unhandled exception", exc_value)
            print(f"Unexpected error. Details were written to {path}", file=sys.stderr)

    sys.excepthook = handle_exception

    # Native crashes bypass logging entirely
    crash_file = log_dir / CRASH_LOG_FILENAME
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stalking Stairs Mod Manager")
    parser.add_argument("--game-dir")
    parser.add_argument("--manifest-url")
    parser.add_argument("--settings-org", default=SETTINGS_ORG)
    parser.add_argument("--settings-app", default=SETTINGS_APP)
    parser.add_argument("--no-persist-settings", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true", help="Echo debug logging to stderr")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Show the mod list")
    enable = sub.add_parser("enable", help="Install the named mods")
    enable.add_argument("names", nargs="+")
    disable = sub.add_parser("disable", help="Uninstall the named mods")
    disable.add_argument("names", nargs="+")
    install_all = sub.add_parser("install-all", help="Install BepInEx and the named mods")
    install_all.add_argument("names", nargs="*")
    sub.add_parser("remove-all", help="Delete the BepInEx folder and every mod in it")
    sub.add_parser("locate", help="Auto-detect and store the game directory")
    set_dir = sub.add_parser("set-game-dir", help="Store the game directory")
    set_dir.add_argument("path")
    return parser.parse_args(argv)


def print_mods(manager: ModManager):
    for group, mods in manager.grouped().items():
        print(f"{group or 'Other'}:")
        for mod in mods:
            mark = "[x]" if mod.enabled else "[ ]"
            lock = " (required)" if mod.is_forced else ""
            author = f" by {mod.author}" if mod.author else ""
            print(f"  {mark} {mod.display_name}{author}{lock}")


def _lookup(manager: ModManager, names: list[str]) -> list:
    mods = []
    for name in names:
        mod = manager.find(name)
        if mod is None:
            print(f"Unknown mod: {name}", file=sys.stderr)
        else:
            mods.append(mod)
    return mods


async def run_command(args: argparse.Namespace, settings: AppSettings, error_log: ErrorLog) -> int:
    if args.command == "locate":
        found = detect_game_dir()
        if found is None:
            print("Game not found in the default Steam locations. Use set-game-dir.")
            return 1
        settings.set_game_dir(found)
        print(f"Auto-detected: {found}")
        return 0

    if args.command == "set-game-dir":
        path = Path(args.path)
        if not path.is_dir():
            print(f"Not a directory: {path}", file=sys.stderr)
            return 1
        settings.set_game_dir(path)
        print(f"Selected: {path}")
        return 0

    async with ModManager(
        settings.game_dir,
        manifest_url=settings.manifest_url,
        error_log=error_log,
        log_callback=print,
    ) as manager:
        if args.command == "remove-all":
            try:
                return 0 if await manager.remove_all_mods() else 1
            except ModManagerError as exc:
                print(f"Failed to remove mods: {exc}", file=sys.stderr)
                if exc.log_path:
                    print(f"Log file: {exc.log_path}", file=sys.stderr)
                return 1

        try:
            await manager.load_mods()
        except ModManagerError as exc:
            print(f"Failed to load mods. A detailed error log has been saved.\n\nLog file: {exc.log_path}",
                  file=sys.stderr)
            return 1

        if args.command == "list":
            print_mods(manager)
            return 0

        if args.command == "install-all":
            for mod in _lookup(manager, args.names):
                mod.enabled = True
            results = await manager.install_all()
        else:
            mods = _lookup(manager, args.names)
            enabled = args.command == "enable"
            results = await asyncio.gather(*(manager.set_enabled(m, enabled) for m in mods))
            if len(mods) != len(args.names):
                return 1

        return 0 if all(r.ok for r in results) else 1


if __name__ == "__main__":
    args = parse_args()

    logger, log_dir = setup_logging(verbose=args.verbose)
    error_log = ErrorLog(log_dir)
    install_crash_handler(logger, log_dir, error_log)
    logger.info("Starting Stalking Stairs Mod Manager")

    settings = AppSettings(
        settings_org=args.settings_org,
        settings_app=args.settings_app,
        persist=not args.no_persist_settings,
    )
    settings.override(GAME_DIR_KEY, args.game_dir)
    settings.override(MANIFEST_URL_KEY, args.manifest_url)

    try:
        sys.exit(asyncio.run(run_command(args, settings, error_log)))
    except ModManagerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

#!/usr/bin/env python3
"""Lethal Company Modpack Installer — Entry Point"""

import argparse
import faulthandler
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from install_context import ExecutionContext, InstallerError
from manifest_schema import DEFAULT_MANIFEST_REPO, DEFAULT_PRESET
from pipeline import InstallOptions, run_install


def setup_logging() -> tuple[logging.Logger, Path]:
    log_dir = Path(os.environ.get("APPDATA", "~")).expanduser() / "LethalModpackInstaller"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "installer.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    # keep urllib3 connection chatter out of the log
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logging.getLogger("lcmodinstaller"), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = handle_exception

    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Install BepInEx and the curated Lethal Company modpack"
    )
    parser.add_argument(
        "-s", "--server-host", action="store_true",
        help="Also install mods only needed by the lobby host",
    )
    parser.add_argument("-p", "--preset", default=DEFAULT_PRESET)

    source = parser.add_mutually_exclusive_group()
    source.add_argument("-b", "--branch", help="Modpack branch to read mods.json from")
    source.add_argument("--manifest-file", type=Path, help="Read the manifest from a local file")
    parser.add_argument("--manifest-repo", default=DEFAULT_MANIFEST_REPO)

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-u", "--upgrade", action="store_true", help="Reinstall BepInEx, keep config")
    mode.add_argument("-f", "--force", action="store_true", help="Delete BepInEx entirely first")

    parser.add_argument(
        "--strict", action="store_true",
        help="Refuse to touch an existing install unless --upgrade or --force is given",
    )
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--game-dir", type=Path, help="Skip the drive search")
    parser.add_argument("--launch-wait", type=float, default=10.0)
    parser.add_argument("--no-config-patch", action="store_true")
    parser.add_argument("--mock-game", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.mock_game:
        os.environ["LCMI_MOCK_GAME"] = "1"

    logger, log_dir = setup_logging()
    install_crash_handler(logger, log_dir)
    logger.info("Starting Lethal Company Modpack Installer")

    def log_callback(msg: str):
        print(msg)
        logger.info(msg)

    ctx = ExecutionContext(
        strict=args.strict,
        dry_run=args.dry_run,
        mock_game=os.environ.get("LCMI_MOCK_GAME") == "1",
        launch_wait=args.launch_wait,
        log_callback=log_callback,
    )
    options = InstallOptions(
        preset=args.preset,
        server_host=args.server_host,
        branch=args.branch,
        manifest_file=args.manifest_file,
        manifest_repo=args.manifest_repo,
        upgrade=args.upgrade,
        force=args.force,
        game_dir=args.game_dir,
        patch_configs=not args.no_config_patch,
    )

    try:
        run_install(ctx, options)
    except InstallerError as exc:
        logger.error("Install failed: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
BepInEx installation: backup, cleanup, download, and first-run validation.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

import psutil

from downloads import downloaded_archive, fetch_latest_release_asset
from install_context import (
    FRAMEWORK_DIR_NAME,
    ExecutionContext,
    InstallerError,
    InstallMode,
    InstallTarget,
)

EXCLUDED_RELEASE_FILES = {"changelog.txt"}
POLL_INTERVAL = 0.5
SETTLE_DELAY = 1.0

MOCK_FRAMEWORK_CONFIG = """\
[Logging.Console]

## Enables showing a console for log output.
# Setting type: Boolean
# Default value: false
Enabled = false
"""

_log = logging.getLogger(__name__)


def _remove_path(path: Path):
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


def _kill_process_tree(proc: psutil.Process):
    try:
        children = proc.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass
    try:
        proc.kill()
    except psutil.NoSuchProcess:
        pass


class FrameworkInstaller:
    """Installs BepInEx into the game directory.

    Workflow:
        1. backup_framework() whenever an installation already exists
        2. clean() according to the install mode
        3. download_and_copy() the latest release
        4. run_first_launch() so BepInEx writes its config and log
    """

    def __init__(self, ctx: ExecutionContext, target: InstallTarget):
        self.ctx = ctx
        self.target = target

    def log(self, msg: str):
        self.ctx.log(msg)

    # ── Backup / Cleanup ──────────────────────────────────────────────

    def backup_framework(self, suffix: str = "_Backup") -> Path:
        """Zip the framework root next to the game, replacing an older backup."""
        archive = self.target.backup_archive(suffix)
        if self.ctx.dry_run:
            self.log(f"[dry-run] Would back up {FRAMEWORK_DIR_NAME} to {archive.name}")
            return archive
        if archive.exists():
            archive.unlink()
        shutil.make_archive(
            str(archive.with_suffix("")),
            "zip",
            root_dir=self.target.game_dir,
            base_dir=FRAMEWORK_DIR_NAME,
        )
        self.log(f"Backed up {FRAMEWORK_DIR_NAME} to {archive}")
        return archive

    def _paths_to_remove(self, mode: InstallMode) -> list[Path]:
        t = self.target
        if mode is InstallMode.FORCE:
            return [t.framework_root, t.loader_dll, t.loader_config]
        if mode is InstallMode.UPGRADE:
            return [
                t.core_dir,
                t.plugins_dir,
                t.patchers_dir,
                t.log_file,
                t.loader_dll,
                t.loader_config,
            ]
        return []

    def clean(self, mode: InstallMode):
        for path in self._paths_to_remove(mode):
            if not path.exists():
                continue
            if self.ctx.dry_run:
                self.log(f"[dry-run] Would remove {path}")
                continue
            _remove_path(path)
            self.log(f"  Removed: {path.relative_to(self.target.game_dir)}")

    # ── Download ──────────────────────────────────────────────────────

    def download_and_copy(self):
        url, asset_name = fetch_latest_release_asset()
        if self.ctx.dry_run:
            self.log(f"[dry-run] Would install {asset_name} from {url}")
            return
        self.log(f"Downloading {asset_name}...")
        with downloaded_archive(url, asset_name) as extracted:
            copied = 0
            for item in sorted(extracted.iterdir()):
                if item.name.lower() in EXCLUDED_RELEASE_FILES:
                    continue
                dst = self.target.game_dir / item.name
                if item.is_dir():
                    shutil.copytree(item, dst, dirs_exist_ok=True)
                else:
                    shutil.copy2(item, dst)
                copied += 1
        self.log(f"  Copied {copied} item(s) into {self.target.game_dir}")

    # ── First launch ──────────────────────────────────────────────────

    def _expected_files(self) -> list[Path]:
        return [self.target.framework_config, self.target.log_file]

    def _wait_for_files(self, paths: list[Path], timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if all(p.exists() for p in paths):
                return True
            time.sleep(POLL_INTERVAL)
        return all(p.exists() for p in paths)

    def _run_mock_game(self):
        self.log("Running mock game launch")
        self.target.config_dir.mkdir(parents=True, exist_ok=True)
        if not self.target.framework_config.exists():
            self.target.framework_config.write_text(MOCK_FRAMEWORK_CONFIG, encoding="utf-8")
        self.target.log_file.write_text("[Message:   BepInEx] mock launch\n", encoding="utf-8")

    def run_first_launch(self):
        """Start the game, let BepInEx generate its files, then stop it."""
        if self.ctx.dry_run:
            self.log(f"[dry-run] Would launch {self.target.executable.name} once")
            return

        if self.ctx.mock_game:
            self._run_mock_game()
        else:
            self.log(
                f"Launching {self.target.executable.name} "
                f"(up to {self.ctx.launch_wait:g}s) to generate BepInEx files..."
            )
            try:
                proc = psutil.Popen(
                    [str(self.target.executable)], cwd=str(self.target.game_dir)
                )
            except OSError as exc:
                raise InstallerError(f"Could not start {self.target.executable}: {exc}") from exc
            try:
                ready = self._wait_for_files(self._expected_files(), self.ctx.launch_wait)
                _log.debug("First-run files ready: %s", ready)
            finally:
                _kill_process_tree(proc)
                self.log("  Game process stopped")
            time.sleep(SETTLE_DELAY)

        for path in self._expected_files():
            if not path.exists():
                raise InstallerError(
                    f"{path.name} was not generated at {path}. "
                    "Launch the game once manually, then re-run with --upgrade."
                )
        self.log("BepInEx first-run files present")

    # ── Orchestration ─────────────────────────────────────────────────

    def install(self, mode: InstallMode):
        self.log(f"Installing BepInEx ({mode.value})...")
        if mode is not InstallMode.FRESH:
            self.backup_framework()
            self.clean(mode)
        self.download_and_copy()
        self.run_first_launch()

"""
Lethal Company Modpack Installer - shared run state.

Everything a component needs to know about the current run travels in an
``ExecutionContext``; the on-disk layout it works against is an
``InstallTarget``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

FRAMEWORK_DIR_NAME = "BepInEx"
LOADER_DLL_NAME = "winhttp.dll"
LOADER_CONFIG_NAME = "doorstop_config.ini"
FRAMEWORK_CONFIG_NAME = "BepInEx.cfg"
FRAMEWORK_LOG_NAME = "LogOutput.log"


class InstallerError(Exception):
    """A condition that ends the run."""


class InstallMode(enum.Enum):
    FRESH = "fresh"
    UPGRADE = "upgrade"
    FORCE = "force"


@dataclass
class ExecutionContext:
    strict: bool = False
    dry_run: bool = False
    mock_game: bool = False
    launch_wait: float = 10.0
    log_callback: Optional[Callable[[str], None]] = None

    def log(self, msg: str):
        (self.log_callback or print)(msg)

    def warn(self, msg: str):
        self.log(f"WARNING: {msg}")


@dataclass(frozen=True)
class InstallTarget:
    game_dir: Path
    executable: Path

    @classmethod
    def from_game_dir(cls, game_dir: str | Path, executable_name: str) -> InstallTarget:
        game_dir = Path(game_dir)
        return cls(game_dir=game_dir, executable=game_dir / executable_name)

    @property
    def framework_root(self) -> Path:
        return self.game_dir / FRAMEWORK_DIR_NAME

    @property
    def core_dir(self) -> Path:
        return self.framework_root / "core"

    @property
    def config_dir(self) -> Path:
        return self.framework_root / "config"

    @property
    def plugins_dir(self) -> Path:
        return self.framework_root / "plugins"

    @property
    def patchers_dir(self) -> Path:
        return self.framework_root / "patchers"

    @property
    def log_file(self) -> Path:
        return self.framework_root / FRAMEWORK_LOG_NAME

    @property
    def framework_config(self) -> Path:
        return self.config_dir / FRAMEWORK_CONFIG_NAME

    @property
    def loader_dll(self) -> Path:
        return self.game_dir / LOADER_DLL_NAME

    @property
    def loader_config(self) -> Path:
        return self.game_dir / LOADER_CONFIG_NAME

    def backup_archive(self, suffix: str = "_Backup") -> Path:
        return self.game_dir / f"{FRAMEWORK_DIR_NAME}{suffix}.zip"


def resolve_install_mode(
    upgrade: bool, force: bool, framework_exists: bool, strict: bool = False
) -> InstallMode:
    """Pick the install mode once, before anything on disk changes.

    Without an existing framework root there is nothing to upgrade or clean,
    so the flags are moot and the result is always ``FRESH``.  With one, an
    explicit flag wins; otherwise strict runs refuse and lenient runs upgrade.
    """
    if upgrade and force:
        raise InstallerError("--upgrade and --force cannot be used together")
    if not framework_exists:
        return InstallMode.FRESH
    if force:
        return InstallMode.FORCE
    if upgrade:
        return InstallMode.UPGRADE
    if strict:
        raise InstallerError(
            f"{FRAMEWORK_DIR_NAME} is already installed. "
            "Re-run with --upgrade to keep your config or --force for a clean reinstall."
        )
    return InstallMode.UPGRADE

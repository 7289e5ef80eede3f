"""
Find the game installation on local drives.

The search is a heuristic: Steam library locations on every mounted drive
are tried first, then the drive roots themselves, and the first directory
named after the game wins.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterable

import psutil

from install_context import ExecutionContext, InstallerError, InstallTarget

GAME_NAME = "Lethal Company"
EXECUTABLE_NAME = "Lethal Company.exe"

STEAM_LIBRARY_SUBPATHS = (
    Path("Program Files (x86)") / "Steam" / "steamapps" / "common",
    Path("Program Files") / "Steam" / "steamapps" / "common",
    Path("SteamLibrary") / "steamapps" / "common",
    Path("Steam") / "steamapps" / "common",
)

_log = logging.getLogger(__name__)


def ensure_supported_platform():
    if sys.platform != "win32":
        raise InstallerError(
            f"This installer only supports Windows (running on {sys.platform})"
        )


def mount_points() -> list[Path]:
    mounts: list[Path] = []
    for part in psutil.disk_partitions(all=False):
        mount = Path(part.mountpoint)
        if mount not in mounts:
            mounts.append(mount)
    return mounts


def candidate_roots(mounts: Iterable[Path]) -> list[Path]:
    """Steam library folders on each mount first, then the bare mounts."""
    mounts = [Path(m) for m in mounts]
    ordered = [m / sub for m in mounts for sub in STEAM_LIBRARY_SUBPATHS] + mounts
    seen: set[Path] = set()
    result: list[Path] = []
    for path in ordered:
        if path not in seen:
            seen.add(path)
            result.append(path)
    return result


def _search_root(root: Path, game_name: str, max_depth: int | None) -> Path | None:
    wanted = game_name.lower()
    direct = root / game_name
    if direct.is_dir():
        return direct

    root_depth = len(root.parts)
    # os.walk skips directories it cannot read
    for dirpath, dirnames, _ in os.walk(root):
        dirnames.sort()
        current = Path(dirpath)
        for d in dirnames:
            if d.lower() == wanted:
                return current / d
        if max_depth is not None and len(current.parts) - root_depth + 1 >= max_depth:
            dirnames[:] = []
    return None


def find_game_dir(
    game_name: str, roots: Iterable[Path], max_depth: int | None = None
) -> Path:
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            continue
        _log.debug("Searching %s for %s", root, game_name)
        match = _search_root(root, game_name, max_depth)
        if match is not None:
            return match
    raise InstallerError(f"Could not find a '{game_name}' installation on any local drive")


def locate_game(
    ctx: ExecutionContext,
    game_name: str = GAME_NAME,
    executable_name: str = EXECUTABLE_NAME,
    game_dir: str | Path | None = None,
    roots: Iterable[Path] | None = None,
) -> InstallTarget:
    if game_dir is not None:
        game_dir = Path(game_dir)
        if not game_dir.is_dir():
            raise InstallerError(f"Game directory does not exist: {game_dir}")
        ctx.log(f"Using game directory: {game_dir}")
    else:
        if roots is None:
            roots = candidate_roots(mount_points())
        ctx.log(f"Searching local drives for {game_name}...")
        game_dir = find_game_dir(game_name, roots)
        ctx.log(f"Found {game_name} at {game_dir}")

    target = InstallTarget.from_game_dir(game_dir, executable_name)
    if not target.executable.is_file():
        raise InstallerError(f"Game executable not found: {target.executable}")
    return target

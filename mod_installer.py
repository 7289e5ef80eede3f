"""
Lethal Company Modpack Installer - mod placement.

Downloads each selected package from the registry and moves its files into
the BepInEx plugins, patchers or config directory depending on the mod type.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from downloads import downloaded_archive, get_package_download_url
from install_context import ExecutionContext, InstallTarget
from manifest_schema import PATCHER, PLUGIN, ModDescriptor

_log = logging.getLogger(__name__)


def _move_replacing(src: Path, dst: Path):
    if src.is_dir():
        # Directories merge into dst file by file
        if dst.exists() and not dst.is_dir():
            dst.unlink()
        for child in sorted(src.rglob("*")):
            if child.is_file():
                _move_replacing(child, dst / child.relative_to(src))
        return
    dst.parent.mkdir(parents=True, exist_ok=True)
    if dst.is_dir():
        shutil.rmtree(dst)
    elif dst.exists():
        dst.unlink()
    shutil.move(str(src), str(dst))


def _files_with_suffix(root: Path, suffix: str) -> list[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() == suffix)


class ModInstaller:
    """
    Places downloaded mods into an installed BepInEx tree.

    Workflow:
        install_all(mods) -> for each mod: resolve URL, download, extract,
        then _place_plugin() or _place_patcher() by mod type.
    """

    def __init__(self, ctx: ExecutionContext, target: InstallTarget):
        self.ctx = ctx
        self.target = target

    def log(self, msg: str):
        self.ctx.log(msg)

    # ── Plugins ───────────────────────────────────────────────────────

    def _apply_relocations(self, mod: ModDescriptor, package_dir: Path) -> list[str]:
        moved = []
        for rule in mod.relocations:
            dest_dir = self.target.plugins_dir / rule.target
            for src in sorted(package_dir.rglob(rule.pattern)):
                if not src.is_file():
                    continue
                _move_replacing(src, dest_dir / src.name)
                moved.append(f"{rule.target}/{src.name}")
                self.log(f"  Relocated: {src.name} -> plugins/{rule.target}/")
        return moved

    def _place_plugin(self, mod: ModDescriptor, package_dir: Path) -> list[str]:
        placed = self._apply_relocations(mod, package_dir)

        for dll in _files_with_suffix(package_dir, ".dll"):
            _move_replacing(dll, self.target.plugins_dir / dll.name)
            placed.append(dll.name)
            self.log(f"  Plugin: {dll.name}")

        root = package_dir.resolve()
        for include in mod.extra_includes:
            src = package_dir / include
            if not src.resolve().is_relative_to(root):
                self.ctx.warn(f"{mod.name}: extra include '{include}' is outside the package, skipping")
                continue
            if not src.exists():
                self.ctx.warn(f"{mod.name}: extra include '{include}' not found in package")
                continue
            _move_replacing(src, self.target.plugins_dir / src.name)
            placed.append(src.name)
            self.log(f"  Included: {include}")

        return placed

    # ── Patchers ──────────────────────────────────────────────────────

    def _place_patcher(self, mod: ModDescriptor, package_dir: Path) -> list[str]:
        placed = []
        for dll in _files_with_suffix(package_dir, ".dll"):
            _move_replacing(dll, self.target.patchers_dir / dll.name)
            placed.append(dll.name)
            self.log(f"  Patcher: {dll.name}")

        # Existing configs may carry hand edits, so the first install wins
        for cfg in _files_with_suffix(package_dir, ".cfg"):
            dst = self.target.config_dir / cfg.name
            if dst.exists():
                self.log(f"  Kept existing config: {cfg.name}")
                continue
            _move_replacing(cfg, dst)
            placed.append(cfg.name)
            self.log(f"  Config: {cfg.name}")
        return placed

    # ── Install ───────────────────────────────────────────────────────

    def install_mod(self, mod: ModDescriptor) -> bool:
        """Install one mod. Returns False when the mod was skipped."""
        if mod.type not in (PLUGIN, PATCHER):
            self.ctx.warn(f"{mod.name}: unknown mod type '{mod.type}', skipping")
            return False

        url = get_package_download_url(mod.namespace, mod.name)
        if self.ctx.dry_run:
            self.log(f"[dry-run] Would install {mod.label} ({mod.type}) from {url}")
            return True

        self.log(f"Installing {mod.label} ({mod.type})...")
        with downloaded_archive(url, f"{mod.namespace}-{mod.name}.zip") as package_dir:
            if mod.type == PLUGIN:
                placed = self._place_plugin(mod, package_dir)
            else:
                placed = self._place_patcher(mod, package_dir)

        if not placed:
            self.ctx.warn(f"{mod.name}: package contained no files to install")
        _log.debug("%s placed %s", mod.name, placed)
        return True

    def install_all(self, mods: list[ModDescriptor]) -> list[ModDescriptor]:
        installed = []
        for mod in mods:
            if self.install_mod(mod):
                installed.append(mod)
        self.log(f"Installed {len(installed)} of {len(mods)} mod(s)")
        return installed

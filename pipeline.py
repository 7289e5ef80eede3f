"""
One installer run, top to bottom.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from config_patcher import apply_config_patches
from framework_installer import FrameworkInstaller
from game_locator import EXECUTABLE_NAME, GAME_NAME, ensure_supported_platform, locate_game
from install_context import ExecutionContext, InstallMode, InstallTarget, resolve_install_mode
from manifest_schema import DEFAULT_MANIFEST_REPO, DEFAULT_PRESET, load_manifest, resolve_preset
from mod_installer import ModInstaller

_log = logging.getLogger(__name__)


@dataclass
class InstallOptions:
    preset: str = DEFAULT_PRESET
    server_host: bool = False
    branch: str | None = None
    manifest_file: Path | None = None
    manifest_repo: str = DEFAULT_MANIFEST_REPO
    upgrade: bool = False
    force: bool = False
    game_dir: Path | None = None
    patch_configs: bool = True


def run_install(ctx: ExecutionContext, options: InstallOptions) -> InstallTarget:
    if not ctx.mock_game:
        ensure_supported_platform()

    source = options.manifest_file or f"branch '{options.branch or 'main'}'"
    ctx.log(f"Loading mod manifest from {source}...")
    manifest = load_manifest(
        branch=options.branch, manifest_file=options.manifest_file, repo=options.manifest_repo
    )
    mods = resolve_preset(manifest, options.preset, options.server_host, log=ctx.log)
    ctx.log(f"Preset '{options.preset}': {', '.join(m.label for m in mods) or '(no mods)'}")

    target = locate_game(ctx, GAME_NAME, EXECUTABLE_NAME, game_dir=options.game_dir)

    mode = resolve_install_mode(
        options.upgrade, options.force, target.framework_root.is_dir(), ctx.strict
    )
    _log.info("Install mode %s for %s", mode.value, target.game_dir)

    framework = FrameworkInstaller(ctx, target)
    framework.install(mode)

    installed = ModInstaller(ctx, target).install_all(mods)

    if options.patch_configs:
        results = apply_config_patches(ctx, target, [m.name for m in installed])
        failed = [name for name, ok in results.items() if not ok]
        if failed:
            ctx.warn(f"Config patch verification failed for: {', '.join(failed)}")

    if mode is not InstallMode.FRESH:
        framework.backup_framework("_Backup_Updated")

    ctx.log("Done." if not ctx.dry_run else "Dry run complete, nothing was changed.")
    return target

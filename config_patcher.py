"""
Fixed settings for two third-party plugin configs.

BepInEx config files are INI-like text (``Key = value`` lines under
``[Section]`` headers).  Only the settings listed here are touched; the rest
of each file is left exactly as the plugin wrote it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from install_context import ExecutionContext, InstallTarget

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettingPatch:
    key: str
    value: str

    def _key_pattern(self) -> str:
        return rf"^([ \t]*{re.escape(self.key)}[ \t]*=[ \t]*)"

    def apply(self, text: str) -> tuple[str, int]:
        pattern = re.compile(self._key_pattern() + r"[^\r\n]*(?=\r?$)", re.MULTILINE)
        return pattern.subn(lambda m: m.group(1) + self.value, text)

    def is_applied(self, text: str) -> bool:
        pattern = re.compile(
            self._key_pattern() + re.escape(self.value) + r"[ \t]*\r?$", re.MULTILINE
        )
        return pattern.search(text) is not None


@dataclass(frozen=True)
class ConfigPatch:
    mod_name: str
    filename: str
    default_template: str
    settings: tuple[SettingPatch, ...]


MORE_COMPANY_TEMPLATE = """\
## Settings file was created by plugin MoreCompany v1.8.1
## Plugin GUID: me.swipez.melonloader.morecompany

[General]

## Maximum number of players in a lobby
# Setting type: Int32
# Default value: 32
Player Count = 32

[Cosmetics]

## Show cosmetics on other players
# Setting type: Boolean
# Default value: true
Cosmetics Enabled = true
"""

LATE_COMPANY_TEMPLATE = """\
## Settings file was created by plugin LateCompany v1.0.10
## Plugin GUID: twig.latecompany

[General]

## Whether the lobby stays open to new players after the ship has landed
# Setting type: Boolean
# Default value: false
Lobby Joinable After Landing = false
"""

KNOWN_PATCHES = (
    ConfigPatch(
        mod_name="MoreCompany",
        filename="me.swipez.melonloader.morecompany.cfg",
        default_template=MORE_COMPANY_TEMPLATE,
        settings=(SettingPatch("Player Count", "16"),),
    ),
    ConfigPatch(
        mod_name="LateCompany",
        filename="twig.latecompany.cfg",
        default_template=LATE_COMPANY_TEMPLATE,
        settings=(SettingPatch("Lobby Joinable After Landing", "true"),),
    ),
)


def _read_text(path: Path) -> str:
    # newline="" keeps CRLF files CRLF
    with open(path, encoding="utf-8-sig", newline="") as fh:
        return fh.read()


def _write_text(path: Path, text: str):
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write(text)


def patch_config(ctx: ExecutionContext, target: InstallTarget, patch: ConfigPatch) -> bool:
    """Apply ``patch`` and return whether every setting verified afterwards."""
    path = target.config_dir / patch.filename

    if path.exists():
        text = _read_text(path)
    else:
        if ctx.dry_run:
            ctx.log(f"[dry-run] Would create {patch.filename} from the default template")
            text = patch.default_template
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            _write_text(path, patch.default_template)
            ctx.log(f"  Created default {patch.filename}")
            text = _read_text(path)

    for setting in patch.settings:
        text, count = setting.apply(text)
        if count == 0:
            _log.warning("%s: setting %r not found", patch.filename, setting.key)

    if ctx.dry_run:
        for setting in patch.settings:
            ctx.log(f"[dry-run] Would set {setting.key} = {setting.value} in {patch.filename}")
        return all(s.is_applied(text) for s in patch.settings)

    _write_text(path, text)

    written = _read_text(path)
    ok = True
    for setting in patch.settings:
        if setting.is_applied(written):
            ctx.log(f"  {patch.filename}: {setting.key} = {setting.value}")
        else:
            ok = False
            ctx.warn(f"{patch.filename}: could not set {setting.key} to {setting.value}")
    return ok


def apply_config_patches(
    ctx: ExecutionContext,
    target: InstallTarget,
    installed_mod_names: list[str],
    patches: tuple[ConfigPatch, ...] = KNOWN_PATCHES,
) -> dict[str, bool]:
    """Patch the configs of mods installed in this run."""
    results: dict[str, bool] = {}
    names = set(installed_mod_names)
    for patch in patches:
        if patch.mod_name not in names:
            continue
        ctx.log(f"Patching {patch.filename}...")
        results[patch.filename] = patch_config(ctx, target, patch)
    return results

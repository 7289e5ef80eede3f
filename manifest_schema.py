"""
Mod manifest schema for the Lethal Company Modpack Installer.

The manifest is a single JSON document, usually served from the modpack
repository (``mods.json`` on a branch) and occasionally read from disk:

{
    "Presets": {
        "Default": ["MoreCompany", "LateCompany", "ShipLoot"],
        "Host": ["MoreCompany", "LateCompany", "ShipLoot", "BetterSprayPaint"]
    },
    "Mods": [
        {
            "Name": "MoreCompany",
            "DisplayName": "More Company",
            "Description": "Raises the lobby size.",
            "Namespace": "notnotnotswipez",
            "Type": "plugin",
            "ServerHostOnly": false,
            "ExtraIncludes": ["MoreCompanyAssets"],
            "Relocations": [
                {"Pattern": "*.lethalbundle", "Target": "MoreCompanyAssets"}
            ]
        }
    ]
}

``Type`` is ``plugin`` or ``patcher``; anything else is kept as-is and
skipped with a warning at install time.  ``Relocations`` move files that
match ``Pattern`` into ``plugins/<Target>/`` after extraction.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

import downloads
from install_context import InstallerError

MANIFEST_FILENAME = "mods.json"
DEFAULT_MANIFEST_REPO = os.environ.get("LCMI_MANIFEST_REPO", "lethal-modpack/modpack")
DEFAULT_BRANCH = "main"
DEFAULT_PRESET = "Default"

PLUGIN = "plugin"
PATCHER = "patcher"

_log = logging.getLogger(__name__)


class PresetError(InstallerError):
    """The requested preset is missing, empty or names no known mod."""


def _normalize_relpath(v: str) -> str:
    return v.replace("\\", "/").strip("/")


def _is_contained(v: str) -> bool:
    """True for a relative path that cannot climb out of its base directory."""
    return bool(v) and ":" not in v and ".." not in PurePosixPath(v).parts


class RelocationRule(BaseModel):
    """Move files matching ``pattern`` into ``plugins/<target>/``."""

    model_config = ConfigDict(populate_by_name=True)

    pattern: str = Field(alias="Pattern")
    target: str = Field(alias="Target")

    @field_validator("target")
    @classmethod
    def _check_target(cls, v: str) -> str:
        v = _normalize_relpath(v)
        if not _is_contained(v):
            raise ValueError(f"Relocation target {v!r} must be a subdirectory of plugins")
        return v

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, v: str) -> str:
        v = v.replace("\\", "/")
        if v.startswith("/") or not _is_contained(v):
            raise ValueError(f"Relocation pattern {v!r} must match files inside the package")
        return v


class ModDescriptor(BaseModel):
    """One installable package from the registry."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    display_name: str | None = Field(default=None, alias="DisplayName")
    description: str = Field(default="", alias="Description")
    namespace: str = Field(alias="Namespace")
    type: str = Field(default="unknown", alias="Type")
    server_host_only: bool = Field(default=False, alias="ServerHostOnly")
    extra_includes: list[str] = Field(default_factory=list, alias="ExtraIncludes")
    relocations: list[RelocationRule] = Field(default_factory=list, alias="Relocations")

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, v):
        if v is None:
            return "unknown"
        return str(v).strip().lower()

    @field_validator("extra_includes", "relocations", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return [] if v is None else v

    @field_validator("extra_includes")
    @classmethod
    def _normalize_includes(cls, v: list[str]) -> list[str]:
        includes = [p for p in (_normalize_relpath(x) for x in v) if p]
        for p in includes:
            if not _is_contained(p):
                raise ValueError(f"Extra include {p!r} must be a path inside the package")
        return includes

    @property
    def label(self) -> str:
        return self.display_name or self.name


class ModManifest(BaseModel):
    """Parsed contents of a mods.json manifest."""

    model_config = ConfigDict(populate_by_name=True)

    presets: dict[str, list[str]] = Field(default_factory=dict, alias="Presets")
    mods: list[ModDescriptor] = Field(default_factory=list, alias="Mods")

    @model_validator(mode="after")
    def _no_duplicate_mods(self) -> ModManifest:
        seen = set()
        for mod in self.mods:
            if mod.name in seen:
                raise ValueError(f"Duplicate mod name: {mod.name!r}")
            seen.add(mod.name)
        return self

    def get_mod(self, name: str) -> ModDescriptor | None:
        for mod in self.mods:
            if mod.name == name:
                return mod
        return None


def parse_manifest(data: bytes) -> ModManifest:
    """Parse raw JSON bytes into a ModManifest.

    Raises ``pydantic.ValidationError`` if the data is invalid.
    Raises ``json.JSONDecodeError`` if the bytes are not valid JSON.
    """
    return ModManifest.model_validate(json.loads(data))


def manifest_url(branch: str = DEFAULT_BRANCH, repo: str = DEFAULT_MANIFEST_REPO) -> str:
    return f"https://raw.githubusercontent.com/{repo}/{branch}/{MANIFEST_FILENAME}"


def load_manifest(
    branch: str | None = None,
    manifest_file: str | Path | None = None,
    repo: str = DEFAULT_MANIFEST_REPO,
) -> ModManifest:
    """Load the manifest from a local file or from ``branch`` of the modpack repo."""
    if branch and manifest_file:
        raise InstallerError("Use either a manifest branch or a manifest file, not both")

    if manifest_file is not None:
        path = Path(manifest_file)
        source = str(path)
        if not path.is_file():
            raise InstallerError(f"Manifest file not found: {path}")
        data = path.read_bytes()
    else:
        source = manifest_url(branch or DEFAULT_BRANCH, repo)
        data = downloads.fetch_bytes(source)

    try:
        return parse_manifest(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise InstallerError(f"Invalid mod manifest from {source}: {exc}") from exc


def resolve_preset(
    manifest: ModManifest,
    preset_name: str,
    server_host: bool,
    log: Optional[Callable[[str], None]] = None,
) -> list[ModDescriptor]:
    """Return the mods of ``preset_name`` in preset order.

    Server-host-only mods are dropped unless ``server_host`` is set.  Preset
    entries the manifest does not describe are reported and skipped.
    """
    names = manifest.presets.get(preset_name)
    if not names:
        known = ", ".join(sorted(manifest.presets)) or "none"
        raise PresetError(f"Preset {preset_name!r} not found or empty (available: {known})")

    found: list[ModDescriptor] = []
    for name in names:
        mod = manifest.get_mod(name)
        if mod is None:
            msg = f"Preset {preset_name!r} lists unknown mod {name!r}, skipping"
            _log.warning(msg)
            if log:
                log(f"WARNING: {msg}")
            continue
        if mod not in found:
            found.append(mod)

    if not found:
        raise PresetError(f"Preset {preset_name!r} does not name any mod in the manifest")

    if server_host:
        return found
    return [mod for mod in found if not mod.server_host_only]

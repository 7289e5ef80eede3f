"""
HTTP access and archive extraction.

Three remote services are involved in a run: the modpack manifest (raw file
on GitHub), the Thunderstore package registry and the BepInEx GitHub
release API.  Every failure here is fatal to the run, so callers get an
``InstallerError`` instead of a ``requests`` exception.
"""

from __future__ import annotations

import logging
import re
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import py7zr
import requests

from install_context import InstallerError

REGISTRY_API_URL = "https://thunderstore.io/api/experimental/package"
RELEASE_API_URL = "https://api.github.com/repos/BepInEx/BepInEx/releases/latest"
# BepInEx 5 ships "BepInEx_x64_5.4.21.0.zip" and later "BepInEx_win_x64_5.4.23.2.zip"
RELEASE_ASSET_PATTERN = r"^BepInEx_(?:win_)?x64_[\w.]+\.(?:zip|7z)$"

API_TIMEOUT = 30
DOWNLOAD_TIMEOUT = 60
CHUNK_SIZE = 8192

_log = logging.getLogger(__name__)


def fetch_bytes(url: str) -> bytes:
    try:
        response = requests.get(url, timeout=API_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise InstallerError(f"Failed to download {url}: {exc}") from exc
    return response.content


def _get_json(url: str):
    try:
        response = requests.get(
            url, headers={"Accept": "application/json"}, timeout=API_TIMEOUT
        )
        response.raise_for_status()
        return response.json()
    except requests.RequestException as exc:
        raise InstallerError(f"Request to {url} failed: {exc}") from exc
    except ValueError as exc:
        raise InstallerError(f"Response from {url} is not JSON: {exc}") from exc


def get_package_download_url(namespace: str, name: str) -> str:
    """Resolve ``namespace/name`` to the archive URL of its latest version."""
    url = f"{REGISTRY_API_URL}/{namespace}/{name}/"
    data = _get_json(url)
    latest = data.get("latest") if isinstance(data, dict) else None
    download_url = latest.get("download_url") if isinstance(latest, dict) else None
    if not download_url:
        raise InstallerError(f"No download URL found for package {namespace}/{name}")
    _log.debug("Resolved %s/%s -> %s", namespace, name, download_url)
    return download_url


def fetch_latest_release_asset(
    api_url: str = RELEASE_API_URL, pattern: str = RELEASE_ASSET_PATTERN
) -> tuple[str, str]:
    """Return ``(download_url, asset_name)`` of the first matching release asset."""
    data = _get_json(api_url)
    tag = data.get("tag_name", "?") if isinstance(data, dict) else "?"
    assets = data.get("assets", []) if isinstance(data, dict) else []
    for asset in assets:
        asset_name = asset.get("name", "")
        download_url = asset.get("browser_download_url")
        if download_url and re.search(pattern, asset_name):
            _log.info("Found release asset %s in %s", asset_name, tag)
            return download_url, asset_name
    raise InstallerError(f"No release asset matching {pattern!r} found in release {tag}")


def download_file(url: str, dest: Path) -> Path:
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
            response.raise_for_status()
            with open(dest, "wb") as fh:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
    except requests.RequestException as exc:
        raise InstallerError(f"Download of {url} failed: {exc}") from exc
    _log.debug("Downloaded %s (%d bytes)", dest.name, dest.stat().st_size)
    return dest


def extract_archive(filepath: Path, dest: Path) -> Path:
    filepath = Path(filepath)
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    ext = filepath.suffix.lower()

    if ext == ".zip":
        with zipfile.ZipFile(filepath, "r") as zf:
            zf.extractall(dest)
    elif ext == ".7z":
        with py7zr.SevenZipFile(filepath, "r") as sz:
            sz.extractall(dest)
    else:
        raise ValueError(f"Unsupported archive format: {ext}")
    return dest


@contextmanager
def downloaded_archive(url: str, filename: str) -> Iterator[Path]:
    """Download and extract ``url``; yield the extracted root.

    The temporary directory is removed when the block exits, whether or not
    it raised.
    """
    with tempfile.TemporaryDirectory(prefix="lcmi-") as tmpdir:
        tmppath = Path(tmpdir)
        archive = download_file(url, tmppath / filename)
        try:
            extracted = extract_archive(archive, tmppath / "extracted")
        except (zipfile.BadZipFile, py7zr.Bad7zFile, ValueError) as exc:
            raise InstallerError(f"Could not extract {filename}: {exc}") from exc
        yield extracted

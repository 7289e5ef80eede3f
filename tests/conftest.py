"""
Shared fixtures and helpers for the Lethal Company Modpack Installer test suite.
"""

import shutil
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from install_context import ExecutionContext, InstallTarget

EXECUTABLE_NAME = "Lethal Company.exe"


def make_zip(path: Path, members: dict) -> Path:
    """Write a zip at ``path`` with {archive_path: content} entries."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


def make_framework(target: InstallTarget):
    """Lay down a minimal existing BepInEx install with one plugin and a config."""
    for d in (target.core_dir, target.config_dir, target.plugins_dir, target.patchers_dir):
        d.mkdir(parents=True, exist_ok=True)
    (target.core_dir / "BepInEx.dll").write_bytes(b"old core")
    (target.plugins_dir / "Old.dll").write_bytes(b"old plugin")
    (target.patchers_dir / "OldPatcher.dll").write_bytes(b"old patcher")
    target.framework_config.write_text("[Logging]\nEnabled = true\n", encoding="utf-8")
    (target.config_dir / "custom.cfg").write_text("hand edited\n", encoding="utf-8")
    target.log_file.write_text("old log\n", encoding="utf-8")
    target.loader_dll.write_bytes(b"old loader")
    target.loader_config.write_text("[General]\nenabled = true\n", encoding="utf-8")


@pytest.fixture
def target(tmp_path):
    """A game directory containing only the executable."""
    game_dir = tmp_path / "Lethal Company"
    game_dir.mkdir()
    (game_dir / EXECUTABLE_NAME).write_bytes(b"exe")
    return InstallTarget.from_game_dir(game_dir, EXECUTABLE_NAME)


@pytest.fixture
def messages():
    return []


@pytest.fixture
def ctx(messages):
    return ExecutionContext(mock_game=True, launch_wait=0.05, log_callback=messages.append)


@pytest.fixture
def fake_downloads(tmp_path):
    """Serve downloads from local zips.

    Register archives with ``fake_downloads[url] = path``; anything else
    raises KeyError, which fails the test loudly.
    """
    served: dict[str, Path] = {}

    def fake_download(url, dest):
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(served[url], dest)
        return dest

    with patch("downloads.download_file", side_effect=fake_download):
        yield served


@pytest.fixture
def release_zip(tmp_path):
    """A BepInEx release archive laid out like the real one."""
    return make_zip(
        tmp_path / "dl" / "BepInEx_win_x64_5.4.23.2.zip",
        {
            "BepInEx/core/BepInEx.dll": b"new core",
            "BepInEx/core/0Harmony.dll": b"harmony",
            "winhttp.dll": b"new loader",
            "doorstop_config.ini": "[General]\nenabled = true\n",
            ".doorstop_version": "4.3.0",
            "changelog.txt": "changes",
        },
    )


@pytest.fixture
def mock_release(fake_downloads, release_zip):
    url = "https://example.invalid/BepInEx_win_x64_5.4.23.2.zip"
    fake_downloads[url] = release_zip
    with patch(
        "framework_installer.fetch_latest_release_asset",
        return_value=(url, release_zip.name),
    ) as m:
        yield m

from __future__ import annotations

import glob
import logging
import sys
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)

_BROWSER_ORDER = ("safari", "chrome", "firefox", "brave")

# (browser, os) -> glob pattern relative to the home directory
DEFAULT_PROFILES = MappingProxyType(
    {
        ("chrome", "linux"): ".config/google-chrome/*/History",
        ("chrome", "macos"): "Library/Application Support/Google/Chrome/*/History",
        ("chrome", "windows"): "AppData/Local/Google/Chrome/User Data/*/History",
        ("firefox", "linux"): ".mozilla/firefox/*/places.sqlite",
        ("firefox", "macos"): "Library/Application Support/Firefox/Profiles/*/places.sqlite",
        ("firefox", "windows"): "AppData/Roaming/Mozilla/Firefox/Profiles/*/places.sqlite",
        ("safari", "macos"): "Library/Safari/History.db",
        ("brave", "linux"): ".config/BraveSoftware/Brave-Browser/*/History",
        ("brave", "macos"): "Library/Application Support/BraveSoftware/Brave-Browser/*/History",
        ("brave", "windows"): "AppData/Local/BraveSoftware/Brave-Browser/*/History",
    }
)


def current_os() -> str:
    if sys.platform.startswith("darwin"):
        return "macos"
    if sys.platform.startswith(("win32", "cygwin")):
        return "windows"
    return "linux"


def detect_history_files(home: Path | None = None, os_type: str | None = None) -> list[str]:
    base = home if home is not None else Path.home()
    os_name = os_type or current_os()

    files: list[str] = []
    for browser in _BROWSER_ORDER:
        pattern = DEFAULT_PROFILES.get((browser, os_name))
        if pattern is None:
            continue
        full_pattern = str(Path(glob.escape(str(base))) / pattern)
        logger.debug("find %s in %s-%s...", full_pattern, browser, os_name)
        files.extend(sorted(glob.glob(full_pattern)))
    return files

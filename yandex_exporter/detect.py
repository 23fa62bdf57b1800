"""Locate an installed Chromium-family browser and a default profile directory."""

import os
import shutil
import sys
from pathlib import Path

PATH_NAMES = ("chrome", "chromium", "chromium-browser", "google-chrome")


def _under(base: str, *parts: str) -> str | None:
    return os.path.join(base, *parts) if base else None


def _windows_candidates() -> list[str]:
    local = os.getenv("LOCALAPPDATA", "")
    pf = os.getenv("ProgramFiles", "")
    pf86 = os.getenv("ProgramFiles(x86)", "")
    candidates = [
        # Chrome > Chromium > Edge > Vivaldi > Opera > Brave
        _under(pf, "Google", "Chrome", "Application", "chrome.exe"),
        _under(pf86, "Google", "Chrome", "Application", "chrome.exe"),
        _under(local, "Google", "Chrome", "Application", "chrome.exe"),
        _under(pf, "Chromium", "Application", "chrome.exe"),
        _under(pf86, "Chromium", "Application", "chrome.exe"),
        _under(local, "Chromium", "Application", "chrome.exe"),
        _under(pf, "Microsoft", "Edge", "Application", "msedge.exe"),
        _under(pf86, "Microsoft", "Edge", "Application", "msedge.exe"),
        _under(local, "Vivaldi", "Application", "vivaldi.exe"),
        _under(pf, "Vivaldi", "Application", "vivaldi.exe"),
        _under(local, "Programs", "Opera", "opera.exe"),
        _under(pf, "Opera", "opera.exe"),
        _under(pf, "BraveSoftware", "Brave-Browser", "Application", "brave.exe"),
        _under(local, "BraveSoftware", "Brave-Browser", "Application", "brave.exe"),
    ]
    # entries whose base variable is unset are dropped
    return [p for p in candidates if p is not None]


def _macos_candidates() -> list[str]:
    home = str(Path.home())
    return [
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        f"{home}/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
        f"{home}/Applications/Chromium.app/Contents/MacOS/Chromium",
        "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
        "/Applications/Vivaldi.app/Contents/MacOS/Vivaldi",
        "/Applications/Opera.app/Contents/MacOS/Opera",
        "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser",
    ]


def _linux_candidates() -> list[str]:
    return [
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/var/lib/flatpak/exports/bin/com.google.Chrome",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/snap/bin/chromium",
        "/var/lib/flatpak/exports/bin/org.chromium.Chromium",
        "/usr/bin/microsoft-edge-stable",
        "/usr/bin/microsoft-edge",
        "/usr/bin/vivaldi",
        "/usr/bin/vivaldi-stable",
        "/usr/bin/opera",
        "/usr/bin/brave-browser",
        "/opt/brave.com/brave/brave-browser",
    ]


def candidates(platform: str | None = None) -> list[str]:
    platform = platform or sys.platform
    if platform.startswith("win"):
        return _windows_candidates()
    if platform == "darwin":
        return _macos_candidates()
    return _linux_candidates()


def detect_browser(platform: str | None = None) -> str:
    """Return the first installed browser in priority order, or "" if none.

    Falls back to a PATH lookup when no well-known location exists.
    """
    for path in candidates(platform):
        if not path:
            continue
        expanded = os.path.expandvars(path)
        if os.path.isfile(expanded):
            return expanded
    for name in PATH_NAMES:
        found = shutil.which(name)
        if found:
            return found
    return ""


def default_profile_path(platform: str | None = None) -> str:
    platform = platform or sys.platform
    home = Path.home()
    if platform.startswith("win"):
        # dedicated profile, avoids clashing with the user's main browser
        return str(home / ".yandex-exporter-profile")
    if platform == "darwin":
        return str(home / "Library" / "Application Support" / "yandex-exporter-profile")
    snap = home / "snap" / "chromium" / "common" / "chromium"
    if snap.exists():
        return str(snap)
    return str(home / ".config" / "chromium")

"""Settings: .env values with safe defaults, overridable from the command line."""

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from .detect import default_profile_path

PHOTOS_URL = "https://disk.yandex.com/client/photo"

# Scan band: skip the fixed toolbar on top and a margin at the bottom.
SCAN_BAND_TOP = 80
SCAN_BAND_BOTTOM_MARGIN = 50
SCROLL_STEP = 600
SCROLL_MARGIN = 30
CHECKBOX_TOLERANCE = 40
# a handled group left in the band after a short scroll sits within this of its line
HANDLED_TOLERANCE = 5
TOOLBAR_HEIGHT = 150

MAX_EMPTY_ROUNDS = 5
MAX_CONSECUTIVE_ERRORS = 3
DESELECT_ATTEMPTS = 3


def env_str(key: str, default: str) -> str:
    return os.getenv(key, default)


def env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except Exception:
        return default


def env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except Exception:
        return default


def env_bool(key: str, default: bool) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class Timings:
    """Settle delays (seconds) after each kind of interaction.

    The page renders asynchronously; reads that depend on a previous
    write must come after these waits.
    """

    navigate: float = 5.0
    hover: float = 2.0
    after_select: float = 0.5
    before_action: float = 1.5
    after_action: float = 4.0
    after_deselect: float = 1.0
    after_clear: float = 1.0
    empty_scroll: float = 3.0
    after_advance: float = 1.0
    error_pause: float = 1.0

    @classmethod
    def from_env(cls) -> "Timings":
        d = cls()
        return cls(
            navigate=env_float("NAVIGATE_DELAY_SEC", d.navigate),
            hover=env_float("HOVER_DELAY_SEC", d.hover),
            after_select=env_float("SELECT_DELAY_SEC", d.after_select),
            before_action=env_float("BEFORE_ACTION_DELAY_SEC", d.before_action),
            after_action=env_float("AFTER_ACTION_DELAY_SEC", d.after_action),
            after_deselect=env_float("DESELECT_DELAY_SEC", d.after_deselect),
            after_clear=env_float("CLEAR_DELAY_SEC", d.after_clear),
            empty_scroll=env_float("EMPTY_SCROLL_DELAY_SEC", d.empty_scroll),
            after_advance=env_float("ADVANCE_DELAY_SEC", d.after_advance),
            error_pause=env_float("ERROR_PAUSE_SEC", d.error_pause),
        )

    @classmethod
    def instant(cls) -> "Timings":
        return cls(**{name: 0.0 for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class Settings:
    exec_path: str = ""
    profile_dir: str = ""
    download_dir: str = ""
    batch_size: int = 10
    date_from: str = ""
    date_to: str = ""
    cdp_url: str = ""
    url: str = PHOTOS_URL
    window_width: int = 1920
    window_height: int = 1080
    session_timeout: float = 2 * 60 * 60
    login_poll_interval: float = 10.0
    login_timeout: float = 5 * 60
    apply_unlimited_filter: bool = True
    dry_run: bool = False
    keep_open: bool = False
    human_cursor: bool = True
    killswitch_file: str = "STOP_NOW"
    log_file: str = "export.log"
    timings: Timings = field(default_factory=Timings)


def expand_path(path: str) -> str:
    if not path:
        return path
    return str(Path(os.path.expandvars(path)).expanduser())


def default_download_dir() -> str:
    return str(Path.home() / "Downloads")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yandex-exporter",
        description="Download Yandex Disk photos one date group at a time.",
    )
    parser.add_argument("--exec", dest="exec_path", help="Browser executable (auto-detected when empty)")
    parser.add_argument("--profile", dest="profile_dir", help="Browser profile directory")
    parser.add_argument("--download", dest="download_dir", help="Directory to save downloads")
    parser.add_argument("--batch", dest="batch_size", type=int, help="Number of dates per batch (logging only)")
    parser.add_argument("--from", dest="date_from", help="First date to download, YYYY-MM-DD")
    parser.add_argument("--to", dest="date_to", help="Last date to download, YYYY-MM-DD")
    parser.add_argument("--cdp-url", dest="cdp_url", help="Attach to a running Chrome instead of launching one")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", default=None,
                        help="Select and deselect dates but never click Download")
    parser.add_argument("--keep-open", dest="keep_open", action="store_true", default=None,
                        help="Keep the browser open after the run until it is closed or Ctrl+C")
    parser.add_argument("--no-filter", dest="apply_unlimited_filter", action="store_false", default=None,
                        help="Do not apply the 'From unlimited storage' filter")
    return parser


def load_settings(argv: list[str] | None = None) -> Settings:
    load_dotenv(find_dotenv(usecwd=True))
    args = build_parser().parse_args(argv)

    def pick(name, env_value):
        value = getattr(args, name)
        return env_value if value is None else value

    download = pick("download_dir", env_str("DOWNLOAD_DIR", "")) or default_download_dir()
    profile = pick("profile_dir", env_str("PROFILE_DIR", "")) or default_profile_path()
    return Settings(
        exec_path=expand_path(pick("exec_path", env_str("BROWSER_EXEC", ""))),
        profile_dir=expand_path(profile),
        download_dir=expand_path(download),
        batch_size=max(1, pick("batch_size", env_int("BATCH_SIZE", 10))),
        date_from=pick("date_from", env_str("DATE_FROM", "")),
        date_to=pick("date_to", env_str("DATE_TO", "")),
        cdp_url=pick("cdp_url", env_str("CDP_URL", "")),
        url=env_str("PHOTOS_URL", PHOTOS_URL),
        window_width=env_int("WINDOW_WIDTH", 1920),
        window_height=env_int("WINDOW_HEIGHT", 1080),
        session_timeout=env_float("SESSION_TIMEOUT_SEC", 2 * 60 * 60),
        login_poll_interval=env_float("LOGIN_POLL_SEC", 10.0),
        login_timeout=env_float("LOGIN_TIMEOUT_SEC", 5 * 60),
        apply_unlimited_filter=pick("apply_unlimited_filter", env_bool("APPLY_UNLIMITED_FILTER", True)),
        dry_run=pick("dry_run", env_bool("DRY_RUN", False)),
        keep_open=pick("keep_open", env_bool("KEEP_OPEN", False)),
        human_cursor=env_bool("HUMAN_CURSOR", True),
        killswitch_file=env_str("KILLSWITCH_FILE", "STOP_NOW"),
        log_file=env_str("LOG_FILE", "export.log"),
        timings=Timings.from_env(),
    )

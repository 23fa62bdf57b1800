"""Console output: timestamped lines on a rich Console, mirrored to a log file."""

import time
from pathlib import Path

from rich.console import Console


class RunLog:
    """Callable logger, ``log("message", style="green")``.

    Each line gets a timestamp, is printed through ``rich`` and, when a
    log file is configured, appended to it without markup.
    """

    def __init__(self, console: Console | None = None, log_file: str | None = None) -> None:
        self.console = console or Console()
        self.log_file = Path(log_file) if log_file else None

    def __call__(self, msg: str, style: str | None = None) -> None:
        ts = time.strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{ts}] {msg}"
        if style:
            self.console.print(line, style=style, markup=False, highlight=False)
        else:
            self.console.print(line, markup=False, highlight=False)
        if self.log_file is not None:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")

"""Run bookkeeping: failure records, the event stream and the final report."""

import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

MAX_ERRORS_SHOWN = 5


class EventKind(Enum):
    PROCESSED = "processed"
    ACTION_FAILED = "action_failed"
    SKIPPED = "skipped"
    EMPTY_ROUND = "empty_round"
    PARSE_FAILURE = "parse_failure"
    STEP_ERROR = "step_error"
    BATCH = "batch"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    label: str = ""
    detail: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class FailureRecord:
    timestamp: datetime
    context_label: str
    message: str


@dataclass(frozen=True)
class RunReport:
    """Read-only snapshot handed over once the traversal has ended."""

    terminal: str
    processed: int
    skipped: int
    failed: int
    failures: tuple
    events: tuple
    duration: float
    total_size: int = 0
    download_dir: str = ""

    @property
    def parse_failures(self) -> int:
        return sum(1 for e in self.events if e.kind is EventKind.PARSE_FAILURE)

    @property
    def completed(self) -> bool:
        return self.terminal != "FATAL_ABORT"


class ReportAggregator:
    def __init__(self, download_dir: str = "", clock: Callable[[], float] = time.monotonic) -> None:
        self.download_dir = download_dir
        self._clock = clock
        self._started = clock()
        self.failures: List[FailureRecord] = []
        self.events: List[Event] = []
        self._listeners: List[Callable[[Event], None]] = []

    def subscribe(self, listener: Callable[[Event], None]) -> None:
        self._listeners.append(listener)

    def emit(self, kind: EventKind, label: str = "", detail: str = "") -> Event:
        event = Event(kind, label, detail)
        self.events.append(event)
        for listener in self._listeners:
            listener(event)
        return event

    def record_failure(self, context_label: str, message: str) -> FailureRecord:
        record = FailureRecord(datetime.now(), context_label, message)
        self.failures.append(record)
        return record

    def finish(self, terminal: str, processed: int, skipped: int, failed: int) -> RunReport:
        return RunReport(
            terminal=terminal,
            processed=processed,
            skipped=skipped,
            failed=failed,
            failures=tuple(self.failures),
            events=tuple(self.events),
            duration=self._clock() - self._started,
            total_size=dir_size(self.download_dir) if self.download_dir else 0,
            download_dir=self.download_dir,
        )


def dir_size(directory: str) -> int:
    total = 0
    for root, _dirs, files in os.walk(directory):
        for name in files:
            try:
                total += (Path(root) / name).stat().st_size
            except OSError:
                continue
    return total


def format_bytes(n: int) -> str:
    kb, mb, gb = 1024, 1024 ** 2, 1024 ** 3
    if n >= gb:
        return f"{n / gb:.2f} GB"
    if n >= mb:
        return f"{n / mb:.2f} MB"
    if n >= kb:
        return f"{n / kb:.2f} KB"
    return f"{n} bytes"


def format_duration(seconds: float) -> str:
    s = int(round(seconds))
    h, rem = divmod(s, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}h {m}m {s}s"
    if m:
        return f"{m}m {s}s"
    return f"{s}s"


def summary(report: RunReport) -> str:
    return (
        f"{report.processed + report.failed} dates processed, {report.processed} downloads "
        f"({report.failed} failed), {report.skipped} skipped, {len(report.failures)} errors "
        f"in {format_duration(report.duration)}"
    )


def error_lines(report: RunReport, limit: int = MAX_ERRORS_SHOWN) -> List[str]:
    lines = []
    for rec in report.failures[:limit]:
        text = f"- {rec.message}"
        if rec.context_label:
            text += f" ({rec.context_label})"
        lines.append(text)
    if len(report.failures) > limit:
        lines.append(f"... and {len(report.failures) - limit} more errors")
    return lines


def render(report: RunReport, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="📊 FINAL REPORT", show_header=False, title_style="bold", border_style="cyan")
    table.add_column(style="bold")
    table.add_column()
    table.add_row("⏱️  Duration", format_duration(report.duration))
    table.add_row("🏁 Finished", Text(report.terminal.replace("_", " ").lower()))
    table.add_row("📅 Dates processed", str(report.processed + report.failed))
    downloads = f"{report.processed} started"
    if report.failed:
        downloads += f", {report.failed} failed"
    table.add_row("⬇️  Downloads", downloads, style="yellow" if report.failed else "green")
    if report.total_size > 0:
        table.add_row("💾 Total size", format_bytes(report.total_size))
    if report.skipped:
        table.add_row("⏭️  Skipped", f"{report.skipped} (out of date range)", style="yellow")
    if report.parse_failures:
        table.add_row("❔ Unparsed labels", f"{report.parse_failures} (processed anyway)", style="yellow")
    if report.failures:
        table.add_row(f"❌ Errors ({len(report.failures)})", Text("\n".join(error_lines(report))), style="red")
    else:
        table.add_row("✅ No errors occurred", "", style="green")
    console.print()
    console.print(table)
    console.print(summary(report), style="dim", markup=False, highlight=False)

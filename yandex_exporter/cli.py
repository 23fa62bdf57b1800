"""
Yandex Photo Exporter

Downloads every date group from the Yandex Disk "Photos" page, one group
at a time, optionally limited to a date range.

Steps to use:
  1) Put your settings in .env (or pass flags, see --help).
  2) Run: yandex-exporter --from 2024-01-01 --to 2024-06-30
  3) Log in to Yandex in the browser window if asked.

Create the STOP_NOW file next to the script to stop the run promptly.
"""

import asyncio
import sys
from pathlib import Path
from typing import Callable

from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn

from .auth import await_sign_in, check_signed_in
from .browser import BrowserSession
from .config import Settings, load_settings
from .console import RunLog
from .cursor import ScrollCursor
from .datefilter import DateRange
from .download import DownloadControl
from .engine import TraversalEngine, TraversalOutcome
from .faults import ConfigurationError, FatalFault, LoginTimeout, TransientFault
from .filters import apply_unlimited_storage_filter
from .report import Event, EventKind, ReportAggregator, render
from .scope import ControlScope
from .selection import SelectionController

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _progress_listener(progress: Progress, task: TaskID) -> Callable[[Event], None]:
    counts = {"processed": 0, "skipped": 0, "failed": 0}

    def on_event(event: Event) -> None:
        if event.kind is EventKind.PROCESSED:
            counts["processed"] += 1
        elif event.kind is EventKind.SKIPPED:
            counts["skipped"] += 1
        elif event.kind is EventKind.ACTION_FAILED:
            counts["failed"] += 1
        else:
            return
        detail = f"ok:{counts['processed']} skip:{counts['skipped']} fail:{counts['failed']} last:{escape(event.label)}"
        progress.update(task, advance=1, detail=detail)

    return on_event


async def prepare_page(session: BrowserSession, settings: Settings, log: RunLog) -> None:
    """Open the photos page, route downloads, make sure we are signed in, filter the view."""
    log("Opening Yandex Disk Photos...")
    await session.navigate(settings.url, settle=settings.timings.navigate)

    try:
        await session.configure_downloads(settings.download_dir)
        log(f"✓ Downloads will be saved to: {settings.download_dir}", style="green")
    except TransientFault as e:
        log(f"⚠️ Warning: could not configure download directory: {e}", style="yellow")

    try:
        signed_in = await check_signed_in(session, log)
    except TransientFault as e:
        log(f"Warning: could not check login status: {e}", style="yellow")
        signed_in = False
    if not signed_in:
        await await_sign_in(session, log, settings.login_poll_interval, settings.login_timeout)
        try:
            await session.navigate(settings.url, settle=settings.timings.navigate)
        except TransientFault as e:
            log(f"Warning: could not navigate after login: {e}", style="yellow")
    log("✓ User is logged in", style="green")

    if settings.apply_unlimited_filter:
        try:
            await apply_unlimited_storage_filter(session, log)
        except TransientFault as e:
            log(f"⚠️ Warning: could not apply filter: {e}", style="yellow")


async def run_export(settings: Settings, date_range: DateRange, log: RunLog) -> int:
    scope = ControlScope(timeout=settings.session_timeout, killswitch_file=settings.killswitch_file)
    try:
        session = await BrowserSession.open(settings, scope, log)
    except Exception as e:
        log(f"Could not start the browser: {e}", style="bold red")
        return EXIT_FAILED

    async with session:
        try:
            await prepare_page(session, settings, log)
        except LoginTimeout as e:
            log(f"Login timeout: {e}", style="bold red")
            return EXIT_FAILED
        except FatalFault as e:
            log(f"Browser session ended during startup: {e}", style="bold red")
            return EXIT_FAILED

        report = ReportAggregator(download_dir=settings.download_dir)
        progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold green]Export[/bold green]"),
            BarColumn(bar_width=None),
            TextColumn("{task.completed} dates"),
            TimeElapsedColumn(),
            TextColumn("•"),
            TextColumn("{task.fields[detail]}"),
            console=log.console,
        )
        task = progress.add_task("run", total=None, detail="starting...")
        report.subscribe(_progress_listener(progress, task))

        timings = settings.timings
        controller = SelectionController(DownloadControl(settings.dry_run, log), timings=timings, log=log)
        engine = TraversalEngine(
            session,
            controller,
            date_range=date_range,
            cursor=ScrollCursor(log=log),
            report=report,
            timings=timings,
            log=log,
            batch_size=settings.batch_size,
        )

        async def on_complete(outcome: TraversalOutcome) -> None:
            progress.stop()
            render(outcome.report, log.console)
            if outcome.completed and settings.keep_open:
                log("Browser remains open. Close it or press Ctrl+C to exit.", style="cyan")
                await session.wait_closed()

        progress.start()
        try:
            outcome = await engine.run(on_complete=on_complete)
        finally:
            progress.stop()
        return EXIT_OK if outcome.completed else EXIT_FAILED


async def main(argv: list[str] | None = None) -> int:
    settings = load_settings(argv)
    log = RunLog(log_file=settings.log_file)
    log("=== Yandex Photo Exporter START ===", style="bold cyan")

    try:
        date_range = DateRange.from_strings(settings.date_from, settings.date_to)
    except ConfigurationError as e:
        log(f"Configuration error: {e}", style="bold red")
        return EXIT_CONFIG

    try:
        Path(settings.download_dir).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        log(f"Error creating download directory: {e}", style="bold red")
        return EXIT_CONFIG

    log(f"Executable: {settings.exec_path or '(auto-detect)'}", style="cyan")
    log(f"Profile: {settings.profile_dir}", style="cyan")
    log(f"Download: {settings.download_dir}", style="cyan")
    log(f"Batch: {settings.batch_size} dates at a time", style="cyan")
    log(f"Date range: {date_range}; DRY_RUN={settings.dry_run}", style="cyan")

    code = EXIT_FAILED
    try:
        code = await run_export(settings, date_range, log)
    except asyncio.CancelledError:
        log("Cancelled, exiting.")
    except KeyboardInterrupt:
        log("KeyboardInterrupt, exiting.")
    except Exception as e:
        log(f"Fatal error: {e}", style="bold red")
    log("=== FINISHED ===")
    return code


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = EXIT_FAILED
    sys.exit(code)


if __name__ == "__main__":
    run()

"""The traversal loop.

Always take the topmost date group in the scan band, decide what to do
with it, then scroll it out of the band. Scrolling only ever goes down,
so a group that has been handled cannot come back.

Known limitation: stopping at the first date before the range assumes
the page lists dates newest first. Pinned or re-sorted groups could make
the run stop before in-range dates further down.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from .config import MAX_CONSECUTIVE_ERRORS, MAX_EMPTY_ROUNDS, Timings
from .cursor import ScrollCursor
from .datefilter import DateRange, Placement
from .faults import FatalFault, LabelParseError, TransientFault
from .locator import Group, GroupLocator
from .report import EventKind, ReportAggregator, RunReport
from .selection import SelectionController

if TYPE_CHECKING:
    from .browser import BrowserSession


class Terminal(Enum):
    EXHAUSTED = "EXHAUSTED"
    RANGE_STOPPED = "RANGE_STOPPED"
    FATAL_ABORT = "FATAL_ABORT"


@dataclass
class TraversalState:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    consecutive_empty_rounds: int = 0
    consecutive_errors: int = 0


@dataclass(frozen=True)
class TraversalOutcome:
    terminal: Terminal
    state: TraversalState
    report: RunReport
    reason: str = ""

    @property
    def completed(self) -> bool:
        return self.terminal is not Terminal.FATAL_ABORT


_FAILED = object()


class TraversalEngine:
    def __init__(
        self,
        session: "BrowserSession",
        controller: SelectionController,
        date_range: DateRange = DateRange(),
        locator: Optional[GroupLocator] = None,
        cursor: Optional[ScrollCursor] = None,
        report: Optional[ReportAggregator] = None,
        timings: Timings = Timings(),
        log: Callable[..., None] = lambda *a, **k: None,
        batch_size: int = 10,
        max_empty_rounds: int = MAX_EMPTY_ROUNDS,
        max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS,
    ) -> None:
        self.session = session
        self.controller = controller
        self.date_range = date_range
        self.locator = locator or GroupLocator()
        self.cursor = cursor or ScrollCursor(log=log)
        self.report = report or ReportAggregator()
        self.timings = timings
        self.log = log
        self.batch_size = max(1, batch_size)
        self.max_empty_rounds = max_empty_rounds
        self.max_consecutive_errors = max_consecutive_errors
        self._pending_advance: Optional[float] = None

    async def run(self, on_complete: Optional[Callable[[TraversalOutcome], Awaitable[None]]] = None) -> TraversalOutcome:
        """Traverse until a terminal state, then release the session.

        ``on_complete`` sees the outcome while the session is still open
        (it may hold the browser for the user); the session is closed
        afterwards whatever happens.
        """
        state = TraversalState()
        reason = ""
        try:
            try:
                terminal = await self._loop(state)
            except FatalFault as e:
                terminal, reason = Terminal.FATAL_ABORT, str(e)
                self.log(f"Fatal: {e}. Stopping.", style="bold red")
            except Exception as e:
                terminal, reason = Terminal.FATAL_ABORT, f"unexpected error: {e!r}"
                self.log(f"Fatal error: {e!r}", style="bold red")
            self.report.emit(EventKind.TERMINATED, detail=terminal.value)
            outcome = TraversalOutcome(
                terminal=terminal,
                state=state,
                report=self.report.finish(terminal.value, state.processed, state.skipped, state.failed),
                reason=reason,
            )
            if on_complete is not None:
                await on_complete(outcome)
            return outcome
        finally:
            await self.session.close()

    async def _loop(self, state: TraversalState) -> Terminal:
        self.log(f"Date range: {self.date_range}", style="cyan")
        while True:
            self.session.scope.check()

            if self._pending_advance is not None:
                done = await self._step(state, "scroll", lambda: self._advance(self._pending_advance))
                if done is _FAILED:
                    await self.session.settle(self.timings.error_pause)
                    continue
                await self.session.settle(self.timings.after_advance)

            self.log(f"--- Scanning for date {state.processed + state.failed + 1} ---", style="dim")
            # leftovers from the previous pass (or an earlier run) go first
            await self._step(state, "clear pending selection", lambda: self.controller.clear_pending(self.session))

            group = await self._step(
                state, "locate", lambda: self.locator.locate_next(self.session, below=self.cursor.handled_line)
            )
            if group is _FAILED:
                await self.session.settle(self.timings.error_pause)
                continue

            if group is None:
                state.consecutive_empty_rounds += 1
                self.report.emit(EventKind.EMPTY_ROUND, detail=str(state.consecutive_empty_rounds))
                self.log(f"No date found, scrolling ({state.consecutive_empty_rounds}/{self.max_empty_rounds})...")
                await self._step(state, "scroll", lambda: self.cursor.advance_default(self.session))
                await self.session.settle(self.timings.empty_scroll)
                if state.consecutive_empty_rounds >= self.max_empty_rounds:
                    self.log("End of photos!", style="cyan")
                    return Terminal.EXHAUSTED
                continue

            state.consecutive_empty_rounds = 0
            self.log(f"Found date: {group.label} (y={group.y:.0f})", style="cyan")

            placement = self._placement(group)
            if placement is Placement.BEFORE:
                self.log(f"'{group.label}' is before {self.date_range.start.isoformat()}, range exhausted.", style="cyan")
                return Terminal.RANGE_STOPPED

            if placement is Placement.AFTER:
                state.skipped += 1
                self.report.emit(EventKind.SKIPPED, group.label)
                self.log(f"Skip (after range): {group.label}", style="yellow")
            else:
                await self._process(state, group)

            self._pending_advance = group.y
            done = await self._step(state, "scroll", lambda: self._advance(group.y))
            if done is not _FAILED:
                await self.session.settle(self.timings.after_advance)

    def _placement(self, group: Group) -> Placement:
        try:
            return self.date_range.classify(group.label)
        except LabelParseError as e:
            self.report.emit(EventKind.PARSE_FAILURE, group.label, str(e))
            self.log(f"WARN: {e}; processing it anyway.", style="yellow")
            return Placement.WITHIN

    async def _process(self, state: TraversalState, group: Group) -> None:
        result = await self._step(state, group.label, lambda: self.controller.process(self.session, group))
        if result is _FAILED:
            # already recorded by _step
            state.failed += 1
            self.report.emit(EventKind.ACTION_FAILED, group.label, "step error")
            return
        if result.ok:
            state.processed += 1
            self.report.emit(EventKind.PROCESSED, group.label)
            if state.processed % self.batch_size == 0:
                self.report.emit(EventKind.BATCH, detail=str(state.processed // self.batch_size))
                self.log(f"=== Batch {state.processed // self.batch_size} done ({state.processed} dates) ===", style="bold cyan")
        else:
            state.failed += 1
            self.report.record_failure(group.label, result.detail)
            self.report.emit(EventKind.ACTION_FAILED, group.label, result.detail)

    async def _advance(self, y: float) -> None:
        await self.cursor.advance_past(self.session, y)
        self._pending_advance = None

    async def _step(self, state: TraversalState, label: str, call: Callable[[], Awaitable]):
        """Run one step; transient faults become a record and ``_FAILED``."""
        try:
            result = await call()
        except TransientFault as e:
            state.consecutive_errors += 1
            self.report.record_failure(label, str(e))
            self.report.emit(EventKind.STEP_ERROR, label, str(e))
            self.log(f"Error ({label}): {e}", style="bold red")
            if state.consecutive_errors > self.max_consecutive_errors:
                self._check_liveness(state)
            return _FAILED
        state.consecutive_errors = 0
        return result

    def _check_liveness(self, state: TraversalState) -> None:
        self.log(f"{state.consecutive_errors} consecutive errors, checking the browser...", style="yellow")
        if not self.session.is_alive():
            raise FatalFault("browser session is no longer alive", operation="liveness")
        self.log("Browser still alive, continuing.", style="dim")
        state.consecutive_errors = 0

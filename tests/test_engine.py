import asyncio
from typing import Any

from yandex_exporter.config import Timings
from yandex_exporter.cursor import ScrollCursor
from yandex_exporter.datefilter import DateRange
from yandex_exporter.engine import Terminal, TraversalEngine
from yandex_exporter.faults import FatalFault, TransientFault
from yandex_exporter.locator import FIND_LABELS_JS, Group
from yandex_exporter.report import EventKind, ReportAggregator
from yandex_exporter.scope import ControlScope
from yandex_exporter.selection import ProcessResult, ProcessStatus


class _FeedPage:
    """A photo listing: labels at fixed document positions behind a scrolling viewport."""

    def __init__(self, labels: list[str], spacing: float = 300, first: float = 200, height: float = 1000) -> None:
        self.items = [(label, first + i * spacing) for i, label in enumerate(labels)]
        self.height = height
        self.offset = 0.0
        self.scope = ControlScope()
        self.calls: list[str] = []
        self.scrolls: list[float] = []
        self.fail_scrolls: set[int] = set()
        self.max_offset = float("inf")
        self.fail_evaluates = 0
        self.alive = True
        self.liveness_checks = 0
        self.closed = 0

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append("evaluate")
        if self.fail_evaluates:
            self.fail_evaluates -= 1
            raise TransientFault("evaluate: execution context was destroyed")
        if script == FIND_LABELS_JS:
            return {
                "viewportHeight": self.height,
                "candidates": [
                    {"text": label, "x": 100, "top": y - self.offset - 10, "y": y - self.offset, "width": 120}
                    for label, y in self.items
                ],
            }
        return False

    async def scroll_by(self, dy: float) -> float:
        self.calls.append("scroll")
        n = len(self.scrolls)
        self.scrolls.append(dy)
        if n in self.fail_scrolls:
            raise TransientFault("scroll: evaluation failed")
        moved = min(dy, self.max_offset - self.offset)
        self.offset += moved
        return moved

    async def settle(self, seconds: float) -> None:
        self.scope.check()

    def is_alive(self) -> bool:
        self.liveness_checks += 1
        return self.alive

    async def close(self) -> None:
        self.calls.append("close")
        self.closed += 1


class _Controller:
    """Records processed groups; selection checks go through the page like the real one."""

    def __init__(self, fail_at: int | None = None, fatal_at: int | None = None) -> None:
        self.seen: list[Group] = []
        self.fail_at = fail_at
        self.fatal_at = fatal_at

    async def clear_pending(self, session) -> bool:
        return bool(await session.evaluate("selection"))

    async def process(self, session, group: Group) -> ProcessResult:
        session.calls.append("process")
        n = len(self.seen)
        self.seen.append(group)
        if n == self.fatal_at:
            raise FatalFault("evaluate: Target page, context or browser has been closed")
        if n == self.fail_at:
            return ProcessResult(ProcessStatus.ACTION_FAILED, "download control not found")
        return ProcessResult(ProcessStatus.STARTED)


def _engine(page: _FeedPage, controller: _Controller, date_range: DateRange = DateRange(), **kw) -> TraversalEngine:
    return TraversalEngine(
        page,
        controller,
        date_range=date_range,
        cursor=ScrollCursor(),
        report=ReportAggregator(),
        timings=Timings.instant(),
        **kw,
    )


LABELS = ["20 June 2024", "19 June 2024", "18 June 2024", "17 June 2024", "16 June 2024", "15 June 2024"]


def test_every_group_processed_exactly_once_then_exhausted() -> None:
    page = _FeedPage(LABELS)
    controller = _Controller()
    outcome = asyncio.run(_engine(page, controller).run())

    assert outcome.terminal is Terminal.EXHAUSTED
    assert outcome.completed
    assert [g.label for g in controller.seen] == LABELS
    assert len({g.label for g in controller.seen}) == len(LABELS)
    assert outcome.state.processed == len(LABELS)
    assert outcome.report.processed == len(LABELS)


def test_scroll_offset_only_grows() -> None:
    page = _FeedPage(LABELS)
    asyncio.run(_engine(page, _Controller()).run())
    assert page.scrolls
    assert all(dy > 0 for dy in page.scrolls)


def test_exhaustion_stops_all_surface_calls() -> None:
    page = _FeedPage(["1 May 2024"])
    outcome = asyncio.run(_engine(page, _Controller()).run())

    assert outcome.terminal is Terminal.EXHAUSTED
    assert outcome.state.consecutive_empty_rounds == 5
    assert page.scrolls[1:] == [600] * 5
    assert page.calls[-2:] == ["scroll", "close"]
    assert page.closed == 1


def test_range_stop_without_scrolling_past_the_older_date() -> None:
    page = _FeedPage(["5 June 2024", "1 June 2024", "25 May 2024"])
    controller = _Controller()
    june = DateRange.from_strings("2024-06-01", "2024-06-30")
    outcome = asyncio.run(_engine(page, controller, june).run())

    assert outcome.terminal is Terminal.RANGE_STOPPED
    assert outcome.completed
    assert outcome.state.processed == 2
    assert [g.label for g in controller.seen] == ["5 June 2024", "1 June 2024"]
    assert len(page.scrolls) == 2
    assert page.calls[-1] == "close"


def test_dates_after_range_are_skipped() -> None:
    page = _FeedPage(["3 July 2024", "2 July 2024", "30 June 2024"])
    controller = _Controller()
    june = DateRange.from_strings("2024-06-01", "2024-06-30")
    outcome = asyncio.run(_engine(page, controller, june).run())

    assert outcome.state.skipped == 2
    assert outcome.state.processed == 1
    assert [g.label for g in controller.seen] == ["30 June 2024"]
    assert outcome.terminal is Terminal.EXHAUSTED


def test_failed_action_is_counted_and_not_retried() -> None:
    page = _FeedPage(LABELS[:3])
    controller = _Controller(fail_at=1)
    outcome = asyncio.run(_engine(page, controller).run())

    assert [g.label for g in controller.seen] == LABELS[:3]
    assert outcome.state.processed == 2
    assert outcome.state.failed == 1
    assert outcome.report.failures[0].context_label == LABELS[1]
    assert outcome.report.failures[0].message == "download control not found"


def test_fatal_fault_halts_with_counters_so_far() -> None:
    page = _FeedPage(LABELS)
    controller = _Controller(fatal_at=2)
    seen_before_close = []

    async def on_complete(outcome) -> None:
        seen_before_close.append(page.closed)

    outcome = asyncio.run(_engine(page, controller).run(on_complete=on_complete))

    assert outcome.terminal is Terminal.FATAL_ABORT
    assert not outcome.completed
    assert "browser has been closed" in outcome.reason
    assert outcome.report.processed == 2
    assert outcome.state.failed == 0
    assert page.calls[-2:] == ["process", "close"]
    assert seen_before_close == [0]
    assert page.closed == 1


def test_unparseable_label_is_processed_and_recorded() -> None:
    page = _FeedPage(["31 February 2024", "10 June 2024"])
    controller = _Controller()
    june = DateRange.from_strings("2024-06-01", "2024-06-30")
    outcome = asyncio.run(_engine(page, controller, june).run())

    assert [g.label for g in controller.seen] == ["31 February 2024", "10 June 2024"]
    assert outcome.report.parse_failures == 1
    parse_events = [e for e in outcome.report.events if e.kind is EventKind.PARSE_FAILURE]
    assert parse_events[0].label == "31 February 2024"


def test_failed_scroll_is_retried_before_scanning_again() -> None:
    page = _FeedPage(LABELS[:3])
    page.fail_scrolls = {0}
    controller = _Controller()
    outcome = asyncio.run(_engine(page, controller).run())

    assert [g.label for g in controller.seen] == LABELS[:3]
    assert outcome.state.processed == 3
    assert page.scrolls[0] == page.scrolls[1]


def test_repeated_errors_on_a_dead_session_abort() -> None:
    page = _FeedPage(LABELS)
    page.fail_evaluates = 100
    page.alive = False
    outcome = asyncio.run(_engine(page, _Controller()).run())

    assert outcome.terminal is Terminal.FATAL_ABORT
    assert page.liveness_checks == 1
    assert len(outcome.report.failures) == 4
    assert page.closed == 1


def test_repeated_errors_on_a_live_session_continue() -> None:
    page = _FeedPage(LABELS[:2])
    page.fail_evaluates = 5
    controller = _Controller()
    outcome = asyncio.run(_engine(page, controller).run())

    assert page.liveness_checks == 1
    assert outcome.terminal is Terminal.EXHAUSTED
    assert [g.label for g in controller.seen] == LABELS[:2]


def test_stop_request_aborts_at_top_of_loop() -> None:
    page = _FeedPage(LABELS)
    page.scope.request_stop("stop requested")
    controller = _Controller()
    outcome = asyncio.run(_engine(page, controller).run())

    assert outcome.terminal is Terminal.FATAL_ABORT
    assert controller.seen == []
    assert page.calls == ["close"]


def test_batch_events_follow_batch_size() -> None:
    page = _FeedPage(LABELS)
    outcome = asyncio.run(_engine(page, _Controller(), batch_size=2).run())
    batches = [e for e in outcome.report.events if e.kind is EventKind.BATCH]
    assert [e.detail for e in batches] == ["1", "2", "3"]


def test_bottom_of_page_never_reoffers_a_handled_group() -> None:
    page = _FeedPage(["3 June 2024", "2 June 2024", "1 June 2024"])
    page.max_offset = 300
    controller = _Controller()
    outcome = asyncio.run(_engine(page, controller).run())

    assert [g.label for g in controller.seen] == ["3 June 2024", "2 June 2024", "1 June 2024"]
    assert outcome.terminal is Terminal.EXHAUSTED
    assert outcome.state.processed == 3
    assert page.offset == 300


def test_page_that_cannot_scroll_at_all_ends_after_empty_rounds() -> None:
    page = _FeedPage(["3 June 2024", "2 June 2024"])
    page.max_offset = 0
    controller = _Controller()
    outcome = asyncio.run(_engine(page, controller).run())

    assert [g.label for g in controller.seen] == ["3 June 2024", "2 June 2024"]
    assert outcome.terminal is Terminal.EXHAUSTED
    assert outcome.state.consecutive_empty_rounds == 5

import asyncio
from pathlib import Path
from typing import Any

import pytest

from yandex_exporter.browser import SCROLL_BY_JS, BrowserSession, generate_curved_path
from yandex_exporter.faults import FatalFault, TransientFault
from yandex_exporter.scope import ControlScope


class _Mouse:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def move(self, x: float, y: float) -> None:
        self.calls.append(("move", x, y))

    async def click(self, x: float, y: float) -> None:
        self.calls.append(("click", x, y))


class _Keyboard:
    def __init__(self) -> None:
        self.pressed: list[str] = []

    async def press(self, key: str) -> None:
        self.pressed.append(key)


class _Page:
    """Just enough of a Playwright page; ``error`` is raised from evaluate."""

    viewport_size = {"width": 1200, "height": 800}

    def __init__(self, result: Any = None, error: BaseException | None = None) -> None:
        self.result = result
        self.error = error
        self.url = "about:blank"
        self.evaluated: list[tuple] = []
        self.handlers: dict = {}
        self.closed = False
        self.mouse = _Mouse()
        self.keyboard = _Keyboard()

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append((script, arg))
        if self.error is not None:
            raise self.error
        return self.result

    async def goto(self, url: str, **kw) -> None:
        self.url = url

    def is_closed(self) -> bool:
        return self.closed

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler


class _Context:
    browser = None

    def __init__(self) -> None:
        self.closed = 0

    async def close(self) -> None:
        self.closed += 1


class _Playwright:
    def __init__(self) -> None:
        self.stopped = 0

    async def stop(self) -> None:
        self.stopped += 1


class _Download:
    def __init__(self, name: str, payload: bytes = b"zip") -> None:
        self.suggested_filename = name
        self.payload = payload

    async def save_as(self, path: Path) -> None:
        Path(path).write_bytes(self.payload)


def _session(page: _Page, scope: ControlScope | None = None, attached: bool = False):
    context, pw = _Context(), _Playwright()
    session = BrowserSession(
        pw, context, page, scope or ControlScope(), lambda *a, **k: None,
        attached=attached, human_cursor=False,
    )
    return session, context, pw


def test_stopped_scope_blocks_the_call() -> None:
    page = _Page(result=1)
    scope = ControlScope()
    session, _, _ = _session(page, scope)
    scope.request_stop("stop requested by user")

    with pytest.raises(FatalFault, match="stop requested by user"):
        asyncio.run(session.evaluate("() => 1"))
    assert page.evaluated == []


def test_killswitch_blocks_the_call(tmp_path) -> None:
    switch = tmp_path / "STOP_NOW"
    page = _Page(result=1)
    session, _, _ = _session(page, ControlScope(killswitch_file=str(switch)))
    assert asyncio.run(session.evaluate("() => 1")) == 1

    switch.write_text("")
    with pytest.raises(FatalFault, match="killswitch"):
        asyncio.run(session.evaluate("() => 1"))
    assert len(page.evaluated) == 1


def test_driver_errors_are_wrapped_with_the_operation() -> None:
    session, _, _ = _session(_Page(error=Exception("Timeout 30000ms exceeded.\n=== logs ===")))
    with pytest.raises(TransientFault) as info:
        asyncio.run(session.evaluate("() => 1"))
    assert str(info.value) == "evaluate: Timeout 30000ms exceeded."
    assert info.value.operation == "evaluate"
    assert isinstance(info.value.__cause__, Exception)


def test_lost_browser_is_fatal() -> None:
    session, _, _ = _session(_Page(error=Exception("Target page, context or browser has been closed")))
    with pytest.raises(FatalFault, match="^evaluate: "):
        asyncio.run(session.evaluate("() => 1"))


def test_cancellation_becomes_fatal() -> None:
    session, _, _ = _session(_Page(error=asyncio.CancelledError()))
    with pytest.raises(FatalFault, match="cancelled"):
        asyncio.run(session.evaluate("() => 1"))


def test_scroll_reports_actual_movement() -> None:
    page = _Page(result=120)
    session, _, _ = _session(page)
    assert asyncio.run(session.scroll_by(600)) == 120.0
    assert page.evaluated == [(SCROLL_BY_JS, 600)]

    page.result = None
    assert asyncio.run(session.scroll_by(600)) == 0.0


def test_plain_mouse_input() -> None:
    page = _Page()
    session, _, _ = _session(page)

    async def go() -> None:
        await session.mouse_move(90, 300)
        await session.mouse_click(90, 300)
        await session.press_key("Escape")

    asyncio.run(go())
    assert page.mouse.calls == [("move", 90, 300), ("click", 90, 300)]
    assert page.keyboard.pressed == ["Escape"]


def test_curved_path_ends_on_target() -> None:
    path = generate_curved_path(0, 0, 400, 250, steps=12)
    assert len(path) == 13
    assert path[-1] == (400, 250)


def test_close_is_idempotent_and_ends_the_session() -> None:
    page = _Page(result=1)
    session, context, pw = _session(page)

    async def go() -> None:
        await session.close()
        await session.close()

    asyncio.run(go())
    assert context.closed == 1
    assert pw.stopped == 1
    assert not session.is_alive()
    with pytest.raises(FatalFault, match="already closed"):
        asyncio.run(session.evaluate("() => 1"))
    assert page.evaluated == []


def test_close_leaves_an_attached_browser_running() -> None:
    session, context, pw = _session(_Page(), attached=True)
    asyncio.run(session.close())
    assert context.closed == 0
    assert pw.stopped == 1


def test_closed_page_is_not_alive() -> None:
    page = _Page()
    session, _, _ = _session(page)
    assert session.is_alive()
    page.closed = True
    assert not session.is_alive()


def test_downloads_keep_their_names_and_are_awaited_on_close(tmp_path) -> None:
    page = _Page()
    session, _, _ = _session(page)

    async def go() -> None:
        await session.configure_downloads(str(tmp_path))
        page.handlers["download"](_Download("photos.zip", b"first"))
        page.handlers["download"](_Download("photos.zip", b"second"))
        await session.close()

    asyncio.run(go())
    assert (tmp_path / "photos.zip").read_bytes() == b"first"
    assert (tmp_path / "photos (1).zip").read_bytes() == b"second"
    assert [p.name for p in session.saved_downloads] == ["photos.zip", "photos (1).zip"]
    # launched browsers route downloads through Playwright only
    assert page.evaluated == []

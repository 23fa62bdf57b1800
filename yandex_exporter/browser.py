"""The live browser session every component talks to.

``BrowserSession`` wraps a Playwright page. All calls go through one
guard that checks the control scope first and turns driver errors into
``TransientFault`` / ``FatalFault``; nothing above this module sees a raw
Playwright exception.
"""

import asyncio
import math
import random
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from playwright.async_api import BrowserContext, CDPSession, Download, Page, Playwright, async_playwright

from .config import Settings
from .detect import detect_browser
from .faults import FatalFault, as_fault
from .scope import ControlScope

LAUNCH_ARGS = ["--no-sandbox", "--disable-dev-shm-usage"]

# the page stops short at the bottom of the listing
SCROLL_BY_JS = """
(dy) => {
    const before = window.scrollY;
    window.scrollBy({ top: dy, behavior: "instant" });
    return window.scrollY - before;
}
"""


# -------------------- HUMAN-LIKE CURSOR --------------------

def _bezier(points: List[Tuple[float, float]], t: float) -> Tuple[float, float]:
    pts = points[:]
    while len(pts) > 1:
        nxt: list[Tuple[float, float]] = []
        for i in range(len(pts) - 1):
            x = pts[i][0] + (pts[i + 1][0] - pts[i][0]) * t
            y = pts[i][1] + (pts[i + 1][1] - pts[i][1]) * t
            nxt.append((x, y))
        pts = nxt
    return pts[0]


def generate_curved_path(x0: float, y0: float, x1: float, y1: float, steps: int = 20) -> List[Tuple[float, float]]:
    """Eased quadratic curve from (x0, y0) to (x1, y1) with a little jitter.

    The last point is exactly the target so hover-only controls line up.
    """
    mx = (x0 + x1) / 2 + (random.random() - 0.5) * 80
    my = (y0 + y1) / 2 + (random.random() - 0.5) * 40
    path: List[Tuple[float, float]] = []
    for i in range(steps + 1):
        t = i / steps
        tt = 0.5 - 0.5 * math.cos(math.pi * t)
        x, y = _bezier([(x0, y0), (mx, my), (x1, y1)], tt)
        jitter_scale = (1 - abs(2 * t - 1))
        x += (random.random() - 0.5) * 3 * jitter_scale
        y += (random.random() - 0.5) * 3 * jitter_scale
        path.append((x, y))
    path[-1] = (x1, y1)
    return path


# -------------------- SESSION --------------------

class BrowserSession:
    def __init__(
        self,
        pw: Playwright,
        context: BrowserContext,
        page: Page,
        scope: ControlScope,
        log: Callable[..., None],
        *,
        attached: bool = False,
        human_cursor: bool = True,
        download_wait: float = 600.0,
    ) -> None:
        self._pw = pw
        self._context = context
        self.page = page
        self.scope = scope
        self.log = log
        self.attached = attached
        self.human_cursor = human_cursor
        self.download_wait = download_wait
        self._cdp: Optional[CDPSession] = None
        self._closed = False
        self._download_dir: Optional[Path] = None
        self._pending_saves: set[asyncio.Task] = set()
        self.saved_downloads: list[Path] = []
        vp = page.viewport_size or {"width": 1200, "height": 800}
        self._mouse = (vp["width"] / 2, vp["height"] / 2)

    @classmethod
    async def open(cls, settings: Settings, scope: ControlScope, log: Callable[..., None]) -> "BrowserSession":
        """Launch (or attach to) the browser and return a ready session."""
        pw = await async_playwright().start()
        try:
            if settings.cdp_url:
                browser = await pw.chromium.connect_over_cdp(settings.cdp_url)
                context = browser.contexts[0] if browser.contexts else await browser.new_context()
                attached = True
            else:
                exec_path = settings.exec_path or detect_browser()
                if exec_path:
                    log(f"Browser executable: {exec_path}")
                else:
                    log("No installed browser found, using Playwright's bundled Chromium.", style="yellow")
                context = await pw.chromium.launch_persistent_context(
                    user_data_dir=settings.profile_dir,
                    executable_path=exec_path or None,
                    headless=False,
                    viewport={"width": settings.window_width, "height": settings.window_height},
                    accept_downloads=True,
                    downloads_path=settings.download_dir or None,
                    args=LAUNCH_ARGS,
                )
                attached = False
            page = context.pages[0] if context.pages else await context.new_page()
        except Exception:
            await pw.stop()
            raise
        session = cls(pw, context, page, scope, log, attached=attached, human_cursor=settings.human_cursor)
        try:
            session._cdp = await context.new_cdp_session(page)
        except Exception as e:
            log(f"CDP session unavailable, using plain mouse input: {e}", style="yellow")
        return session

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _guard(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        if self._closed:
            raise FatalFault("session already closed", operation=operation)
        self.scope.check()
        try:
            return await call()
        except asyncio.CancelledError as e:
            raise FatalFault(f"{operation}: cancelled", operation=operation) from e
        except Exception as e:
            raise as_fault(e, operation) from e

    # -- navigation --------------------------------------------------

    async def navigate(self, url: str, settle: float = 0.0) -> None:
        await self._guard("navigate", lambda: self.page.goto(url, wait_until="domcontentloaded", timeout=60000))
        await self.settle(settle)

    async def current_url(self) -> str:
        async def read() -> str:
            return self.page.url

        return await self._guard("current_url", read)

    # -- reading -----------------------------------------------------

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._guard("evaluate", lambda: self.page.evaluate(script, arg))

    async def wait_visible(self, selector: str, timeout_ms: int = 5000) -> None:
        await self._guard(
            f"wait_visible {selector}",
            lambda: self.page.wait_for_selector(selector, state="visible", timeout=timeout_ms),
        )

    # -- input -------------------------------------------------------

    async def click(self, selector: str, timeout_ms: int = 5000) -> None:
        await self._guard(f"click {selector}", lambda: self.page.click(selector, timeout=timeout_ms))

    async def mouse_move(self, x: float, y: float) -> None:
        async def move() -> None:
            if self.human_cursor and self._cdp is not None:
                x0, y0 = self._mouse
                for px, py in generate_curved_path(x0, y0, x, y, steps=random.randint(14, 24)):
                    await self._cdp.send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": px, "y": py})
                    await asyncio.sleep(random.uniform(0.008, 0.02))
            else:
                await self.page.mouse.move(x, y)
            self._mouse = (x, y)

        await self._guard("mouse_move", move)

    async def mouse_click(self, x: float, y: float) -> None:
        async def click() -> None:
            await self.page.mouse.click(x, y)
            self._mouse = (x, y)

        await self._guard("mouse_click", click)

    async def press_key(self, key: str) -> None:
        await self._guard(f"press {key}", lambda: self.page.keyboard.press(key))

    async def scroll_by(self, dy: float) -> float:
        """Scroll down by ``dy``; returns how far the page really moved."""
        moved = await self._guard("scroll", lambda: self.page.evaluate(SCROLL_BY_JS, dy))
        return float(moved or 0.0)

    async def settle(self, seconds: float) -> None:
        """Wait for the page to catch up; the scope is honoured on both sides."""
        self.scope.check()
        if seconds > 0:
            try:
                await asyncio.sleep(seconds)
            except asyncio.CancelledError as e:
                raise FatalFault("settle: cancelled", operation="settle") from e
            self.scope.check()

    # -- downloads ---------------------------------------------------

    async def configure_downloads(self, directory: str) -> None:
        """Save every download under ``directory`` with its suggested name."""
        self._download_dir = Path(directory)
        self.page.on("download", self._on_download)
        if self.attached and self._cdp is not None:
            # attached browsers keep their own download handling
            await self._guard(
                "set_download_behavior",
                lambda: self._cdp.send(
                    "Browser.setDownloadBehavior",
                    {"behavior": "allow", "downloadPath": directory, "eventsEnabled": True},
                ),
            )

    def _on_download(self, download: Download) -> None:
        task = asyncio.ensure_future(self._save_download(download))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save_download(self, download: Download) -> None:
        if self._download_dir is None:
            return
        target = self._download_dir / download.suggested_filename
        n = 1
        while target.exists():
            target = self._download_dir / f"{Path(download.suggested_filename).stem} ({n}){Path(download.suggested_filename).suffix}"
            n += 1
        try:
            await download.save_as(target)
            self.saved_downloads.append(target)
            self.log(f"Saved download: {target.name}", style="green")
        except Exception as e:
            self.log(f"Download failed ({download.suggested_filename}): {e}", style="bold red")

    # -- lifecycle ---------------------------------------------------

    def is_alive(self) -> bool:
        if self._closed:
            return False
        try:
            if self.page.is_closed():
                return False
            browser = self._context.browser
            return browser is None or browser.is_connected()
        except Exception:
            return False

    async def wait_closed(self, poll: float = 1.0) -> None:
        while self.is_alive():
            await asyncio.sleep(poll)

    async def close(self) -> None:
        """Release the browser. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._pending_saves:
            self.log(f"Waiting for {len(self._pending_saves)} download(s) to finish...", style="dim")
            await asyncio.wait(set(self._pending_saves), timeout=self.download_wait)
        try:
            if self._cdp is not None:
                await self._cdp.detach()
        except Exception:
            pass
        try:
            if not self.attached:
                await self._context.close()
        except Exception as e:
            self.log(f"Error closing browser: {e}", style="yellow")
        try:
            # an attached browser stays open; only the Playwright client stops
            await self._pw.stop()
        except Exception:
            pass

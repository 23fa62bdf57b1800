"""Forward-only scrolling."""

from typing import TYPE_CHECKING, Callable, Optional

from .config import SCAN_BAND_TOP, SCROLL_MARGIN, SCROLL_STEP

if TYPE_CHECKING:
    from .browser import BrowserSession


class ScrollCursor:
    """Moves the viewport down and never up.

    ``offset`` is the total distance the page actually scrolled during
    the session; it only grows. That is what keeps an already handled
    group from showing up in the scan band again.

    At the bottom of the page a scroll can stop short and leave the
    handled group inside the band. ``handled_line`` then holds its
    viewport position so the locator can skip it; the line follows any
    later movement and is dropped once it has left the band.
    """

    def __init__(
        self,
        band_top: float = SCAN_BAND_TOP,
        margin: float = SCROLL_MARGIN,
        step: float = SCROLL_STEP,
        log: Callable[..., None] | None = None,
    ) -> None:
        self.band_top = band_top
        self.margin = margin
        self.step = step
        self.log = log
        self.offset = 0.0
        self.handled_line: Optional[float] = None

    def distance_past(self, y: float) -> float:
        # lands y at band_top - margin, strictly above the band
        return max(1.0, y - self.band_top + self.margin)

    async def _scroll(self, session: "BrowserSession", delta: float) -> float:
        moved = max(0.0, float(await session.scroll_by(delta) or 0.0))
        self.offset += moved
        if self.handled_line is not None:
            self.handled_line -= moved
            if self.handled_line < self.band_top:
                self.handled_line = None
        return moved

    async def advance_past(self, session: "BrowserSession", y: float) -> float:
        """Scroll ``y`` out of the band; returns the distance actually moved."""
        delta = self.distance_past(y)
        moved = await self._scroll(session, delta)
        if moved < delta:
            line = y - moved
            self.handled_line = line if self.handled_line is None else max(self.handled_line, line)
            if self.log:
                self.log(f"Page stopped after {moved:.0f}px of {delta:.0f}px; y={line:.0f} stays marked as handled", style="dim")
        elif self.log:
            self.log(f"Scrolled {delta:.0f}px to move y={y:.0f} off the scan band", style="dim")
        return moved

    async def advance_default(self, session: "BrowserSession") -> float:
        return await self._scroll(session, self.step)

"""Find the topmost date group rendered inside the scan band."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Optional

from .config import HANDLED_TOLERANCE, SCAN_BAND_BOTTOM_MARGIN, SCAN_BAND_TOP
from .datefilter import MONTHS

if TYPE_CHECKING:
    from .browser import BrowserSession

_MONTH_ALTERNATION = "|".join(MONTHS)

# Collects every element whose whole text is a date label, with its geometry.
FIND_LABELS_JS = """
(monthAlternation) => {
    const pattern = new RegExp('^\\\\d{1,2}\\\\s+(' + monthAlternation + ')(\\\\s+\\\\d{4})?$', 'i');
    const found = [];
    for (const el of document.querySelectorAll('*')) {
        const text = (el.textContent || '').replace(/\\u00a0/g, ' ').trim();
        if (!pattern.test(text)) continue;
        const rect = el.getBoundingClientRect();
        found.push({
            text: text,
            x: rect.left,
            top: rect.top,
            y: rect.top + rect.height / 2,
            width: rect.width,
        });
    }
    return { viewportHeight: window.innerHeight, candidates: found };
}
"""


@dataclass(frozen=True)
class Group:
    """One date group as rendered right now.

    Only valid for the scan that produced it; positions change after any
    scroll.
    """

    label: str
    y: float
    x: float = 0.0


@dataclass(frozen=True)
class ScanBand:
    top: float = SCAN_BAND_TOP
    bottom_margin: float = SCAN_BAND_BOTTOM_MARGIN

    def contains(self, top: float, viewport_height: float) -> bool:
        return self.top <= top < viewport_height - self.bottom_margin


def pick_topmost(
    candidates: Iterable[dict],
    viewport_height: float,
    band: ScanBand = ScanBand(),
    below: Optional[float] = None,
) -> Optional[Group]:
    """Topmost in-band candidate; ties keep document order (stable sort).

    ``below`` is the viewport line of a group that was handled but could
    not be scrolled out of the band; it and everything above it is skipped.
    """
    eligible = [
        c for c in candidates
        if (c.get("width") or 0) > 0 and band.contains(float(c.get("top", -1)), viewport_height)
    ]
    if below is not None:
        eligible = [c for c in eligible if float(c["y"]) > below + HANDLED_TOLERANCE]
    if not eligible:
        return None
    first = sorted(eligible, key=lambda c: float(c["y"]))[0]
    return Group(label=str(first["text"]).strip(), y=float(first["y"]), x=float(first.get("x") or 0.0))


class GroupLocator:
    def __init__(self, band: ScanBand = ScanBand()) -> None:
        self.band = band

    async def locate_next(self, session: "BrowserSession", below: Optional[float] = None) -> Optional[Group]:
        result: Any = await session.evaluate(FIND_LABELS_JS, _MONTH_ALTERNATION)
        if not result:
            return None
        candidates = result.get("candidates") or []
        return pick_topmost(candidates, float(result.get("viewportHeight") or 0), self.band, below=below)

"""Select a date group, trigger the action, deselect.

Selecting and deselecting each go through an ordered ladder of
strategies; a rung that cannot act (or whose effect is not confirmed)
hands over to the next one. The controller never scrolls.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Protocol, Sequence

from .config import CHECKBOX_TOLERANCE, DESELECT_ATTEMPTS, TOOLBAR_HEIGHT, Timings
from .faults import RetryPolicy, TransientFault
from .locator import Group

if TYPE_CHECKING:
    from .browser import BrowserSession

SELECTION_ACTIVE_JS = """
() => {
    const bar = document.querySelector('[class*="selection"], [class*="toolbar"]');
    if (bar && /\\d+\\s*(file|файл|item)/i.test(bar.textContent || '')) return true;
    if (document.querySelectorAll('input[type="checkbox"]:checked').length > 0) return true;
    return document.querySelectorAll('[class*="checkbox"][class*="checked"]').length > 0;
}
"""

CLICK_CHECKBOX_NEAR_JS = """
({targetY, tolerance}) => {
    const boxes = document.querySelectorAll('input[type="checkbox"], [class*="checkbox"], [class*="Checkbox"]');
    for (const cb of boxes) {
        const rect = cb.getBoundingClientRect();
        if (Math.abs(rect.top + rect.height / 2 - targetY) < tolerance) {
            if (!cb.checked && !cb.classList.contains('checked')) {
                cb.click();
                return true;
            }
        }
    }
    return false;
}
"""

CLICK_AT_POINT_JS = """
({x, y}) => {
    for (const el of document.elementsFromPoint(x, y)) {
        const cls = typeof el.className === 'string' ? el.className : '';
        if (el.tagName === 'INPUT' || cls.includes('checkbox') || cls.includes('Checkbox')
                || el.getAttribute('role') === 'checkbox') {
            el.click();
            return true;
        }
    }
    return false;
}
"""

FIND_CLOSE_CONTROL_JS = """
(toolbarHeight) => {
    const selectors = [
        'button[aria-label*="close" i]',
        'button[aria-label*="deselect" i]',
        '[class*="close"]',
        '[class*="Close"]',
        'svg[class*="close"]',
        'button:has(svg)',
    ];
    const center = (rect, info) => ({
        found: true, x: rect.left + rect.width / 2, y: rect.top + rect.height / 2, info: info,
    });
    for (const selector of selectors) {
        for (const el of document.querySelectorAll(selector)) {
            const rect = el.getBoundingClientRect();
            if (rect.top >= toolbarHeight || rect.width <= 0 || rect.height <= 0) continue;
            const text = (el.textContent || '').trim();
            const label = (el.getAttribute('aria-label') || '').toLowerCase();
            if (text === '×' || text === 'X' || text === '' || label.includes('close') || label.includes('deselect')) {
                return center(rect, label || text || 'button');
            }
        }
    }
    for (const btn of document.querySelectorAll('button, [role="button"]')) {
        const rect = btn.getBoundingClientRect();
        if (rect.top < 100 && rect.right > window.innerWidth - 200) {
            const text = (btn.textContent || '').trim();
            if (text === '×' || text === 'X' || text.length <= 2) return center(rect, 'corner-button');
        }
    }
    return { found: false };
}
"""


class ProcessStatus(Enum):
    STARTED = "started"
    ACTION_FAILED = "action_failed"


@dataclass(frozen=True)
class ProcessResult:
    status: ProcessStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ProcessStatus.STARTED


class ActionTrigger(Protocol):
    name: str

    async def trigger(self, session: "BrowserSession") -> bool: ...


@dataclass(frozen=True)
class Strategy:
    """One rung of a ladder. ``run`` returns True when it acted."""

    name: str
    run: Callable[..., Awaitable[bool]]


def hover_x(group: Group) -> float:
    return max(group.x - 30, 10)


async def _checkbox_near(session: "BrowserSession", group: Group) -> bool:
    return bool(await session.evaluate(CLICK_CHECKBOX_NEAR_JS, {"targetY": group.y, "tolerance": CHECKBOX_TOLERANCE}))


async def _element_at_point(session: "BrowserSession", group: Group) -> bool:
    return bool(await session.evaluate(CLICK_AT_POINT_JS, {"x": hover_x(group), "y": group.y}))


async def _direct_click(session: "BrowserSession", group: Group) -> bool:
    await session.mouse_click(hover_x(group), group.y)
    return True


async def _close_control(session: "BrowserSession") -> bool:
    info = await session.evaluate(FIND_CLOSE_CONTROL_JS, TOOLBAR_HEIGHT)
    if not info or not info.get("found"):
        return False
    await session.mouse_click(float(info["x"]), float(info["y"]))
    return True


async def _escape_key(session: "BrowserSession") -> bool:
    await session.press_key("Escape")
    return True


SELECT_LADDER: Sequence[Strategy] = (
    Strategy("checkbox near row", _checkbox_near),
    Strategy("checkbox under pointer", _element_at_point),
    Strategy("direct click", _direct_click),
)

DESELECT_LADDER: Sequence[Strategy] = (
    Strategy("close control", _close_control),
    Strategy("escape key", _escape_key),
)


class SelectionController:
    def __init__(
        self,
        action: ActionTrigger,
        timings: Timings = Timings(),
        log: Callable[..., None] = lambda *a, **k: None,
        select_ladder: Sequence[Strategy] = SELECT_LADDER,
        deselect_ladder: Sequence[Strategy] = DESELECT_LADDER,
        deselect_policy: RetryPolicy | None = None,
    ) -> None:
        self.action = action
        self.timings = timings
        self.log = log
        self.select_ladder = select_ladder
        self.deselect_ladder = deselect_ladder
        self.deselect_policy = deselect_policy or RetryPolicy(DESELECT_ATTEMPTS, backoff=0.0)

    async def has_active_selection(self, session: "BrowserSession") -> bool:
        return bool(await session.evaluate(SELECTION_ACTIVE_JS))

    async def process(self, session: "BrowserSession", group: Group) -> ProcessResult:
        """Select ``group``, trigger the action and deselect again.

        Transient problems end up in the result; fatal faults propagate.
        """
        t = self.timings
        try:
            await session.mouse_move(hover_x(group), group.y)
        except TransientFault as e:
            self.log(f"Could not move pointer to '{group.label}': {e}", style="yellow")
        await session.settle(t.hover)

        rung = await self._select(session, group)
        if rung is None:
            return ProcessResult(ProcessStatus.ACTION_FAILED, f"could not select '{group.label}'")
        self.log(f"✓ Date '{group.label}' selected ({rung})", style="green")

        await session.settle(t.before_action)
        try:
            triggered = await self.action.trigger(session)
            detail = "" if triggered else f"{self.action.name} control not found"
        except TransientFault as e:
            triggered, detail = False, f"{self.action.name} failed: {e}"
        if triggered:
            self.log(f"✓ {self.action.name.capitalize()} started", style="green")
            await session.settle(t.after_action)
        else:
            self.log(f"{detail} for '{group.label}'", style="bold red")

        await self.deselect(session)
        if triggered:
            return ProcessResult(ProcessStatus.STARTED)
        return ProcessResult(ProcessStatus.ACTION_FAILED, detail)

    async def _select(self, session: "BrowserSession", group: Group) -> str | None:
        for strategy in self.select_ladder:
            try:
                acted = await strategy.run(session, group)
            except TransientFault as e:
                self.log(f"Select via {strategy.name} failed: {e}", style="yellow")
                continue
            if not acted:
                continue
            await session.settle(self.timings.after_select)
            try:
                if await self.has_active_selection(session):
                    return strategy.name
            except TransientFault as e:
                self.log(f"Could not verify selection: {e}", style="yellow")
            self.log(f"Select via {strategy.name} not confirmed", style="dim")
        return None

    async def _deselect_once(self, session: "BrowserSession") -> bool:
        for strategy in self.deselect_ladder:
            try:
                if await strategy.run(session):
                    break
            except TransientFault as e:
                self.log(f"Deselect via {strategy.name} failed: {e}", style="yellow")
        await session.settle(self.timings.after_deselect)
        return not await self.has_active_selection(session)

    async def deselect(self, session: "BrowserSession") -> bool:
        async def attempt(n: int) -> bool:
            if n > 1:
                self.log("⚠️ Selection still active, trying again...", style="yellow")
            return await self._deselect_once(session)

        done = await self.deselect_policy.run(attempt, label="Deselect", log=self.log, sleep=session.settle)
        if done:
            self.log("✓ Deselected", style="dim")
        else:
            self.log("WARN: selection still active after deselect attempts; will clear on the next pass.", style="yellow")
        return done

    async def clear_pending(self, session: "BrowserSession") -> bool:
        """Clear a selection left over from an earlier pass. Returns True if one was found."""
        if not await self.has_active_selection(session):
            return False
        self.log("⚠️ Pending selection detected, clearing...", style="yellow")
        await self.deselect(session)
        await session.settle(self.timings.after_clear)
        return True

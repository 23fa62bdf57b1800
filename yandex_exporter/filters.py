"""The "From unlimited storage" view filter on the photos page."""

from typing import TYPE_CHECKING, Callable

from .faults import TransientFault

if TYPE_CHECKING:
    from .browser import BrowserSession

MENU_BUTTON = 'button.Select2-Button[aria-label^="Show:"]'
MENU_BUTTON_ALT = 'button[role="listbox"].Select2-Button'
OPTION_XPATH = 'xpath=//div[@role="option"][contains(., "unlimited storage")]'

CLICK_OPTION_JS = """
() => {
    for (const item of document.querySelectorAll('.Menu-Item[role="option"]')) {
        if (/unlimited storage/i.test(item.textContent || '')) {
            item.click();
            return true;
        }
    }
    return false;
}
"""


async def _open_menu(session: "BrowserSession") -> str:
    for selector in (MENU_BUTTON, MENU_BUTTON_ALT):
        try:
            await session.wait_visible(selector)
            await session.click(selector)
            return selector
        except TransientFault:
            continue
    raise TransientFault("could not click filter menu button", operation="filter")


async def apply_unlimited_storage_filter(session: "BrowserSession", log: Callable[..., None]) -> None:
    """Switch the listing to photos from unlimited storage.

    Raises TransientFault when a control is missing; callers treat that
    as a warning.
    """
    log("Applying filter: From unlimited storage...")
    await session.settle(2.0)

    menu = await _open_menu(session)
    log("✓ Filter menu opened", style="dim")
    await session.settle(0.5)

    if not await session.evaluate(CLICK_OPTION_JS):
        try:
            await session.click(OPTION_XPATH)
        except TransientFault as e:
            raise TransientFault(f"could not find 'From unlimited storage' option ({e})", operation="filter") from e
    log("✓ 'From unlimited storage' filter selected", style="dim")
    await session.settle(0.3)

    try:
        await session.click(menu)
    except TransientFault:
        await session.evaluate("() => document.body.click()")
    await session.settle(2.0)
    log("✓ Filter applied", style="green")

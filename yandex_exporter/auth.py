"""Sign-in detection and the wait for a manual login."""

import time
from typing import TYPE_CHECKING, Callable

from .faults import LoginTimeout, TransientFault

if TYPE_CHECKING:
    from .browser import BrowserSession

LOGIN_URL_TOKENS = ("passport", "auth")

LOGIN_PAGE_JS = """
() => {
    const text = (document.body && document.body.innerText) || '';
    const phrases = [
        'Log in with Yandex ID', 'Войти с Яндекс ID', 'Yandex ID', 'Username or email',
        'Логин или email', 'Create ID', 'Создать ID', 'Face or fingerprint login',
    ];
    if (phrases.some(p => text.includes(p))) return true;
    const selectors = [
        'input[name="login"]', 'input[placeholder*="Username"]', 'input[placeholder*="email"]',
        'button[data-t="button:pseudo"]', '[class*="AuthLoginInputToggle"]', '[class*="Passport"]',
        '[data-t="login"]', 'form[action*="passport"]', 'form[action*="auth"]',
    ];
    return selectors.some(s => !!document.querySelector(s));
}
"""

# At least two of these mean the Disk client has rendered for a signed-in user.
DISK_MARKERS_JS = """
() => {
    const selectors = [
        '[class*="photo"]', '[class*="Photo"]', '[class*="listing"]', '[class*="Listing"]',
        '[class*="user"]', '[class*="User"]', '[class*="avatar"]', '[class*="Avatar"]',
        '[class*="sidebar"]', '[class*="Sidebar"]', '[href*="/client/"]',
    ];
    return selectors.filter(s => !!document.querySelector(s)).length;
}
"""


async def check_signed_in(session: "BrowserSession", log: Callable[..., None]) -> bool:
    url = await session.current_url()
    if any(tok in url for tok in LOGIN_URL_TOKENS):
        log(f"Login page detected (URL: {url})", style="yellow")
        return False
    if await session.evaluate(LOGIN_PAGE_JS):
        log("Login page elements detected in DOM", style="yellow")
        return False
    try:
        markers = await session.evaluate(DISK_MARKERS_JS)
    except TransientFault as e:
        # URL looked fine; the page is probably still settling
        log(f"Warning: could not verify Disk elements: {e}", style="yellow")
        return True
    if (markers or 0) >= 2:
        log("✓ Yandex Disk elements detected - user is logged in", style="green")
        return True
    log("⚠️ Could not confirm login status, page may still be loading...", style="yellow")
    return False


async def await_sign_in(
    session: "BrowserSession",
    log: Callable[..., None],
    poll_interval: float = 10.0,
    timeout: float = 300.0,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Poll until the user has signed in; raises LoginTimeout after ``timeout`` seconds."""
    log("⚠️  User is NOT logged in!", style="bold yellow")
    log("⚠️  Please log in to your Yandex account in the browser window.", style="bold yellow")
    log(f"Waiting for login (checking every {poll_interval:g}s, max {timeout:g}s)...")
    deadline = clock() + timeout
    while True:
        await session.settle(poll_interval)
        if clock() >= deadline:
            raise LoginTimeout(f"user did not log in within {timeout:g}s")
        try:
            if await check_signed_in(session, log):
                log("✓ Login detected!", style="green")
                return
        except TransientFault as e:
            log(f"Warning: login check failed: {e}", style="yellow")
            continue
        log("Still waiting for login...", style="dim")

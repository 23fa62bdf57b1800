"""The Download button in the selection toolbar."""

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .browser import BrowserSession

DOWNLOAD_TOKENS = ("Download", "Скачать")

# Returns 'clicked' / 'found' / 'not found'.
CLICK_DOWNLOAD_JS = """
({tokens, dryRun}) => {
    for (const btn of document.querySelectorAll('button, [role="button"]')) {
        const text = (btn.textContent || '').trim();
        const ariaLabel = btn.getAttribute('aria-label') || '';
        const title = btn.getAttribute('title') || '';
        const hit = tokens.some(t => text === t || ariaLabel.includes(t) || title.includes(t));
        if (hit) {
            if (dryRun) return 'found';
            btn.click();
            return 'clicked';
        }
    }
    return 'not found';
}
"""


class DownloadControl:
    """Action trigger for a selected group: find the Download control and press it."""

    name = "download"

    def __init__(self, dry_run: bool = False, log: Callable[..., None] | None = None) -> None:
        self.dry_run = dry_run
        self.log = log

    async def trigger(self, session: "BrowserSession") -> bool:
        outcome = await session.evaluate(CLICK_DOWNLOAD_JS, {"tokens": list(DOWNLOAD_TOKENS), "dryRun": self.dry_run})
        if outcome == "found" and self.log:
            self.log("[DRY_RUN] Would click Download")
        return outcome in ("clicked", "found")

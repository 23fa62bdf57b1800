"""Error taxonomy, fault classification and the bounded retry policy.

Every failure coming back from the browser is sorted into one of two
buckets: transient (retry, log, carry on) or fatal (the session is gone,
stop touching it).
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable


class ExporterError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(ExporterError):
    """Invalid settings, rejected before the browser is touched."""


class LabelParseError(ExporterError):
    """A group label does not match the date grammar."""


class LoginTimeout(ExporterError):
    """The user did not sign in within the allowed window."""


class SurfaceError(ExporterError):
    """A call against the browser page failed."""

    def __init__(self, message: str, *, operation: str = "") -> None:
        super().__init__(message)
        self.operation = operation


class TransientFault(SurfaceError):
    """Recoverable failure: element missing, script error, timeout."""


class FatalFault(SurfaceError):
    """The session has ended; no further calls may be issued."""


class Severity(Enum):
    TRANSIENT = "transient"
    FATAL = "fatal"


# Lowercase fragments seen in errors once the browser or the page is gone.
FATAL_PATTERNS = (
    "target page, context or browser has been closed",
    "browser has been closed",
    "context has been closed",
    "page has been closed",
    "target closed",
    "session closed",
    "page closed",
    "connection closed",
    "websocket closed",
    "websocket: close",
    "browser: not connected",
    "connection refused",
    "broken pipe",
    "context canceled",
    "deadline exceeded",
)

_FATAL_TYPES = (
    asyncio.CancelledError,
    ConnectionRefusedError,
    ConnectionResetError,
    BrokenPipeError,
)


def classify(error: BaseException) -> Severity:
    if isinstance(error, FatalFault):
        return Severity.FATAL
    if isinstance(error, TransientFault):
        return Severity.TRANSIENT
    if isinstance(error, _FATAL_TYPES):
        return Severity.FATAL
    msg = str(error).lower()
    if any(p in msg for p in FATAL_PATTERNS):
        return Severity.FATAL
    return Severity.TRANSIENT


def as_fault(error: BaseException, operation: str) -> SurfaceError:
    """Wrap a raw driver error into the matching fault type."""
    if isinstance(error, SurfaceError):
        return error
    text = str(error).strip().splitlines()[0] if str(error).strip() else type(error).__name__
    message = f"{operation}: {text}"
    if classify(error) is Severity.FATAL:
        return FatalFault(message, operation=operation)
    return TransientFault(message, operation=operation)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: ``max_attempts`` tries with ``backoff`` seconds between them.

    Only transient faults are retried; a fatal fault escapes on the spot.
    """

    max_attempts: int = 3
    backoff: float = 1.0

    async def run(
        self,
        attempt: Callable[[int], Awaitable[bool]],
        *,
        label: str,
        log: Callable[..., None],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> bool:
        for n in range(1, self.max_attempts + 1):
            try:
                if await attempt(n):
                    return True
            except TransientFault as e:
                log(f"{label} failed (attempt {n}/{self.max_attempts}): {e}", style="yellow")
            if n < self.max_attempts and self.backoff > 0:
                await sleep(self.backoff)
        return False

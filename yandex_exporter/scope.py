"""Control scope: session deadline plus the external stop signals."""

import time
from pathlib import Path
from typing import Callable

from .faults import FatalFault


class ControlScope:
    """Answers "may we keep going?" before every surface call.

    A run stops when its deadline passes, when the killswitch file shows
    up on disk (create it to stop promptly) or when ``request_stop`` is
    called.
    """

    def __init__(
        self,
        timeout: float | None = None,
        killswitch_file: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._deadline = clock() + timeout if timeout else None
        self._killswitch = Path(killswitch_file) if killswitch_file else None
        self._stop_reason: str | None = None

    def request_stop(self, reason: str = "stop requested") -> None:
        self._stop_reason = reason

    def killswitch_triggered(self) -> bool:
        return self._killswitch is not None and self._killswitch.exists()

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def check(self) -> None:
        if self._stop_reason:
            raise FatalFault(self._stop_reason, operation="scope")
        if self.killswitch_triggered():
            raise FatalFault(f"killswitch file {self._killswitch} detected", operation="scope")
        if self._deadline is not None and self._clock() >= self._deadline:
            raise FatalFault("session deadline exceeded", operation="scope")

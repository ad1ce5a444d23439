"""
Progress reporting and cooperative cancellation shared by sync and analysis.

Both run on the caller's thread. At each checkpoint the optional yield hook
is invoked so a host event loop can process pending events; a cancel
requested from there is observed right after the hook returns.
"""
from typing import Callable, Optional

from .exceptions import AnalysisCancelled

ProgressCallback = Callable[[int, int, str], None]  # (current, total, label)
YieldHook = Callable[[], None]


class CancelToken:
    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    def reset(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ProgressReporter:
    """Bundles the progress callback, yield hook and cancel token for one run."""

    def __init__(self,
                 progress: Optional[ProgressCallback] = None,
                 yield_hook: Optional[YieldHook] = None,
                 token: Optional[CancelToken] = None):
        self._progress = progress
        self._yield_hook = yield_hook
        self.token = token or CancelToken()

    def report(self, current: int, total: int, label: str = ""):
        if self._progress:
            self._progress(current, total, label)

    def checkpoint(self):
        """Cedes control to the host, then raises if a cancel was requested."""
        if self._yield_hook:
            self._yield_hook()
        if self.token.cancelled:
            raise AnalysisCancelled("Analysis cancelled by user.")

    def pause(self):
        """Cedes control without honoring cancellation."""
        if self._yield_hook:
            self._yield_hook()

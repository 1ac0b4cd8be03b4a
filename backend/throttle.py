"""Interim throttle. Bounds enrichment calls against a changing live transcript.

Leading edge: fire immediately when more than throttle_ms has passed since
the last call. Trailing edge: after settle_ms without a newer change, fire
once more so the last words before a pause are always covered.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_MS = 250
DEFAULT_SETTLE_MS = 600
DEFAULT_MIN_LENGTH = 2


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Any:
        """Run callback after delay seconds; return a handle with cancel()."""


class LoopScheduler:
    """Schedules on the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class InterimThrottle:
    def __init__(
        self,
        fire: Callable[[str], None],
        throttle_ms: int = DEFAULT_THROTTLE_MS,
        settle_ms: int = DEFAULT_SETTLE_MS,
        min_length: int = DEFAULT_MIN_LENGTH,
        clock: Optional[Callable[[], float]] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self._fire = fire
        self.throttle_ms = throttle_ms
        self.settle_ms = settle_ms
        self.min_length = min_length
        self._clock = clock or monotonic_ms
        self._scheduler = scheduler or LoopScheduler()
        self._last_call_ms = self._clock()
        self._text = ""
        self._settled_text = ""
        self._trailing: Any = None
        self._closed = False

    def update(self, text: str) -> None:
        """Feed the latest interim text."""
        if self._closed or text == self._text:
            return
        if not text:
            self.clear()
            return
        self._text = text
        if len(text.strip()) < self.min_length:
            self._cancel_trailing()
            return

        now = self._clock()
        if now - self._last_call_ms > self.throttle_ms:
            self._call(text, now, "immediate")

        self._cancel_trailing()
        self._trailing = self._scheduler.call_later(self.settle_ms / 1000.0, self._on_settled)

    def _on_settled(self) -> None:
        self._trailing = None
        text = self._text
        if self._closed or not text or text == self._settled_text:
            return
        self._settled_text = text
        self._call(text, self._clock(), "trailing")

    def _call(self, text: str, now: float, reason: str) -> None:
        self._last_call_ms = now
        logger.debug(f"Interim enrichment ({reason}): {len(text)} chars")
        try:
            self._fire(text)
        except Exception as e:
            logger.error(f"Interim enrichment callback failed: {e}", exc_info=True)

    def _cancel_trailing(self) -> None:
        if self._trailing is not None:
            self._trailing.cancel()
            self._trailing = None

    def clear(self) -> None:
        """Forget the current text and cancel any pending trailing call."""
        self._cancel_trailing()
        self._text = ""
        self._settled_text = ""

    def close(self) -> None:
        self.clear()
        self._closed = True

    @property
    def pending(self) -> bool:
        return self._trailing is not None

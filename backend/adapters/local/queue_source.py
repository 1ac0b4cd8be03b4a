"""QueueTokenSource: token source fed by pushed vendor messages.

The WebSocket endpoint pushes each inbound frame here; the session consumes
batches in arrival order. Messages are normalized on the consuming side so a
vendor error payload surfaces as a StreamError in the session.
"""

import asyncio
import logging
from typing import Any, AsyncIterator

from domain.errors import StreamError
from domain.models import Token
from ports.token_stream import TokenNormalizerPort, TokenSourcePort

logger = logging.getLogger(__name__)

_END = object()


class QueueTokenSource(TokenSourcePort):
    def __init__(self, normalizer: TokenNormalizerPort):
        self._normalizer = normalizer
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    async def start(self) -> None:
        logger.info(f"Token source ready (vendor={self._normalizer.vendor()})")

    def push(self, message: Any) -> bool:
        """Queue one vendor message. Returns False once the source is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(message)
        return True

    def fail(self, error: Exception) -> None:
        """Surface a stream error to the consumer and close the source."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(StreamError(str(error)) if not isinstance(error, StreamError) else error)

    def close(self) -> None:
        """End the stream after already-queued messages are consumed."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)

    async def batches(self) -> AsyncIterator[list[Token]]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, StreamError):
                raise item
            tokens = self._normalizer.normalize(item)
            if tokens:
                yield tokens

    async def stop(self) -> None:
        self.close()

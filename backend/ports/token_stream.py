"""TokenStream ports: abstract interfaces for recognizer token input."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from domain.models import Token


class TokenNormalizerPort(ABC):
    @abstractmethod
    def normalize(self, message: Any) -> list[Token]:
        """Convert one vendor streaming message into its tokens, in order.

        Raises StreamError only for explicit vendor error payloads.
        """

    @abstractmethod
    def vendor(self) -> str:
        """Return the vendor name this normalizer handles."""


class TokenSourcePort(ABC):
    @abstractmethod
    async def start(self) -> None:
        """Open the underlying stream. Raises SessionStartError on failure."""

    @abstractmethod
    def batches(self) -> AsyncIterator[list[Token]]:
        """Yield token batches (one per recognizer message) until the stream ends."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop consuming. Safe to call more than once."""

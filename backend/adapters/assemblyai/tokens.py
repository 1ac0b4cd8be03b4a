"""AssemblyAITokenNormalizer: AssemblyAI v3 "Turn" messages to tokens.

Each Turn message carries the whole transcript of the current turn, so it maps
to a single interim token until end_of_turn, when it becomes a final token
followed by a boundary.

With format_turns enabled on the stream, AssemblyAI ends every turn twice:
first with the raw transcript (turn_is_formatted false), then with the
punctuated copy. Only the formatted copy is committed; the raw one is shown
as an interim. A turn_order that was already committed is ignored.
"""

import logging
from typing import Any, Optional

from domain.errors import StreamError
from domain.models import Token
from ports.token_stream import TokenNormalizerPort

logger = logging.getLogger(__name__)


class AssemblyAITokenNormalizer(TokenNormalizerPort):
    def __init__(self, format_turns: bool = True):
        self.format_turns = format_turns
        self._last_committed_turn: Optional[int] = None

    def vendor(self) -> str:
        return "assemblyai"

    def normalize(self, message: Any) -> list[Token]:
        if not isinstance(message, dict):
            return []

        msg_type = message.get("type")
        if msg_type == "Error" or message.get("error"):
            raise StreamError(f"AssemblyAI error: {message.get('error', 'unknown error')}")
        if msg_type != "Turn":
            if msg_type in ("Begin", "Termination"):
                logger.debug(f"AssemblyAI {msg_type}")
            return []

        transcript = (message.get("transcript") or "").strip()
        language = message.get("language_code") or None
        turn_order = message.get("turn_order")

        if self._is_committed(turn_order):
            logger.debug(f"AssemblyAI turn {turn_order} already committed, ignored")
            return []

        awaiting_format = self.format_turns and message.get("turn_is_formatted") is False
        if not message.get("end_of_turn") or awaiting_format:
            if not transcript:
                return []
            return [Token(text=transcript, is_final=False, language=language)]

        if isinstance(turn_order, int):
            self._last_committed_turn = turn_order
        tokens: list[Token] = []
        if transcript:
            tokens.append(Token(text=transcript, is_final=True, language=language))
        tokens.append(Token.boundary())
        return tokens

    def _is_committed(self, turn_order: Any) -> bool:
        return (
            isinstance(turn_order, int)
            and self._last_committed_turn is not None
            and turn_order <= self._last_committed_turn
        )

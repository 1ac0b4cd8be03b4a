"""SonioxTokenNormalizer: Soniox real-time messages to tokens.

Soniox sends every message as {"tokens": [...]} where final tokens are sent
once and the non-final tail is resent each time. Endpoint detection is
signalled by a final token whose text is "<end>". With two-way translation
enabled, translated tokens arrive in the same list tagged with the target
language, which is what fills the secondary buffer.
"""

import logging
from typing import Any

from domain.errors import StreamError
from domain.models import Token
from ports.token_stream import TokenNormalizerPort

logger = logging.getLogger(__name__)

END_SENTINEL = "<end>"


class SonioxTokenNormalizer(TokenNormalizerPort):
    def vendor(self) -> str:
        return "soniox"

    def normalize(self, message: Any) -> list[Token]:
        if not isinstance(message, dict):
            logger.debug(f"Ignoring non-object Soniox message: {type(message).__name__}")
            return []

        if message.get("error_code") is not None:
            raise StreamError(
                f"Soniox error {message.get('error_code')}: {message.get('error_message', 'unknown error')}"
            )

        tokens: list[Token] = []
        for raw in message.get("tokens") or []:
            if not isinstance(raw, dict):
                continue
            text = raw.get("text") or ""
            if text == END_SENTINEL:
                tokens.append(Token.boundary())
                continue
            tokens.append(Token(
                text=text,
                is_final=bool(raw.get("is_final", False)),
                language=raw.get("language") or None,
                speaker=_speaker(raw.get("speaker")),
            ))
        return tokens


def _speaker(value: Any):
    if value is None or value == "":
        return None
    return str(value)

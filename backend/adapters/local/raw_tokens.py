"""RawTokenNormalizer: canonical token JSON passed through unchanged.

Accepts one token object, a list of them, or {"tokens": [...]}. Each item is
validated as a TokenMessage; items that don't validate are skipped, so
nothing here raises.
"""

import logging
from typing import Any

from pydantic import ValidationError

from domain.models import Token
from models import TokenMessage
from ports.token_stream import TokenNormalizerPort

logger = logging.getLogger(__name__)


class RawTokenNormalizer(TokenNormalizerPort):
    def vendor(self) -> str:
        return "raw"

    def normalize(self, message: Any) -> list[Token]:
        if isinstance(message, dict) and "tokens" in message:
            items = message.get("tokens") or []
        elif isinstance(message, dict):
            items = [message]
        elif isinstance(message, list):
            items = message
        else:
            return []

        tokens: list[Token] = []
        for item in items:
            try:
                token = TokenMessage.model_validate(item)
            except ValidationError as e:
                logger.debug(f"Skipping raw token: {e.error_count()} validation errors")
                continue
            speaker = token.speaker
            tokens.append(Token(
                text=token.text or "",
                is_final=token.is_final,
                language=token.language or None,
                speaker=str(speaker) if speaker not in (None, "") else None,
                is_boundary=token.is_boundary,
            ))
        return tokens

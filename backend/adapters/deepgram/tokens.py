"""DeepgramTokenNormalizer: Deepgram live "Results" messages to tokens.

Deepgram sends whole transcript segments rather than sub-word tokens, so each
segment becomes one token with a leading space; the reconciler never inserts
whitespace itself. speech_final marks the end of an utterance.
"""

import logging
from typing import Any, Optional

from domain.errors import StreamError
from domain.models import Token
from ports.token_stream import TokenNormalizerPort

logger = logging.getLogger(__name__)


class DeepgramTokenNormalizer(TokenNormalizerPort):
    def vendor(self) -> str:
        return "deepgram"

    def normalize(self, message: Any) -> list[Token]:
        if not isinstance(message, dict):
            return []

        msg_type = message.get("type", "Results")
        if msg_type == "Error":
            raise StreamError(f"Deepgram error: {message.get('description') or message.get('message', 'unknown error')}")
        if msg_type == "UtteranceEnd":
            return [Token.boundary()]
        if msg_type != "Results":
            return []

        alternatives = (message.get("channel") or {}).get("alternatives") or []
        alternative = alternatives[0] if alternatives else {}
        transcript = (alternative.get("transcript") or "").strip()

        tokens: list[Token] = []
        if transcript:
            tokens.append(Token(
                text=" " + transcript,
                is_final=bool(message.get("is_final", False)),
                language=_language(message, alternative),
                speaker=_speaker(alternative),
            ))
        if message.get("speech_final"):
            tokens.append(Token.boundary())
        return tokens


def _language(message: dict, alternative: dict) -> Optional[str]:
    languages = alternative.get("languages") or []
    if languages:
        return languages[0]
    return (message.get("metadata") or {}).get("detected_language") or None


def _speaker(alternative: dict) -> Optional[str]:
    for word in alternative.get("words") or []:
        speaker = word.get("speaker")
        if speaker is not None:
            return f"speaker_{speaker}"
    return None

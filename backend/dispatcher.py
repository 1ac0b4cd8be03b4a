"""Utterance dispatcher: turns final events into committed utterances."""

import logging
from typing import Optional

from domain.models import Conversation, FinalEvent, SessionConfig, Utterance

logger = logging.getLogger(__name__)


def resolve_sides(
    detected_language: Optional[str],
    primary_text: str,
    secondary_text: str,
    config: SessionConfig,
) -> tuple[str, str]:
    """Return (source_text, target_text) for the detected language.

    An unknown language is treated as the primary one.
    """
    if detected_language is None or detected_language == config.primary_language:
        return primary_text, secondary_text
    return secondary_text, primary_text


class UtteranceDispatcher:
    def __init__(self, conversation: Conversation, config: SessionConfig):
        self._conversation = conversation
        self._config = config

    def dispatch(self, event: FinalEvent) -> Utterance:
        """Append the utterance for a final event to the conversation.

        The target side carries whatever native translation the recognizer
        produced; enrichment is patched in later by id.
        """
        source_text, target_text = resolve_sides(
            event.detected_language, event.primary_final, event.secondary_final, self._config
        )
        utterance = self._conversation.append(
            source_text=source_text,
            target_text=target_text,
            detected_language=event.detected_language,
            speaker=event.speaker if self._config.diarization_enabled else None,
        )
        logger.info(
            f"[{self._conversation.id}] utterance {utterance.id} committed "
            f"({utterance.detected_language}, speaker={utterance.speaker})"
        )
        return utterance

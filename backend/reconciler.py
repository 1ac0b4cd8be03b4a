"""Dual-buffer transcript reconciler.

Turns an ordered token stream into interim previews and committed final
events, splitting primary- and secondary-language material into two buffers.

Attribution is utterance-granular: the first tagged token of an utterance
decides its language (and, with diarization on, its speaker) until the next
boundary. Mid-utterance code-switching is therefore attributed to whichever
language was heard first.
"""

import logging
from typing import Optional, Union

from domain.models import (
    FinalEvent,
    InterimEvent,
    ReconciliationState,
    SessionConfig,
    Token,
)

logger = logging.getLogger(__name__)

ReconcilerEvent = Union[InterimEvent, FinalEvent]


class DualBufferReconciler:
    """Single-writer state machine; one instance per live session."""

    def __init__(self, config: SessionConfig):
        self._config = config
        self.state = ReconciliationState()

    def process(self, token: Token) -> Optional[ReconcilerEvent]:
        """Apply one token. Returns the event it produces, if any."""
        state = self.state
        cfg = self._config

        if state.sticky_language is None and token.language:
            state.sticky_language = token.language
        if cfg.diarization_enabled and state.sticky_speaker is None and token.speaker:
            state.sticky_speaker = token.speaker

        if token.is_boundary:
            return self._commit()

        language = token.language or cfg.primary_language
        if token.is_final:
            if language == cfg.primary_language:
                state.buffer_primary += token.text
            elif language == cfg.secondary_language:
                state.buffer_secondary += token.text
            else:
                logger.debug(f"Dropping final token in unconfigured language {language!r}")
        else:
            if language == cfg.primary_language:
                state.interim_primary += token.text
            elif language == cfg.secondary_language:
                state.interim_secondary += token.text
            else:
                logger.debug(f"Dropping interim token in unconfigured language {language!r}")

        primary_preview = (state.buffer_primary + state.interim_primary).strip()
        secondary_preview = (state.buffer_secondary + state.interim_secondary).strip()
        if not primary_preview and not secondary_preview:
            return None
        return InterimEvent(
            primary_preview=primary_preview,
            secondary_preview=secondary_preview,
            detected_language=state.sticky_language,
        )

    def process_batch(self, tokens: list[Token]) -> list[ReconcilerEvent]:
        """Apply the tokens of one recognizer message.

        The interim tail is resent by the recognizer on every message, so it
        is rebuilt from scratch per batch. Consecutive interim snapshots are
        collapsed to the latest one.
        """
        self.state.clear_interim()
        events: list[ReconcilerEvent] = []
        pending_interim: Optional[InterimEvent] = None
        for token in tokens:
            event = self.process(token)
            if isinstance(event, InterimEvent):
                pending_interim = event
            elif isinstance(event, FinalEvent):
                if pending_interim is not None:
                    events.append(pending_interim)
                    pending_interim = None
                events.append(event)
        if pending_interim is not None:
            events.append(pending_interim)
        return events

    def _commit(self) -> Optional[FinalEvent]:
        state = self.state
        primary_final = state.buffer_primary.strip()
        secondary_final = state.buffer_secondary.strip()
        event = None
        if primary_final or secondary_final:
            event = FinalEvent(
                primary_final=primary_final,
                secondary_final=secondary_final,
                detected_language=state.sticky_language or self._config.primary_language,
                speaker=state.sticky_speaker,
            )
            logger.debug(
                f"Final: lang={event.detected_language} speaker={event.speaker} "
                f"primary={len(primary_final)} chars, secondary={len(secondary_final)} chars"
            )
        else:
            logger.debug("Empty boundary discarded")
        state.reset()
        return event

    def reset(self) -> None:
        """Drop all buffered material, e.g. on session teardown."""
        self.state.reset()

"""Contextual enrichment pipeline.

Runs the translation backend asynchronously and patches results onto
already-displayed utterances by id. Two modes:

- native: the recognizer's own translation is kept; only the text written in
  the secondary language is sent, for its phonetic transcription.
- contextual: the source text is re-translated with dialect-aware context and
  the result replaces the native translation.

Failures are logged and leave the utterance untouched; nothing is retried.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from domain.errors import TranslationError
from domain.models import (
    Conversation,
    Enrichment,
    EnrichmentMode,
    PreviewUpdated,
    SessionConfig,
    Utterance,
    UtterancePatched,
)
from ports.translation import TranslationPort, TranslationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrichmentRequest:
    text: str
    source_language: str
    target_language: str
    contextual: bool
    mode: EnrichmentMode


def build_request(
    source_text: str,
    target_text: str,
    detected_language: Optional[str],
    config: SessionConfig,
) -> Optional[EnrichmentRequest]:
    """Decide what to send to the backend for one utterance or preview."""
    mode = config.enrichment_mode
    detected = detected_language or config.primary_language

    if mode == EnrichmentMode.NATIVE:
        # Phonetics are produced for the side written in the secondary language.
        text = source_text if detected == config.secondary_language else target_text
        if not text.strip():
            return None
        return EnrichmentRequest(
            text=text,
            source_language=config.secondary_language,
            target_language=config.secondary_language,
            contextual=False,
            mode=mode,
        )

    if mode == EnrichmentMode.CONTEXTUAL:
        if not source_text.strip():
            return None
        return EnrichmentRequest(
            text=source_text,
            source_language=detected,
            target_language=config.other_language(detected),
            contextual=True,
            mode=mode,
        )

    return None


class EnrichmentPipeline:
    def __init__(
        self,
        translation: Optional[TranslationPort],
        conversation: Conversation,
        config: SessionConfig,
        publish: Callable[[object], None],
        on_patch: Optional[Callable[[Utterance], None]] = None,
    ):
        self._translation = translation
        self._conversation = conversation
        self._config = config
        self._publish = publish
        self._on_patch = on_patch
        self._in_flight: set[int] = set()
        self._tasks: set[asyncio.Task] = set()
        self._preview_generation = 0
        self._preview_in_flight: Optional[int] = None
        self.preview: Optional[PreviewUpdated] = None

    @property
    def enabled(self) -> bool:
        return self._translation is not None and self._config.enrichment_mode != EnrichmentMode.OFF

    # ----- committed utterances -----

    def submit(self, utterance: Utterance) -> Optional[asyncio.Task]:
        """Schedule enrichment for a committed utterance. Returns the task, if any."""
        if not self.enabled:
            return None
        if utterance.id in self._in_flight:
            logger.debug(f"Enrichment for utterance {utterance.id} already in flight, dropped")
            return None
        request = build_request(
            utterance.source_text, utterance.target_text, utterance.detected_language, self._config
        )
        if request is None:
            logger.debug(f"Nothing to enrich for utterance {utterance.id}")
            return None

        self._in_flight.add(utterance.id)
        task = asyncio.create_task(self._enrich_utterance(utterance.id, request))
        self._track(task)
        return task

    async def _enrich_utterance(self, utterance_id: int, request: EnrichmentRequest) -> Optional[Utterance]:
        try:
            result = await self._call(request)
            if result is None:
                return None
            current = self._conversation.get(utterance_id)
            if current is None:
                return None

            if request.mode == EnrichmentMode.CONTEXTUAL:
                if not result.translation.strip():
                    logger.warning(f"Empty contextual translation for utterance {utterance_id}, keeping native text")
                    return None
                patched = self._conversation.apply_enrichment(
                    utterance_id,
                    Enrichment(translation=result.translation, phonetic=result.phonetic),
                    target_text=result.translation,
                )
            else:
                patched = self._conversation.apply_enrichment(
                    utterance_id,
                    Enrichment(translation=current.target_text, phonetic=result.phonetic),
                )

            if patched is not None:
                self._publish(UtterancePatched(self._conversation.id, patched))
                if self._on_patch is not None:
                    self._on_patch(patched)
            return patched
        finally:
            self._in_flight.discard(utterance_id)

    # ----- live preview -----

    def enrich_preview(self, request: Optional[EnrichmentRequest]) -> Optional[asyncio.Task]:
        """Best-effort enrichment of the in-progress utterance.

        At most one call per preview generation is in flight; a request that
        arrives while one is running is dropped.
        """
        if not self.enabled or request is None:
            return None
        generation = self._preview_generation
        if self._preview_in_flight == generation:
            logger.debug("Preview enrichment in flight, request dropped")
            return None
        self._preview_in_flight = generation
        task = asyncio.create_task(self._enrich_preview(generation, request))
        self._track(task)
        return task

    async def _enrich_preview(self, generation: int, request: EnrichmentRequest) -> None:
        try:
            result = await self._call(request)
            if result is None or generation != self._preview_generation:
                return
            if request.mode == EnrichmentMode.CONTEXTUAL:
                translation = result.translation
            else:
                translation = request.text
            self.preview = PreviewUpdated(text=request.text, translation=translation, phonetic=result.phonetic)
            self._publish(self.preview)
        finally:
            if self._preview_in_flight == generation:
                self._preview_in_flight = None

    def clear_preview(self) -> None:
        """Discard the current preview; late results for it are ignored."""
        self._preview_generation += 1
        had_preview = self.preview is not None
        self.preview = None
        if had_preview:
            self._publish(PreviewUpdated())

    def abandon(self) -> None:
        """Session stop: stop accepting preview results. In-flight utterance
        enrichment is left to finish on its own."""
        self._preview_generation += 1
        self.preview = None

    # ----- backend -----

    async def _call(self, request: EnrichmentRequest) -> Optional[TranslationResult]:
        try:
            return await self._translation.translate(
                request.text,
                request.source_language,
                request.target_language,
                style=self._config.phonetic_style,
                contextual=request.contextual,
                script_language=self._config.secondary_language,
            )
        except TranslationError as e:
            logger.warning(f"Enrichment failed ({request.mode.value}): {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Enrichment failed unexpectedly ({request.mode.value}): {e}", exc_info=True)
        return None

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def tasks(self) -> tuple[asyncio.Task, ...]:
        return tuple(self._tasks)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

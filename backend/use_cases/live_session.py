"""LiveSessionUseCase: one recording session from tokens to enriched dialogue.

Accepts its collaborators via dependency injection. The token path (feed) is
the only writer of reconciliation state and the only appender to the
conversation; enrichment tasks patch utterances by id whenever they finish,
including after the session has stopped, in which case the stored snapshot
is rewritten.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from dispatcher import UtteranceDispatcher, resolve_sides
from domain.errors import SessionStartError, StreamError
from domain.models import (
    Conversation,
    EnrichmentMode,
    FinalEvent,
    InterimEvent,
    SessionConfig,
    SessionError,
    SessionStatus,
    Token,
    Utterance,
    UtteranceCommitted,
)
from enrichment import EnrichmentPipeline, build_request
from ports.conversation_store import ConversationStorePort
from ports.token_stream import TokenSourcePort
from ports.translation import TranslationPort
from reconciler import DualBufferReconciler
from session_events import SessionEventBus
from throttle import InterimThrottle, Scheduler

logger = logging.getLogger(__name__)


class LiveSessionUseCase:
    def __init__(
        self,
        config: SessionConfig,
        translation: Optional[TranslationPort] = None,
        store: Optional[ConversationStorePort] = None,
        events: Optional[SessionEventBus] = None,
        clock: Optional[Callable[[], float]] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.config = config
        self.conversation = Conversation(
            primary_language=config.primary_language,
            secondary_language=config.secondary_language,
        )
        self.events = events or SessionEventBus(name=self.conversation.id)
        self._store = store
        self._reconciler = DualBufferReconciler(config)
        self._dispatcher = UtteranceDispatcher(self.conversation, config)
        self._pipeline = EnrichmentPipeline(
            translation, self.conversation, config, self.events.publish, on_patch=self._on_patched
        )
        self._throttle = InterimThrottle(
            self._fire_preview,
            throttle_ms=config.throttle_ms,
            settle_ms=config.settle_ms,
            min_length=config.min_preview_chars,
            clock=clock,
            scheduler=scheduler,
        )
        self._preview_sides: tuple[str, str, Optional[str]] = ("", "", None)
        self._source: Optional[TokenSourcePort] = None
        self._stopped = False

    @property
    def pipeline(self) -> EnrichmentPipeline:
        return self._pipeline

    @property
    def reconciler(self) -> DualBufferReconciler:
        return self._reconciler

    @property
    def previews_enabled(self) -> bool:
        return (
            self.config.interim_enrichment_enabled
            and self.config.enrichment_mode != EnrichmentMode.OFF
            and self._pipeline.enabled
        )

    async def run(self, source: TokenSourcePort) -> Conversation:
        """Consume the source until it ends, then stop. Stream errors are
        published as SessionError and re-raised."""
        self._source = source
        cfg = self.config
        logger.info(
            f"[{self.conversation.id}] starting session {cfg.primary_language}<->{cfg.secondary_language}, "
            f"diarization={cfg.diarization_enabled}, enrichment={cfg.enrichment_mode.value}"
        )
        try:
            await source.start()
        except Exception as e:
            message = str(e) if isinstance(e, SessionStartError) else f"Could not start token stream: {e}"
            logger.error(f"[{self.conversation.id}] {message}")
            self.events.publish(SessionError(message))
            await self.stop()
            if isinstance(e, SessionStartError):
                raise
            raise SessionStartError(message) from e

        self.events.publish(SessionStatus("connected", self.conversation.id))
        try:
            async for batch in source.batches():
                self.feed(batch)
        except StreamError as e:
            logger.error(f"[{self.conversation.id}] token stream failed: {e}")
            self.events.publish(SessionError(str(e)))
            raise
        finally:
            await self.stop()
        return self.conversation

    def feed(self, tokens: list[Token]) -> None:
        """Process one recognizer message worth of tokens."""
        if self._stopped:
            return
        for event in self._reconciler.process_batch(tokens):
            if isinstance(event, InterimEvent):
                self._on_interim(event)
            elif isinstance(event, FinalEvent):
                self._on_final(event)

    def _on_interim(self, event: InterimEvent) -> None:
        self.events.publish(event)
        if not self.previews_enabled:
            return
        source_text, target_text = resolve_sides(
            event.detected_language, event.primary_preview, event.secondary_preview, self.config
        )
        self._preview_sides = (source_text, target_text, event.detected_language)
        request = build_request(source_text, target_text, event.detected_language, self.config)
        if request is None:
            # Nothing left to preview; drop what is on screen.
            self._throttle.update("")
            self._pipeline.clear_preview()
            return
        self._throttle.update(request.text)

    def _on_final(self, event: FinalEvent) -> None:
        self.events.publish(event)
        self._reset_preview()
        utterance = self._dispatcher.dispatch(event)
        self.events.publish(UtteranceCommitted(self.conversation.id, utterance))
        self._pipeline.submit(utterance)

    def _fire_preview(self, text: str) -> None:
        source_text, target_text, detected = self._preview_sides
        request = build_request(source_text, target_text, detected, self.config)
        if request is None or request.text != text:
            return
        self._pipeline.enrich_preview(request)

    def _reset_preview(self) -> None:
        self._throttle.clear()
        self._preview_sides = ("", "", None)
        self._pipeline.clear_preview()

    def _on_patched(self, utterance: Utterance) -> None:
        # Before stop the snapshot written on stop includes the patch.
        if self._stopped:
            self._save()

    def _save(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self.conversation)
        except Exception as e:
            logger.error(f"[{self.conversation.id}] could not save conversation: {e}", exc_info=True)

    async def stop(self) -> None:
        """Stop consuming and persist a snapshot. Safe to call more than once;
        in-flight enrichment is not awaited."""
        if self._stopped:
            return
        self._stopped = True
        if self._source is not None:
            try:
                await self._source.stop()
            except Exception as e:
                logger.warning(f"[{self.conversation.id}] error stopping token source: {e}")
        self._throttle.close()
        self._pipeline.abandon()
        self._reconciler.reset()
        self.conversation.ended_at = datetime.now(timezone.utc)

        self._save()

        logger.info(
            f"[{self.conversation.id}] session stopped: {len(self.conversation)} utterances, "
            f"{self._pipeline.pending_tasks} enrichment calls still running"
        )
        self.events.publish(SessionStatus("disconnected", self.conversation.id))

    @property
    def stopped(self) -> bool:
        return self._stopped

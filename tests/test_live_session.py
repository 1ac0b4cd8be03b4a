"""Integration tests for the live session use case."""

import asyncio
from typing import Optional

import pytest

from adapters.assemblyai.tokens import AssemblyAITokenNormalizer
from adapters.local.json_conversation_store import JsonFileConversationStore
from adapters.local.queue_source import QueueTokenSource
from adapters.local.raw_tokens import RawTokenNormalizer
from adapters.soniox.tokens import SonioxTokenNormalizer
from conftest import FakeTranslation, final, interim
from domain.errors import SessionStartError, StreamError
from domain.models import (
    Conversation,
    FinalEvent,
    InterimEvent,
    PreviewUpdated,
    SessionConfig,
    SessionError,
    SessionStatus,
    Token,
    UtteranceCommitted,
    UtterancePatched,
)
from ports.conversation_store import ConversationStorePort
from ports.token_stream import TokenSourcePort
from ports.translation import TranslationResult
from use_cases.live_session import LiveSessionUseCase


class MemoryStore(ConversationStorePort):
    def __init__(self):
        self.saved: list[Conversation] = []

    def save(self, conversation: Conversation) -> None:
        self.saved.append(conversation)

    def load(self, conversation_id: str) -> Optional[Conversation]:
        for conversation in self.saved:
            if conversation.id == conversation_id:
                return conversation
        return None

    def list_ids(self) -> list[str]:
        return [c.id for c in self.saved]


class BrokenSource(TokenSourcePort):
    async def start(self) -> None:
        raise ConnectionRefusedError("recognizer unreachable")

    async def batches(self):
        if False:
            yield []

    async def stop(self) -> None:
        pass


@pytest.fixture
def store():
    return MemoryStore()


def make_session(config, translation=None, store=None, clock=None, scheduler=None):
    session = LiveSessionUseCase(
        config, translation=translation, store=store, clock=clock, scheduler=scheduler
    )
    events = []
    session.events.subscribe_all(events.append)
    return session, events


def of_type(events, event_type):
    return [e for e in events if isinstance(e, event_type)]


class TestRun:
    """Tests for a full session over a queued token source."""

    @pytest.mark.asyncio
    async def test_bilingual_session(self, contextual_config, store, clock, scheduler):
        translation = FakeTranslation(TranslationResult(translation="أهلاً", phonetic="ahlan"))
        session, events = make_session(contextual_config, translation, store, clock, scheduler)
        source = QueueTokenSource(RawTokenNormalizer())
        source.push({"tokens": [
            {"text": "Hello", "is_final": True, "language": "en"},
            {"is_boundary": True, "is_final": True},
        ]})
        source.push([
            {"text": "مرحبا", "is_final": True, "language": "ar"},
            {"text": "Hi", "is_final": True, "language": "en"},
            {"is_boundary": True},
        ])
        source.close()

        conversation = await session.run(source)
        await asyncio.gather(*session.pipeline.tasks)

        assert [u.source_text for u in conversation.utterances] == ["Hello", "مرحبا"]
        assert [u.detected_language for u in conversation.utterances] == ["en", "ar"]
        assert all(u.target_text == "أهلاً" for u in conversation.utterances)
        assert all(u.phonetic == "ahlan" for u in conversation.utterances)

        statuses = [e.status for e in of_type(events, SessionStatus)]
        assert statuses == ["connected", "disconnected"]
        assert len(of_type(events, FinalEvent)) == 2
        assert len(of_type(events, UtteranceCommitted)) == 2
        assert len(of_type(events, UtterancePatched)) == 2
        assert store.saved == [conversation]
        assert conversation.ended_at is not None
        assert session.stopped

    @pytest.mark.asyncio
    async def test_committed_before_enriched(self, contextual_config, store):
        """Test an utterance is published before its enrichment completes."""
        translation = FakeTranslation()
        translation.gate = asyncio.Event()
        session, events = make_session(contextual_config, translation, store)
        session.feed([final("Hello", "en"), Token.boundary()])

        committed = of_type(events, UtteranceCommitted)
        assert len(committed) == 1
        assert not committed[0].utterance.is_enriched
        assert of_type(events, UtterancePatched) == []

        translation.gate.set()
        await asyncio.gather(*session.pipeline.tasks)
        assert of_type(events, UtterancePatched)[0].utterance.id == committed[0].utterance.id

    @pytest.mark.asyncio
    async def test_enrichment_failure_keeps_utterance(self, contextual_config, failing_translation):
        session, events = make_session(contextual_config, failing_translation)
        session.feed([final("Hello", "en"), final("مرحبا", "ar"), Token.boundary()])
        await asyncio.gather(*session.pipeline.tasks)

        utterance = session.conversation.utterances[0]
        assert utterance.target_text == "مرحبا"
        assert not utterance.is_enriched
        assert of_type(events, SessionError) == []

    @pytest.mark.asyncio
    async def test_without_translation_backend(self, session_config):
        session, events = make_session(session_config)
        session.feed([final("مرحبا", "ar"), final("Hi", "en"), Token.boundary()])

        assert session.conversation.utterances[0].target_text == "Hi"
        assert session.pipeline.pending_tasks == 0

    def test_assemblyai_formatted_turn_is_one_utterance(self, session_config):
        session, events = make_session(session_config)
        normalizer = AssemblyAITokenNormalizer()
        raw = {"type": "Turn", "transcript": "hello there", "end_of_turn": True,
               "turn_is_formatted": False, "turn_order": 0, "language_code": "en"}

        session.feed(normalizer.normalize(raw))
        session.feed(normalizer.normalize(dict(raw, transcript="Hello there.", turn_is_formatted=True)))

        assert [u.source_text for u in session.conversation.utterances] == ["Hello there."]
        assert len(of_type(events, UtteranceCommitted)) == 1

class TestFailures:
    """Tests for stream and start failures."""

    @pytest.mark.asyncio
    async def test_stream_error_is_published_and_raised(self, session_config, store):
        session, events = make_session(session_config, store=store)
        source = QueueTokenSource(RawTokenNormalizer())
        source.push([{"text": "Hello", "is_final": True}, {"is_boundary": True}])
        source.fail(StreamError("connection reset"))

        with pytest.raises(StreamError):
            await session.run(source)

        assert [e.message for e in of_type(events, SessionError)] == ["connection reset"]
        assert len(session.conversation) == 1
        assert store.saved == [session.conversation]
        assert session.stopped

    @pytest.mark.asyncio
    async def test_vendor_error_payload(self, session_config):
        session, events = make_session(session_config)
        source = QueueTokenSource(SonioxTokenNormalizer())
        source.push({"error_code": 401, "error_message": "Invalid API key"})

        with pytest.raises(StreamError, match="Invalid API key"):
            await session.run(source)

        assert of_type(events, SessionError)[0].fatal

    @pytest.mark.asyncio
    async def test_start_failure(self, session_config, store):
        session, events = make_session(session_config, store=store)

        with pytest.raises(SessionStartError):
            await session.run(BrokenSource())

        assert "recognizer unreachable" in of_type(events, SessionError)[0].message
        assert [e.status for e in of_type(events, SessionStatus)] == ["disconnected"]
        assert session.stopped


class TestPreviews:
    """Tests for throttled interim enrichment inside a session."""

    @pytest.mark.asyncio
    async def test_preview_fires_after_settle(self, contextual_config, translation, clock, scheduler):
        session, events = make_session(contextual_config, translation, clock=clock, scheduler=scheduler)
        session.feed([interim("Hello", "en")])

        assert of_type(events, InterimEvent) == [InterimEvent("Hello", "", "en")]
        assert translation.calls == []

        scheduler.advance_to(600)
        await asyncio.gather(*session.pipeline.tasks)

        assert translation.calls[0]["text"] == "Hello"
        assert of_type(events, PreviewUpdated) == [
            PreviewUpdated(text="Hello", translation="translated", phonetic="phonetic")
        ]

    @pytest.mark.asyncio
    async def test_commit_clears_preview(self, contextual_config, translation, clock, scheduler):
        session, events = make_session(contextual_config, translation, clock=clock, scheduler=scheduler)
        session.feed([interim("Hello", "en")])
        scheduler.advance_to(600)
        await asyncio.gather(*session.pipeline.tasks)

        session.feed([final("Hello", "en"), Token.boundary()])

        previews = of_type(events, PreviewUpdated)
        assert previews[-1].cleared
        assert not scheduler.pending
        assert session.pipeline.preview is None
        await asyncio.gather(*session.pipeline.tasks)

    @pytest.mark.asyncio
    async def test_pending_preview_cancelled_by_commit(self, contextual_config, translation, clock, scheduler):
        session, _ = make_session(contextual_config, translation, clock=clock, scheduler=scheduler)
        session.feed([interim("Hello", "en")])
        session.feed([final("Hello", "en"), Token.boundary()])
        scheduler.advance_to(5000)
        await asyncio.gather(*session.pipeline.tasks)

        # Only the committed utterance reached the backend.
        assert [c["text"] for c in translation.calls] == ["Hello"]
        assert len(session.conversation) == 1

    @pytest.mark.asyncio
    async def test_previews_disabled(self, translation, clock, scheduler):
        config = SessionConfig(interim_enrichment_enabled=False)
        session, events = make_session(config, translation, clock=clock, scheduler=scheduler)
        session.feed([interim("مرحبا", "ar")])
        scheduler.advance_to(5000)

        assert of_type(events, InterimEvent)
        assert translation.calls == []

    @pytest.mark.asyncio
    async def test_preview_cleared_when_nothing_left_to_enrich(self, session_config, translation, clock, scheduler):
        session, events = make_session(session_config, translation, clock=clock, scheduler=scheduler)
        session.feed([interim("مرحبا", "ar")])
        scheduler.advance_to(600)
        await asyncio.gather(*session.pipeline.tasks)
        assert session.pipeline.preview == PreviewUpdated(text="مرحبا", translation="مرحبا", phonetic="phonetic")

        # The recognizer revised the tail: no Arabic text remains.
        session.feed([interim("Hello", "en")])

        assert of_type(events, PreviewUpdated)[-1].cleared
        assert session.pipeline.preview is None
        assert not scheduler.pending


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, session_config, store):
        session, events = make_session(session_config, store=store)

        await session.stop()
        await session.stop()

        assert len(store.saved) == 1
        assert [e.status for e in of_type(events, SessionStatus)] == ["disconnected"]

    @pytest.mark.asyncio
    async def test_feed_after_stop_ignored(self, session_config):
        session, events = make_session(session_config)
        await session.stop()
        session.feed([final("Hello", "en"), Token.boundary()])

        assert len(session.conversation) == 0

    @pytest.mark.asyncio
    async def test_partial_utterance_dropped_on_stop(self, session_config):
        session, _ = make_session(session_config)
        session.feed([final("Hello", "en")])
        await session.stop()

        assert len(session.conversation) == 0
        assert session.reconciler.state.buffer_primary == ""

    @pytest.mark.asyncio
    async def test_late_enrichment_lands_after_stop(self, contextual_config, store):
        translation = FakeTranslation()
        translation.gate = asyncio.Event()
        session, events = make_session(contextual_config, translation, store)
        session.feed([final("Hello", "en"), Token.boundary()])
        await session.stop()

        translation.gate.set()
        await asyncio.gather(*session.pipeline.tasks)

        assert session.conversation.utterances[0].is_enriched
        assert of_type(events, UtterancePatched)

    @pytest.mark.asyncio
    async def test_late_enrichment_is_saved(self, contextual_config, tmp_path):
        store = JsonFileConversationStore(str(tmp_path))
        translation = FakeTranslation()
        translation.gate = asyncio.Event()
        session, _ = make_session(contextual_config, translation, store)
        session.feed([final("Hello", "en"), Token.boundary()])
        await session.stop()
        assert not store.load(session.conversation.id).utterances[0].is_enriched

        translation.gate.set()
        await asyncio.gather(*session.pipeline.tasks)

        saved = store.load(session.conversation.id).utterances[0]
        assert saved.is_enriched
        assert saved.phonetic == "phonetic"
        assert saved.target_text == "translated"

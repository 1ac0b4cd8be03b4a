"""HTTP and WebSocket surface for duolog.

WS /v1/sessions/live streams one recording session: every inbound text frame
is one recognizer message for the selected vendor, every outbound frame is a
JSON session event (interim, utterance, utterance_patch, preview, status,
error).
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from adapters.local.queue_source import QueueTokenSource
from config import Config, create_conversation_store, create_token_normalizer, create_translation_adapter, get_config
from dialogue import apply_speaker_labels, compute_speaker_statistics, format_dialogue, parse_speaker_labels
from domain.errors import StreamError, TranslationError
from domain.models import Conversation, SessionConfig
from mappers import conversation_to_dto, event_to_frame
from models import (
    ConversationList,
    ConversationResponse,
    HealthResponse,
    ModelInfo,
    ModelList,
    SessionSettings,
    SpeakerStatistics,
    TranslateRequest,
    TranslateResponse,
)
from ports.conversation_store import ConversationStorePort
from ports.translation import TranslationPort
from use_cases.live_session import LiveSessionUseCase

logger = logging.getLogger(__name__)

_UNSET: Any = object()

# Close codes (RFC 6455)
WS_POLICY_VIOLATION = 1008
WS_INTERNAL_ERROR = 1011


def session_config_from(settings: SessionSettings, defaults: SessionConfig) -> SessionConfig:
    """Overlay per-session query settings on the configured defaults."""
    return SessionConfig(
        primary_language=settings.primary_language or defaults.primary_language,
        secondary_language=settings.secondary_language or defaults.secondary_language,
        diarization_enabled=(
            defaults.diarization_enabled if settings.diarization is None else settings.diarization
        ),
        enrichment_mode=settings.enrichment_mode or defaults.enrichment_mode,
        interim_enrichment_enabled=(
            defaults.interim_enrichment_enabled if settings.interim_enrichment is None else settings.interim_enrichment
        ),
        throttle_ms=defaults.throttle_ms if settings.throttle_ms is None else settings.throttle_ms,
        settle_ms=defaults.settle_ms,
        min_preview_chars=defaults.min_preview_chars,
        phonetic_style=settings.style or defaults.phonetic_style,
    )


async def _ws_send_json(websocket: WebSocket, payload: dict) -> bool:
    try:
        await websocket.send_json(payload)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug(f"WebSocket send failed: {e}")
        return False


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    """Send queued frames until the None sentinel or a closed socket."""
    while True:
        frame = await outbox.get()
        if frame is None:
            return
        if not await _ws_send_json(websocket, frame):
            return


async def _receive(websocket: WebSocket, source: QueueTokenSource) -> None:
    """Forward inbound frames to the token source until stop or disconnect."""
    while True:
        text = await websocket.receive_text()
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            await _ws_send_json(websocket, {"type": "error", "message": "Frame is not valid JSON", "fatal": False})
            continue
        if isinstance(message, dict) and message.get("type") == "stop":
            logger.info("Client requested stop")
            return
        source.push(message)


def create_app(
    cfg: Optional[Config] = None,
    translation: Optional[TranslationPort] = _UNSET,
    store: Optional[ConversationStorePort] = _UNSET,
) -> FastAPI:
    cfg = cfg or get_config()
    defaults = cfg.session_defaults()
    if translation is _UNSET:
        translation = create_translation_adapter(cfg)
    if store is _UNSET:
        store = create_conversation_store(cfg)

    app = FastAPI(title="duolog", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    live_sessions: Dict[str, LiveSessionUseCase] = {}
    app.state.live_sessions = live_sessions
    app.state.translation = translation
    app.state.store = store

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(
            translation_model=translation.model_name() if translation else None,
            config=cfg.as_dict(),
        )

    @app.get("/v1/models", response_model=ModelList)
    async def list_models():
        if translation is None:
            if cfg.translation_engine != "gemini":
                return ModelList(data=[])
            # No key configured: report what could be selected.
            from adapters.gemini.translation import FALLBACK_MODELS
            names = list(FALLBACK_MODELS)
        else:
            names = await translation.list_models()
        return ModelList(data=[ModelInfo(id=name, owned_by=cfg.translation_engine) for name in names])

    @app.post("/v1/translate", response_model=TranslateResponse)
    async def translate(req: TranslateRequest):
        if translation is None:
            raise HTTPException(status_code=503, detail="No translation backend configured")
        try:
            result = await translation.translate(
                req.text, req.source_language, req.target_language,
                style=req.style, contextual=req.contextual, script_language=req.script_language,
            )
        except TranslationError as e:
            logger.warning(f"Direct translation failed: {e}")
            raise HTTPException(status_code=502, detail=str(e))
        return TranslateResponse(
            translation=result.translation,
            phonetic=result.phonetic,
            model=translation.model_name(),
        )

    def _find_conversation(conversation_id: str) -> Optional[Conversation]:
        session = live_sessions.get(conversation_id)
        if session is not None:
            return session.conversation
        return store.load(conversation_id) if store else None

    @app.get("/v1/conversations", response_model=ConversationList)
    async def list_conversations():
        stored = store.list_ids() if store else []
        live = [cid for cid in live_sessions if cid not in stored]
        return ConversationList(data=stored + live)

    @app.get("/v1/conversations/{conversation_id}", response_model=ConversationResponse)
    async def get_conversation(
        conversation_id: str,
        format: str = Query("json", pattern="^(json|text)$"),
        labels: Optional[str] = Query(None, description="speaker_0:Driver,speaker_1:Guide"),
    ):
        conversation = _find_conversation(conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        speaker_labels = parse_speaker_labels(labels)
        if format == "text":
            return PlainTextResponse(format_dialogue(conversation.utterances, speaker_labels=speaker_labels))
        return conversation_to_dto(conversation, apply_speaker_labels(conversation.utterances, speaker_labels))

    @app.get("/v1/conversations/{conversation_id}/speakers", response_model=SpeakerStatistics)
    async def get_speaker_statistics(conversation_id: str, labels: Optional[str] = None):
        conversation = _find_conversation(conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        utterances = apply_speaker_labels(conversation.utterances, parse_speaker_labels(labels))
        stats = compute_speaker_statistics(utterances)
        if stats is None:
            return SpeakerStatistics(conversation_id=conversation_id)
        return SpeakerStatistics(conversation_id=conversation_id, **stats)

    @app.websocket("/v1/sessions/live")
    async def live_session(websocket: WebSocket):
        await websocket.accept()
        try:
            settings = SessionSettings.model_validate(dict(websocket.query_params))
            session_config = session_config_from(settings, defaults)
            normalizer = create_token_normalizer(
                settings.vendor or cfg.token_vendor, format_turns=cfg.assemblyai_format_turns
            )
        except (ValidationError, ValueError) as e:
            logger.warning(f"Rejected live session: {e}")
            await _ws_send_json(websocket, {"type": "error", "message": str(e), "fatal": True})
            await websocket.close(code=WS_POLICY_VIOLATION)
            return

        session = LiveSessionUseCase(session_config, translation=translation, store=store)
        conversation_id = session.conversation.id
        outbox: asyncio.Queue = asyncio.Queue()

        def forward(event: Any) -> None:
            frame = event_to_frame(event)
            if frame is not None:
                outbox.put_nowait(frame)

        session.events.subscribe_all(forward)
        source = QueueTokenSource(normalizer)
        live_sessions[conversation_id] = session

        sender = asyncio.create_task(_pump(websocket, outbox))
        receiver = asyncio.create_task(_receive(websocket, source))
        runner = asyncio.create_task(session.run(source))
        failed = False
        try:
            await asyncio.wait({receiver, runner}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            source.close()
            try:
                await runner
            except StreamError:
                failed = True
            receiver.cancel()
            try:
                await receiver
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass
            outbox.put_nowait(None)
            await sender
            session.events.close()
            live_sessions.pop(conversation_id, None)

        try:
            await websocket.close(code=WS_INTERNAL_ERROR if failed else 1000)
        except RuntimeError:
            # Already closed by the client.
            pass

    return app

"""Domain <-> DTO mappers.

Converts Utterance/Conversation (domain) to and from the Pydantic DTOs, and
session events to outbound WebSocket frames.
"""

from typing import Any, List, Optional

from domain.models import (
    Conversation,
    Enrichment,
    InterimEvent,
    PreviewUpdated,
    SessionError,
    SessionStatus,
    Utterance,
    UtteranceCommitted,
    UtterancePatched,
)
from models import ConversationResponse, EnrichmentDTO, UtteranceDTO


def utterance_to_dto(utterance: Utterance) -> UtteranceDTO:
    return UtteranceDTO(
        id=utterance.id,
        source_text=utterance.source_text,
        target_text=utterance.target_text,
        detected_language=utterance.detected_language,
        speaker=utterance.speaker,
        enrichment=(
            EnrichmentDTO(
                translation=utterance.enrichment.translation,
                phonetic=utterance.enrichment.phonetic,
            )
            if utterance.enrichment
            else None
        ),
        created_at=utterance.created_at,
    )


def dto_to_utterance(dto: UtteranceDTO) -> Utterance:
    return Utterance(
        id=dto.id,
        source_text=dto.source_text,
        target_text=dto.target_text,
        detected_language=dto.detected_language,
        speaker=dto.speaker,
        enrichment=(
            Enrichment(translation=dto.enrichment.translation, phonetic=dto.enrichment.phonetic)
            if dto.enrichment
            else None
        ),
        created_at=dto.created_at,
    )


def conversation_to_dto(
    conversation: Conversation, utterances: Optional[List[Utterance]] = None
) -> ConversationResponse:
    """utterances overrides the conversation's own, e.g. relabelled copies."""
    if utterances is None:
        utterances = conversation.utterances
    return ConversationResponse(
        id=conversation.id,
        primary_language=conversation.primary_language,
        secondary_language=conversation.secondary_language,
        started_at=conversation.started_at,
        ended_at=conversation.ended_at,
        utterances=[utterance_to_dto(u) for u in utterances],
    )


def dto_to_conversation(dto: ConversationResponse) -> Conversation:
    return Conversation(
        id=dto.id,
        primary_language=dto.primary_language,
        secondary_language=dto.secondary_language,
        started_at=dto.started_at,
        ended_at=dto.ended_at,
        utterances=[dto_to_utterance(u) for u in dto.utterances],
    )


def event_to_frame(event: Any) -> Optional[dict]:
    """Map a session event to a JSON-ready WebSocket frame, or None to skip it."""
    if isinstance(event, InterimEvent):
        return {
            "type": "interim",
            "primary": event.primary_preview,
            "secondary": event.secondary_preview,
            "detected_language": event.detected_language,
        }
    if isinstance(event, UtteranceCommitted):
        return {"type": "utterance", "utterance": utterance_to_dto(event.utterance).model_dump(mode="json")}
    if isinstance(event, UtterancePatched):
        return {"type": "utterance_patch", "utterance": utterance_to_dto(event.utterance).model_dump(mode="json")}
    if isinstance(event, PreviewUpdated):
        return {
            "type": "preview",
            "text": event.text,
            "translation": event.translation,
            "phonetic": event.phonetic,
        }
    if isinstance(event, SessionStatus):
        return {"type": "status", "status": event.status, "conversation_id": event.conversation_id}
    if isinstance(event, SessionError):
        return {"type": "error", "message": event.message, "fatal": event.fatal}
    return None

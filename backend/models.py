from datetime import datetime
from typing import List, Optional, Dict, Any, Union

from pydantic import BaseModel, Field

from domain.models import EnrichmentMode, PhoneticStyle


class TokenMessage(BaseModel):
    """Canonical inbound token (vendor "raw")."""
    text: Optional[str] = ""
    is_final: bool = False
    language: Optional[str] = None
    speaker: Optional[Union[str, int]] = None
    is_boundary: bool = False


class EnrichmentDTO(BaseModel):
    translation: str
    phonetic: str


class UtteranceDTO(BaseModel):
    """A committed utterance as shown in the running dialogue."""
    id: int
    source_text: str
    target_text: str
    detected_language: str
    speaker: Optional[str] = None
    enrichment: Optional[EnrichmentDTO] = None
    created_at: datetime


class ConversationResponse(BaseModel):
    """Conversation snapshot; also the on-disk format."""
    id: str
    primary_language: str
    secondary_language: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    utterances: List[UtteranceDTO] = []


class ConversationList(BaseModel):
    object: str = "list"
    data: List[str]


class SpeakerStats(BaseModel):
    utterances: int
    word_count: int
    percentage: float


class SpeakerStatistics(BaseModel):
    """Per-speaker share of a conversation; empty without diarization."""
    conversation_id: str
    total_speakers: int = 0
    speakers: Dict[str, SpeakerStats] = {}


class SessionSettings(BaseModel):
    """Query parameters accepted when a live session is opened."""
    vendor: Optional[str] = None
    primary_language: Optional[str] = None
    secondary_language: Optional[str] = None
    diarization: Optional[bool] = None
    enrichment_mode: Optional[EnrichmentMode] = None
    interim_enrichment: Optional[bool] = None
    throttle_ms: Optional[int] = Field(default=None, ge=0)
    style: Optional[PhoneticStyle] = None


class TranslateRequest(BaseModel):
    text: str = Field(min_length=1)
    source_language: str
    target_language: str
    style: PhoneticStyle = PhoneticStyle.CLEAN
    contextual: bool = False
    script_language: Optional[str] = None


class TranslateResponse(BaseModel):
    translation: str
    phonetic: str
    model: Optional[str] = None


class TranslationPayload(BaseModel):
    """JSON object the translation model is instructed to return."""
    translation: str = ""
    phonetic: str = ""


class ModelInfo(BaseModel):
    id: str
    object: str = "model"
    owned_by: str


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelInfo]


class HealthResponse(BaseModel):
    status: str = "ok"
    translation_model: Optional[str] = None
    config: Dict[str, Any] = {}

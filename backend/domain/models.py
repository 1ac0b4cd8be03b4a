"""Framework-agnostic domain models for duolog.

Tokens come in from the recognizer, utterances go out to the conversation.
Pydantic DTOs for the wire live in models.py, with mappers at the boundary.
"""

import itertools
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EnrichmentMode(str, Enum):
    NATIVE = "native"
    CONTEXTUAL = "contextual"
    OFF = "off"


class PhoneticStyle(str, Enum):
    """Phonetic notation convention requested from the translation backend."""
    CLEAN = "clean"
    PRECISE = "precise"
    FRANCO = "franco"
    IPA = "ipa"
    UPA = "upa"


@dataclass(frozen=True)
class Token:
    """Smallest unit from the recognizer.

    A token without a language tag belongs to the primary language; a token
    without a speaker leaves attribution unchanged.
    """
    text: str = ""
    is_final: bool = False
    language: Optional[str] = None
    speaker: Optional[str] = None
    is_boundary: bool = False

    @classmethod
    def boundary(cls) -> "Token":
        return cls(text="", is_final=True, is_boundary=True)


@dataclass
class SessionConfig:
    """Per-session settings supplied by the caller."""
    primary_language: str = "en"
    secondary_language: str = "ar"
    diarization_enabled: bool = False
    enrichment_mode: EnrichmentMode = EnrichmentMode.NATIVE
    interim_enrichment_enabled: bool = True
    throttle_ms: int = 250
    settle_ms: int = 600
    min_preview_chars: int = 2
    phonetic_style: PhoneticStyle = PhoneticStyle.CLEAN

    def other_language(self, language: str) -> str:
        if language == self.primary_language:
            return self.secondary_language
        return self.primary_language


@dataclass
class ReconciliationState:
    """Mutable per-utterance state owned by a single reconciler."""
    buffer_primary: str = ""
    buffer_secondary: str = ""
    interim_primary: str = ""
    interim_secondary: str = ""
    sticky_language: Optional[str] = None
    sticky_speaker: Optional[str] = None

    def clear_interim(self) -> None:
        self.interim_primary = ""
        self.interim_secondary = ""

    def reset(self) -> None:
        self.buffer_primary = ""
        self.buffer_secondary = ""
        self.sticky_language = None
        self.sticky_speaker = None
        self.clear_interim()


@dataclass(frozen=True)
class InterimEvent:
    primary_preview: str
    secondary_preview: str
    detected_language: Optional[str] = None


@dataclass(frozen=True)
class FinalEvent:
    primary_final: str
    secondary_final: str
    detected_language: str
    speaker: Optional[str] = None


@dataclass(frozen=True)
class Enrichment:
    translation: str
    phonetic: str


@dataclass(frozen=True)
class Utterance:
    """A committed utterance. Enrichment is patched in at most once."""
    id: int
    source_text: str
    target_text: str
    detected_language: str
    speaker: Optional[str] = None
    enrichment: Optional[Enrichment] = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def phonetic(self) -> str:
        return self.enrichment.phonetic if self.enrichment else ""

    @property
    def is_enriched(self) -> bool:
        return self.enrichment is not None


@dataclass
class Conversation:
    """Ordered, append-only utterance sequence with patch-by-id."""
    primary_language: str
    secondary_language: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    utterances: list[Utterance] = field(default_factory=list)
    _positions: dict[int, int] = field(default_factory=dict, init=False, repr=False)
    _ids: "itertools.count[int]" = field(default_factory=lambda: itertools.count(1), init=False, repr=False)

    def __post_init__(self):
        # Rebuild the index for conversations loaded from a snapshot.
        for position, utterance in enumerate(self.utterances):
            self._positions[utterance.id] = position
        if self.utterances:
            self._ids = itertools.count(max(self._positions) + 1)

    def append(
        self,
        source_text: str,
        target_text: str,
        detected_language: str,
        speaker: Optional[str] = None,
    ) -> Utterance:
        utterance = Utterance(
            id=next(self._ids),
            source_text=source_text,
            target_text=target_text,
            detected_language=detected_language,
            speaker=speaker,
        )
        self._positions[utterance.id] = len(self.utterances)
        self.utterances.append(utterance)
        return utterance

    def get(self, utterance_id: int) -> Optional[Utterance]:
        position = self._positions.get(utterance_id)
        return self.utterances[position] if position is not None else None

    def apply_enrichment(
        self,
        utterance_id: int,
        enrichment: Enrichment,
        target_text: Optional[str] = None,
    ) -> Optional[Utterance]:
        """Patch one utterance by id. Returns the patched record, or None if
        the id is unknown or the utterance was already enriched."""
        position = self._positions.get(utterance_id)
        if position is None:
            logger.warning(f"Enrichment for unknown utterance {utterance_id} ignored")
            return None
        current = self.utterances[position]
        if current.is_enriched:
            logger.warning(f"Utterance {utterance_id} already enriched, patch ignored")
            return None
        patched = replace(
            current,
            enrichment=enrichment,
            target_text=current.target_text if target_text is None else target_text,
        )
        self.utterances[position] = patched
        return patched

    def __len__(self) -> int:
        return len(self.utterances)


# ----- Session events (published on the per-session bus) -----

@dataclass(frozen=True)
class UtteranceCommitted:
    conversation_id: str
    utterance: Utterance


@dataclass(frozen=True)
class UtterancePatched:
    conversation_id: str
    utterance: Utterance


@dataclass(frozen=True)
class PreviewUpdated:
    """Live preview enrichment. translation/phonetic are None when cleared."""
    text: str = ""
    translation: Optional[str] = None
    phonetic: Optional[str] = None

    @property
    def cleared(self) -> bool:
        return self.translation is None and self.phonetic is None


@dataclass(frozen=True)
class SessionStatus:
    status: str
    conversation_id: Optional[str] = None


@dataclass(frozen=True)
class SessionError:
    message: str
    fatal: bool = True

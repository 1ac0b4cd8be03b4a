"""TranslationPort: abstract interface for the contextual translation backend."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from domain.models import PhoneticStyle


@dataclass(frozen=True)
class TranslationResult:
    translation: str
    phonetic: str


class TranslationPort(ABC):
    @abstractmethod
    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        style: PhoneticStyle = PhoneticStyle.CLEAN,
        contextual: bool = False,
        script_language: Optional[str] = None,
    ) -> TranslationResult:
        """Translate text and transcribe it phonetically. Raises TranslationError.

        script_language names the language whose text gets the phonetic
        transcription; None means the backend default.
        """

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the model names this backend can use."""

    @abstractmethod
    def model_name(self) -> str:
        """Return the model name used for translation calls."""

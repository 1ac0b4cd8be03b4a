"""Gemini adapter for contextual translation and phonetic transcription."""

from .translation import GeminiTranslationAdapter

__all__ = ["GeminiTranslationAdapter"]

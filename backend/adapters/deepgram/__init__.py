"""Deepgram live transcription normalization."""

from .tokens import DeepgramTokenNormalizer

__all__ = ["DeepgramTokenNormalizer"]

"""Soniox real-time token normalization."""

from .tokens import SonioxTokenNormalizer

__all__ = ["SonioxTokenNormalizer"]

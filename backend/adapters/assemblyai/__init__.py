"""AssemblyAI v3 streaming normalization."""

from .tokens import AssemblyAITokenNormalizer

__all__ = ["AssemblyAITokenNormalizer"]

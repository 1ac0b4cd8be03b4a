"""ConversationStorePort: abstract interface for conversation snapshots."""

from abc import ABC, abstractmethod
from typing import Optional

from domain.models import Conversation


class ConversationStorePort(ABC):
    @abstractmethod
    def save(self, conversation: Conversation) -> None:
        """Persist a snapshot of the conversation, replacing any previous one."""

    @abstractmethod
    def load(self, conversation_id: str) -> Optional[Conversation]:
        """Return the stored conversation, or None if it does not exist."""

    @abstractmethod
    def list_ids(self) -> list[str]:
        """Return stored conversation ids, oldest first."""

"""JsonFileConversationStore: one JSON snapshot file per conversation."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from domain.models import Conversation
from mappers import conversation_to_dto, dto_to_conversation
from models import ConversationResponse
from ports.conversation_store import ConversationStorePort

logger = logging.getLogger(__name__)


class JsonFileConversationStore(ConversationStorePort):
    def __init__(self, directory: str = "/tmp/duolog/conversations"):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        # Ids are generated hex strings; anything else never reaches the filesystem.
        if not conversation_id.isalnum():
            raise ValueError(f"Invalid conversation id: {conversation_id!r}")
        return self._dir / f"{conversation_id}.json"

    def save(self, conversation: Conversation) -> None:
        path = self._path(conversation.id)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(conversation_to_dto(conversation).model_dump_json(indent=2))
        os.replace(tmp, path)
        logger.info(f"Saved conversation {conversation.id} ({len(conversation)} utterances)")

    def load(self, conversation_id: str) -> Optional[Conversation]:
        try:
            path = self._path(conversation_id)
        except ValueError:
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return dto_to_conversation(ConversationResponse.model_validate(data))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Could not load conversation {conversation_id}: {e}")
            return None

    def list_ids(self) -> list[str]:
        files = sorted(self._dir.glob("*.json"), key=lambda p: p.stat().st_mtime)
        return [p.stem for p in files]

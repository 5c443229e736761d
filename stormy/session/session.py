"""
High-level session manager.

Wraps the conversation store with the calls the CLI needs around one
agent run:

- Record the user message before the run.
- Record the final answer from ``Complete``.
- Record a best-effort partial answer when a run is cancelled.
- Replay the stored history as ``Message`` objects for the next run.

Tool-phase messages live only inside a run and are not persisted.
"""

from __future__ import annotations

import logging

from stormy.llm.types import Message, Role
from stormy.orchestrator.events import Complete
from stormy.session.store import ConversationStore

logger = logging.getLogger(__name__)

TITLE_LENGTH = 60


class Session:
    """
    Manages a single conversation.

    Parameters
    ----------
    store:
        Persistent conversation store.
    """

    def __init__(self, store: ConversationStore) -> None:
        self.store = store
        self.conversation_id: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, title: str = "", metadata: dict | None = None) -> str:
        """Create a new conversation and return its id."""
        self.conversation_id = await self.store.create_conversation(title, metadata)
        return self.conversation_id

    async def resume(self, conversation_id: str) -> None:
        """
        Attach to an existing conversation.

        Raises
        ------
        ValueError
            If the conversation does not exist in the store.
        """
        info = await self.store.get_conversation(conversation_id)
        if info is None:
            raise ValueError(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id

    def _require_id(self) -> str:
        if self.conversation_id is None:
            raise RuntimeError("No active conversation -- call start() or resume() first")
        return self.conversation_id

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def add_user_message(self, content: str) -> Message:
        cid = self._require_id()
        message = Message(role=Role.USER, content=content)
        info = await self.store.get_conversation(cid)
        if info is not None and not info["title"] and content.strip():
            title = content.strip().splitlines()[0][:TITLE_LENGTH]
            await self.store.set_title(cid, title)
        await self.store.append_message(cid, message)
        return message

    async def save_completion(self, complete: Complete) -> Message:
        """Persist the final answer of a run."""
        cid = self._require_id()
        message = Message(role=Role.ASSISTANT, content=complete.content)
        await self.store.append_message(
            cid,
            message,
            metadata={"reasoning": complete.reasoning, "tools_used": complete.tools_used},
        )
        return message

    async def save_partial(
        self, content: str, tools_used: list[str] | None = None
    ) -> Message | None:
        """
        Persist whatever a cancelled run produced.

        Nothing is written when *content* is blank.
        """
        cid = self._require_id()
        if not content.strip():
            return None
        message = Message(role=Role.ASSISTANT, content=content)
        await self.store.append_message(
            cid,
            message,
            is_partial=True,
            metadata={"tools_used": tools_used or []},
        )
        logger.info("Saved partial response (%d chars)", len(content))
        return message

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def get_messages(self) -> list[Message]:
        """Return the stored conversation in order."""
        return await self.store.get_messages(self._require_id())

"""Chat session persistence."""

import uuid

from src.utils.logging import get_logger
from src.video_pipeline.schemas import (
    ChatMessage,
    ChatRole,
    ChatSession,
    Page,
    Pagination,
)
from src.video_pipeline.storage_service import DocumentQuery, DocumentStore

logger = get_logger(__name__)


class ChatSessionStore:
    """Stores ordered, append-only message lists per session ID.

    The store does not enforce user/assistant alternation. Appends are a
    read-modify-write of the session document, so callers must not append to
    the same session concurrently.
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    async def create(self, content_id: str) -> ChatSession:
        """Open a new, active session with an empty message list.

        Args:
            content_id: Video the session discusses.

        Returns:
            The stored session with a fresh uuid4 session_id.
        """
        session = ChatSession(session_id=str(uuid.uuid4()), content_id=content_id)
        document, _ = await self.documents.insert_if_absent(session.model_dump(mode="json"))
        logger.info("chat_session_created", session_id=session.session_id, content_id=content_id)
        return ChatSession.model_validate(document)

    async def get(self, session_id: str) -> ChatSession | None:
        """Return the session with all its messages, or None if absent."""
        document = await self.documents.get(session_id)
        return ChatSession.model_validate(document) if document is not None else None

    async def append_message(
        self, session_id: str, role: ChatRole, content: str
    ) -> ChatSession | None:
        """Append one message. Returns None if the session does not exist."""
        session = await self.get(session_id)
        if session is None:
            return None

        message = ChatMessage(role=role, content=content)
        messages = [m.model_dump(mode="json") for m in session.messages]
        messages.append(message.model_dump(mode="json"))

        document = await self.documents.update(
            session_id,
            {
                "messages": messages,
                "total_messages": len(messages),
                "last_message_at": message.timestamp.isoformat(),
            },
        )
        return ChatSession.model_validate(document) if document is not None else None

    async def close(self, session_id: str) -> ChatSession | None:
        """Mark a session inactive. Returns None if the session does not exist."""
        document = await self.documents.update(session_id, {"is_active": False})
        if document is not None:
            logger.info("chat_session_closed", session_id=session_id)
        return ChatSession.model_validate(document) if document is not None else None

    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns False if there was nothing to remove."""
        deleted = await self.documents.delete(session_id)
        if deleted:
            logger.info("chat_session_deleted", session_id=session_id)
        return deleted

    async def list_sessions(
        self,
        content_id: str | None = None,
        active_only: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> Page[ChatSession]:
        """List sessions by most recent activity, without their messages."""
        filters: dict[str, object] = {}
        if content_id:
            filters["content_id"] = content_id
        if active_only:
            filters["is_active"] = True

        documents, total = await self.documents.find(
            DocumentQuery(
                filters=filters,
                sort=[("last_message_at", True)],
                offset=(page - 1) * limit,
                limit=limit,
                exclude=("messages",),
            )
        )
        return Page[ChatSession](
            items=[ChatSession.model_validate(d) for d in documents],
            pagination=Pagination.build(page, limit, total),
        )

"""Chat context assembler: turns a session and a question into one grounded answer."""

import asyncio
import weakref

from src.utils.logging import get_logger
from src.video_pipeline.completion_service import CompletionService
from src.video_pipeline.config import VideoChatConfig
from src.video_pipeline.errors import (
    JobContextUnavailable,
    JobNotReady,
    SessionInactive,
    SessionNotFound,
    VideoChatError,
)
from src.video_pipeline.history_service import HistoryRecorder
from src.video_pipeline.schemas import (
    ChatMessage,
    ChatRole,
    ChatSession,
    JobStatus,
    Page,
    ProcessingJob,
    PromptMessage,
)
from src.video_pipeline.storage_service import JobStateStore

from .prompts import CHAT_OPTIONS, CHAT_SYSTEM_PROMPT, build_context_block
from .session_store import ChatSessionStore

logger = get_logger(__name__)


class ChatContextAssembler:
    """Handles chat turns about a completed video.

    Each turn sends the completion service a bounded prompt: the system
    instruction, a context block (title, channel, summary, key points and a
    word-boundary transcript excerpt), the last ``chat_history_window`` prior
    messages and the new question. The full history is never replayed.

    The user's question is stored before the completion call and the reply
    only after it succeeds, so a failed turn leaves the question recorded and
    is safe to retry. Turns on the same session are serialized.
    """

    def __init__(
        self,
        config: VideoChatConfig,
        completion_service: CompletionService,
        session_store: ChatSessionStore,
        job_store: JobStateStore,
        history_recorder: HistoryRecorder | None = None,
    ):
        self.config = config
        self.completion_service = completion_service
        self.session_store = session_store
        self.job_store = job_store
        self.history_recorder = history_recorder
        # Entries live only while a turn holds or waits on the lock.
        self._session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def start_session(self, content_id: str) -> ChatSession:
        """Open a session against a completed job.

        Raises:
            JobNotReady: If the job is missing or not Completed.
        """
        job = await self.job_store.get(content_id)
        if job is None or job.status != JobStatus.COMPLETED:
            raise JobNotReady()

        session = await self.session_store.create(content_id)
        if self.history_recorder is not None:
            try:
                await self.history_recorder.increment_chat_sessions(content_id)
            except Exception as e:
                logger.warning(
                    "history_update_failed",
                    content_id=content_id,
                    error_type=type(e).__name__,
                )
        return session

    def validate_question(self, question: str) -> str:
        """Strip a question and check its length.

        Returns:
            The stripped question.

        Raises:
            ValueError: If the stripped question is empty or too long.
        """
        question = (question or "").strip()
        if not question or len(question) > self.config.max_question_length:
            raise ValueError(
                f"Message must be between 1 and {self.config.max_question_length} characters"
            )
        return question

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    async def answer(self, session_id: str, question: str) -> str:
        """Answer one question in a session and record both turns.

        Raises:
            ValueError: If the question is empty or too long.
            SessionNotFound: If the session does not exist.
            SessionInactive: If the session was closed.
            JobContextUnavailable: If the session's job is gone or no longer Completed.
            CompletionError: If the completion service fails. The question stays recorded.
        """
        question = self.validate_question(question)
        if await self.session_store.get(session_id) is None:
            raise SessionNotFound()

        async with self._lock_for(session_id):
            session = await self.session_store.get(session_id)
            if session is None:
                raise SessionNotFound()
            if not session.is_active:
                raise SessionInactive()

            job = await self.job_store.get(session.content_id)
            if job is None or job.status != JobStatus.COMPLETED:
                raise JobContextUnavailable()

            session = await self.session_store.append_message(session_id, ChatRole.USER, question)
            if session is None:
                raise SessionNotFound()

            prompt = self.build_prompt(job, session.messages[:-1], question)

            try:
                reply = await self.completion_service.complete(prompt, CHAT_OPTIONS)
            except VideoChatError as e:
                logger.warning(
                    "chat_response_failed",
                    session_id=session_id,
                    content_id=job.content_id,
                    error_code=e.code,
                )
                raise

            await self.session_store.append_message(session_id, ChatRole.ASSISTANT, reply)

        logger.info(
            "chat_response_generated",
            session_id=session_id,
            content_id=job.content_id,
            prompt_messages=len(prompt),
        )
        return reply

    def build_prompt(
        self, job: ProcessingJob, prior: list[ChatMessage], question: str
    ) -> list[PromptMessage]:
        """Assemble the bounded prompt for one turn.

        ``prior`` is the session history excluding the current question; only
        its most recent ``chat_history_window`` messages are included.
        """
        window = self.config.chat_history_window
        recent = prior[-window:] if window > 0 else []

        messages = [
            PromptMessage(role="system", content=CHAT_SYSTEM_PROMPT),
            PromptMessage(
                role="system",
                content=build_context_block(job, self.config.chat_transcript_char_budget),
            ),
        ]
        messages.extend(PromptMessage(role=m.role.value, content=m.content) for m in recent)
        messages.append(PromptMessage(role="user", content=question))
        return messages

    async def get_session(self, session_id: str) -> ChatSession:
        """Read a session with its messages. Closed sessions stay readable.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        session = await self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    async def close_session(self, session_id: str) -> ChatSession:
        """Mark a session inactive. Its messages stay readable.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        session = await self.session_store.close(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    async def delete_session(self, session_id: str) -> None:
        """Remove a session and its messages.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        if not await self.session_store.delete(session_id):
            raise SessionNotFound()

    async def list_sessions(
        self,
        content_id: str | None = None,
        active_only: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> Page[ChatSession]:
        """List sessions by most recent activity, without their messages.

        Args:
            content_id: Only sessions about this video when given.
            active_only: Skip closed sessions when True.
            page: 1-based page number.
            limit: Page size.
        """
        return await self.session_store.list_sessions(
            content_id=content_id, active_only=active_only, page=page, limit=limit
        )

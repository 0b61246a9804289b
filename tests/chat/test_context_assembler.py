"""Unit tests for the chat context assembler."""

import asyncio

import pytest

from src.chat.context_assembler import ChatContextAssembler
from src.chat.prompts import CHAT_OPTIONS, CHAT_SYSTEM_PROMPT, build_context_block
from src.chat.session_store import ChatSessionStore
from src.video_pipeline.errors import (
    JobContextUnavailable,
    JobNotReady,
    RateLimited,
    SessionInactive,
    SessionNotFound,
)
from src.video_pipeline.history_service import HistoryRecorder
from src.video_pipeline.schemas import ChatRole, JobStatus, ProcessingJob, VideoMetadata
from src.video_pipeline.storage_service import InMemoryDocumentStore, JobStateStore

VIDEO_URL = "https://www.youtube.com/watch?v=ABCDEFGHIJK"
VIDEO_ID = "ABCDEFGHIJK"
TRANSCRIPT = " ".join(f"Sentence {i} about deliberate focus and learning." for i in range(300))


def completed_job() -> ProcessingJob:
    return ProcessingJob(
        content_id=VIDEO_ID,
        source_url=VIDEO_URL,
        status=JobStatus.COMPLETED,
        metadata=VideoMetadata(title="Deep Work Explained", channel_name="Focus Lab"),
        transcript=TRANSCRIPT,
        summary="This video explains deep work.",
        key_points=["Focus blocks of ninety minutes work best"],
        tags=["deep work"],
    )


@pytest.mark.unit
class TestBuildContextBlock:
    """Test the per-turn video context."""

    def test_context_block_layout(self) -> None:
        block = build_context_block(completed_job(), 100)

        assert block.startswith("Video Context:\nTitle: Deep Work Explained\nChannel: Focus Lab")
        assert "Summary: This video explains deep work." in block
        assert "• Focus blocks of ninety minutes work best" in block
        transcript = block.split("Transcript: ", 1)[1]
        assert transcript.endswith(" ...")
        assert len(transcript) <= 104

    def test_context_block_without_key_points(self) -> None:
        job = completed_job()
        job.key_points = []
        job.transcript = "short transcript"

        block = build_context_block(job, 100)

        assert "No key points available" in block
        assert block.endswith("Transcript: short transcript")


@pytest.mark.unit
class TestChatContextAssembler:
    """Test suite for ChatContextAssembler class."""

    @pytest.fixture
    def job_store(self) -> JobStateStore:
        return JobStateStore(InMemoryDocumentStore("content_id"))

    @pytest.fixture
    def history(self) -> HistoryRecorder:
        return HistoryRecorder(InMemoryDocumentStore("content_id"))

    @pytest.fixture
    def assembler(self, config, completion, job_store, history) -> ChatContextAssembler:
        return ChatContextAssembler(
            config,
            completion,
            ChatSessionStore(InMemoryDocumentStore("session_id")),
            job_store,
            history,
        )

    async def seed(self, job_store: JobStateStore, job: ProcessingJob | None = None) -> None:
        job = job or completed_job()
        await job_store.documents.insert_if_absent(job.model_dump(mode="json"))

    @pytest.mark.asyncio
    async def test_start_session_requires_completed_job(self, assembler, job_store) -> None:
        with pytest.raises(JobNotReady):
            await assembler.start_session(VIDEO_ID)

        await job_store.create_if_absent(VIDEO_ID, VIDEO_URL)
        with pytest.raises(JobNotReady):
            await assembler.start_session(VIDEO_ID)

    @pytest.mark.asyncio
    async def test_start_session_counts_chat_sessions(self, assembler, job_store, history) -> None:
        job = completed_job()
        await self.seed(job_store, job)
        await history.record(job)

        await assembler.start_session(VIDEO_ID)
        await assembler.start_session(VIDEO_ID)

        assert (await history.get(VIDEO_ID)).chat_session_count == 2

    @pytest.mark.asyncio
    async def test_answer_records_both_turns(self, assembler, job_store, completion) -> None:
        """Test a successful turn appends the question then the reply."""
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)

        reply = await assembler.answer(session.session_id, "  What is the main topic?  ")

        assert reply == "The main topic is deep work."
        stored = await assembler.get_session(session.session_id)
        assert [(m.role, m.content) for m in stored.messages] == [
            (ChatRole.USER, "What is the main topic?"),
            (ChatRole.ASSISTANT, "The main topic is deep work."),
        ]

        prompt = completion.calls_of("chat")[0]
        assert prompt[0].content == CHAT_SYSTEM_PROMPT
        assert prompt[1].role == "system"
        assert prompt[1].content.startswith("Video Context:")
        assert [(m.role, m.content) for m in prompt[2:]] == [
            ("user", "What is the main topic?")
        ]

    @pytest.mark.asyncio
    async def test_prompt_history_is_bounded(self, assembler, job_store, completion) -> None:
        """Test only the most recent window of prior messages is replayed."""
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)
        for i in range(15):
            await assembler.session_store.append_message(
                session.session_id, ChatRole.USER, f"question {i}"
            )
            await assembler.session_store.append_message(
                session.session_id, ChatRole.ASSISTANT, f"answer {i}"
            )

        await assembler.answer(session.session_id, "And the final question?")

        prompt = completion.calls_of("chat")[0]
        assert len(prompt) == 2 + 10 + 1
        assert prompt[2].content == "question 10"
        assert prompt[-2].content == "answer 14"
        assert prompt[-1].role == "user"
        assert prompt[-1].content == "And the final question?"
        assert sum(m.content == "And the final question?" for m in prompt) == 1

    @pytest.mark.asyncio
    async def test_prompt_transcript_is_bounded(self, config, assembler, job_store, completion) -> None:
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)

        await assembler.answer(session.session_id, "Summarize the transcript")

        context = completion.calls_of("chat")[0][1].content
        excerpt = context.split("Transcript: ", 1)[1].removesuffix(" ...")
        assert len(excerpt) <= config.chat_transcript_char_budget

    @pytest.mark.asyncio
    async def test_failed_completion_keeps_question(self, assembler, job_store, completion) -> None:
        """Test a failed turn leaves the question recorded without a reply."""
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)
        completion.failures["chat"] = RateLimited()

        with pytest.raises(RateLimited):
            await assembler.answer(session.session_id, "Will this fail?")

        stored = await assembler.get_session(session.session_id)
        assert [(m.role, m.content) for m in stored.messages] == [
            (ChatRole.USER, "Will this fail?")
        ]

        del completion.failures["chat"]
        await assembler.answer(session.session_id, "Will this fail?")
        stored = await assembler.get_session(session.session_id)
        assert [m.role for m in stored.messages] == [
            ChatRole.USER,
            ChatRole.USER,
            ChatRole.ASSISTANT,
        ]

    @pytest.mark.asyncio
    async def test_concurrent_turns_are_serialized(self, assembler, job_store, completion) -> None:
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)
        completion.delay = 0.01

        await asyncio.gather(
            assembler.answer(session.session_id, "first question"),
            assembler.answer(session.session_id, "second question"),
        )

        stored = await assembler.get_session(session.session_id)
        assert [m.role for m in stored.messages] == [
            ChatRole.USER,
            ChatRole.ASSISTANT,
            ChatRole.USER,
            ChatRole.ASSISTANT,
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("question", ["", "   ", "x" * 1001])
    async def test_question_length_is_validated(self, assembler, job_store, question) -> None:
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)

        with pytest.raises(ValueError, match="between 1 and 1000"):
            await assembler.answer(session.session_id, question)

        assert (await assembler.get_session(session.session_id)).messages == []

    @pytest.mark.asyncio
    async def test_unknown_and_closed_sessions(self, assembler, job_store) -> None:
        await self.seed(job_store)

        with pytest.raises(SessionNotFound):
            await assembler.answer("missing", "hello")

        session = await assembler.start_session(VIDEO_ID)
        await assembler.close_session(session.session_id)

        with pytest.raises(SessionInactive):
            await assembler.answer(session.session_id, "hello")
        assert (await assembler.get_session(session.session_id)).is_active is False

    @pytest.mark.asyncio
    async def test_unknown_sessions_leave_no_locks(self, assembler) -> None:
        for i in range(50):
            with pytest.raises(SessionNotFound):
                await assembler.answer(f"missing-{i}", "hello there")

        assert len(assembler._session_locks) == 0

    @pytest.mark.asyncio
    async def test_session_locks_are_released_after_turns(
        self, assembler, job_store, completion
    ) -> None:
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)
        completion.delay = 0.01

        turns = asyncio.gather(
            assembler.answer(session.session_id, "first question"),
            assembler.answer(session.session_id, "second question"),
        )
        await asyncio.sleep(0)
        assert len(assembler._session_locks) <= 1
        await turns
        await assembler.close_session(session.session_id)

        assert len(assembler._session_locks) == 0

    @pytest.mark.asyncio
    async def test_deleted_job_is_reported(self, assembler, job_store) -> None:
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)
        await job_store.delete(VIDEO_ID)

        with pytest.raises(JobContextUnavailable):
            await assembler.answer(session.session_id, "hello")

    @pytest.mark.asyncio
    async def test_session_management(self, assembler, job_store) -> None:
        await self.seed(job_store)
        session = await assembler.start_session(VIDEO_ID)

        listed = await assembler.list_sessions(content_id=VIDEO_ID)
        assert [s.session_id for s in listed.items] == [session.session_id]

        await assembler.delete_session(session.session_id)
        with pytest.raises(SessionNotFound):
            await assembler.get_session(session.session_id)
        with pytest.raises(SessionNotFound):
            await assembler.delete_session(session.session_id)
        with pytest.raises(SessionNotFound):
            await assembler.close_session(session.session_id)

    def test_chat_options(self) -> None:
        assert CHAT_OPTIONS.temperature == 0.4
        assert CHAT_OPTIONS.max_output_tokens == 1000

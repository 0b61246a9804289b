"""Prompt text for the video chat assistant."""

from src.video_pipeline.formatting import truncate_at_word_boundary
from src.video_pipeline.schemas import CompletionOptions, ProcessingJob

CHAT_SYSTEM_PROMPT = """You are an intelligent assistant specialized in discussing YouTube video content. You have access to the context of a specific video and can answer questions about it accurately.

Your capabilities:
1. Answer questions about the video content with specific details
2. Provide explanations and elaborations on topics mentioned in the video
3. Connect different concepts discussed in the video
4. Reference specific parts or examples from the video when relevant

Guidelines:
1. Base your answers primarily on the video content provided
2. Be conversational and helpful
3. If asked about something not covered in the video, say so clearly
4. Keep responses focused and relevant to the question
5. Maintain context from previous messages in the conversation"""

CHAT_OPTIONS = CompletionOptions(temperature=0.4, max_output_tokens=1000)


def build_context_block(job: ProcessingJob, transcript_budget: int) -> str:
    """Render the video context given to the assistant on every turn."""
    excerpt = truncate_at_word_boundary(job.transcript, transcript_budget)
    ellipsis = " ..." if len(excerpt) < len(job.transcript) else ""
    key_points = (
        "\n".join(f"• {point}" for point in job.key_points) or "No key points available"
    )

    return f"""Video Context:
Title: {job.metadata.title}
Channel: {job.metadata.channel_name}
Summary: {job.summary}

Key Points:
{key_points}

Transcript: {excerpt}{ellipsis}"""

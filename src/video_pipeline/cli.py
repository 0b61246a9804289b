"""Command-line interface for processing a video and chatting about it."""

import argparse
import asyncio

from src.api.deps import build_services
from src.utils.logging import configure_logging, get_logger

from .config import get_config
from .errors import VideoChatError
from .schemas import JobStatus, TranscriptSource

logger = get_logger(__name__)


async def main() -> None:
    """CLI entry point for the video pipeline.

    Submits the URL, polls until the job is terminal, prints the results and
    then answers each ``--ask`` question in a single chat session.
    """
    parser = argparse.ArgumentParser(
        description="Video Insight - Summarize a YouTube video and ask questions about it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Summarize a video
  python -m src.video_pipeline.cli https://www.youtube.com/watch?v=dQw4w9WgXcQ

  # Summarize and ask follow-up questions
  python -m src.video_pipeline.cli https://youtu.be/dQw4w9WgXcQ --ask "What is the main topic?"

  # Poll every 5 seconds
  python -m src.video_pipeline.cli https://youtu.be/dQw4w9WgXcQ --poll-interval 5
        """,
    )

    parser.add_argument("url", type=str, help="YouTube video URL")
    parser.add_argument(
        "--ask",
        action="append",
        default=[],
        metavar="QUESTION",
        help="Question to ask about the video (repeatable)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between status polls",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Log level for console output",
    )

    args = parser.parse_args()
    configure_logging(level=args.log_level, fmt="console")

    # Load configuration
    config = get_config()
    if args.poll_interval:
        config.poll_interval_seconds = args.poll_interval

    logger.info("cli_started", url=args.url, questions=len(args.ask))

    services = build_services(config)
    pipeline = services.pipeline

    try:
        submitted = await pipeline.submit(args.url)
    except VideoChatError as e:
        print(f"\n❌ {e.message}")
        return

    print("\n" + "=" * 60)
    print(f"Video: {submitted.content_id}")
    print("=" * 60)

    # Poll until terminal
    status = await pipeline.get_status(submitted.content_id)
    while not status.status.is_terminal:
        print(f"  ... {status.status.value} ({status.progress}%)")
        await asyncio.sleep(config.poll_interval_seconds)
        status = await pipeline.get_status(submitted.content_id)

    await pipeline.queue.stop()

    if status.status == JobStatus.FAILED:
        print(f"\n❌ Processing failed: {status.error}")
        logger.info("cli_completed", content_id=submitted.content_id, status=status.status.value)
        return

    job = await pipeline.get_job(submitted.content_id)

    print(f"\nTitle: {job.metadata.title}")
    print(f"Channel: {job.metadata.channel_name}")
    if job.transcript_source == TranscriptSource.FALLBACK:
        print("⚠️  No captions available - summary is based on title and description")
    print("\nSummary")
    print("-" * 60)
    print(job.summary)
    print("\nKey Points")
    print("-" * 60)
    for point in job.key_points:
        print(f"  • {point}")
    if job.tags:
        print(f"\nTags: {', '.join(job.tags)}")

    if args.ask:
        session = await services.chat.start_session(job.content_id)
        for question in args.ask:
            print(f"\n> {question}")
            try:
                reply = await services.chat.answer(session.session_id, question)
            except (VideoChatError, ValueError) as e:
                print(f"❌ {getattr(e, 'message', str(e))}")
                continue
            print(reply)

    print("=" * 60 + "\n")

    logger.info("cli_completed", content_id=job.content_id, status=job.status.value)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

"""Video processing pipeline.

Resolves a YouTube URL, extracts metadata and a transcript with tiered
fallbacks, and produces an AI summary, key points and tags in a detached
background run that clients poll until it reaches a terminal state.
"""

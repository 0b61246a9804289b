"""Chat sessions grounded in a processed video."""

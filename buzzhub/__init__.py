"""BuzzHub - real-time conversational messaging backend."""

__version__ = "0.1.0"

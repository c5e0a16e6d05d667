"""Voice note transcription and content pipeline."""

__version__ = "0.1.0"

"""Streaming chat and tool-call orchestration runtime."""
__version__ = "0.1.0"

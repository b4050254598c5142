"""beebot — streaming chat client for the BeeBot RAG assistant."""

__version__ = "0.1.0"

"""docvault — hybrid document retrieval and context assembly service."""

__version__ = "0.1.0"

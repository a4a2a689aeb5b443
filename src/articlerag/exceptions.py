"""
Exception types raised by ArticleRAG.
"""


class ArticleRAGError(Exception):
    """Base class for ArticleRAG errors."""


class ConfigurationError(ArticleRAGError, ValueError):
    """Missing credentials or invalid settings."""


class RetrievalError(ArticleRAGError, RuntimeError):
    """Embedding or store lookup failed while retrieving chunks."""


class GenerationError(ArticleRAGError, RuntimeError):
    """The completion service failed to produce an answer."""

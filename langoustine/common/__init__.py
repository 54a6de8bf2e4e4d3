"""
Langoustine Common Module

Shared infrastructure for the intake pipeline and the rule retriever.
"""

from .config import LangoustineConfig, load_config
from .database import Database
from .embedding_service import EmbeddingService, FakeEmbeddingService, OpenAIEmbeddingService
from .errors import (
    ClassificationError,
    ClassificationParseError,
    ConfigError,
    EmbeddingError,
    EmbeddingResponseError,
    LangoustineError,
    StorageError,
)
from .llm_client import LLMClient, LLMResponseError

__all__ = [
    "LangoustineConfig",
    "load_config",
    "Database",
    "EmbeddingService",
    "FakeEmbeddingService",
    "OpenAIEmbeddingService",
    "LLMClient",
    "LLMResponseError",
    "LangoustineError",
    "ConfigError",
    "EmbeddingError",
    "EmbeddingResponseError",
    "ClassificationError",
    "ClassificationParseError",
    "StorageError",
]

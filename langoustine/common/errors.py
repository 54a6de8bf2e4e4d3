"""Error taxonomy shared by the Langoustine components."""

from typing import Optional


class LangoustineError(Exception):
    """Base class for all Langoustine errors."""
    pass


class ConfigError(LangoustineError):
    """Invalid configuration value."""
    pass


class EmbeddingError(LangoustineError):
    """Embedding generation failed after all attempts."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[str] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class EmbeddingResponseError(EmbeddingError):
    """The provider answered, but without a usable vector. Never retried."""
    pass


class ClassificationError(LangoustineError):
    """Rule classification failed after all attempts."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[str] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class ClassificationParseError(ClassificationError):
    """The model response does not fit the verdict schema. Never retried."""
    pass


class StorageError(LangoustineError):
    """A store operation failed; ``step`` names the failing operation."""

    def __init__(self, message: str, step: str = ""):
        super().__init__(message)
        self.step = step

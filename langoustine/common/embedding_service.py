"""
Embedding Service

The only source of embeddings in Langoustine. Rule texts and task
descriptions are turned into 1536-dimensional vectors by OpenAI's
embedding API; a deterministic fake stands in for it in tests.
"""

import hashlib
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

import numpy as np
from openai import OpenAI

from .errors import EmbeddingError, EmbeddingResponseError
from .schemas import EMBEDDING_DIM

logger = logging.getLogger("langoustine.common.embedding_service")


class EmbeddingService(ABC):
    """Turns text into a fixed-length embedding vector."""

    dimensions: int = EMBEDDING_DIM

    @abstractmethod
    def generate_embedding(self, text: str) -> List[float]:
        """
        Generate the embedding for a single non-empty text.

        Raises:
            EmbeddingError: when no vector could be produced
        """
        pass


def _error_message(error: Exception) -> str:
    """Best human-readable message for a provider exception."""
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or type(error).__name__


class OpenAIEmbeddingService(EmbeddingService):
    """
    OpenAI-backed embedding generation with exponential backoff.

    Transient failures (network, provider errors) are retried up to
    ``max_retries`` additional times; the wait before retry k+1 is
    ``retry_delay_ms * 2**k``. A response without usable vector data is a
    contract violation and fails immediately.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        max_retries: int = 3,
        retry_delay_ms: int = 1000,
        client: Optional[OpenAI] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            api_key: OpenAI API key (ignored when ``client`` is given)
            model: Embedding model name
            max_retries: Additional attempts after the first call
            retry_delay_ms: Base delay of the exponential backoff
            client: Pre-built OpenAI client
            sleep: Sleep function, replaceable in tests
        """
        self.model = model
        self.max_retries = max(0, max_retries)
        self.retry_delay_ms = retry_delay_ms
        self._sleep = sleep
        # Retries are ours; the SDK must not retry underneath us
        self._client = client if client is not None else OpenAI(api_key=api_key, max_retries=0)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def generate_embedding(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        last_error: Optional[str] = None
        for attempt in range(self.max_attempts):
            try:
                response = self._client.embeddings.create(model=self.model, input=text)
            except Exception as e:
                last_error = _error_message(e)
                if attempt == self.max_attempts - 1:
                    break
                delay = self.retry_delay_ms * (2 ** attempt) / 1000.0
                logger.warning(
                    "Embedding generation attempt %d failed: %s (retrying in %.2fs)",
                    attempt + 1, last_error, delay,
                )
                self._sleep(delay)
                continue

            return self._extract_vector(response)

        message = (
            f"Failed to generate embedding after {self.max_attempts} attempts. "
            f"Last error: {last_error or 'Unknown error'}"
        )
        logger.error(message)
        raise EmbeddingError(message, attempts=self.max_attempts, last_error=last_error)

    def _extract_vector(self, response) -> List[float]:
        data = getattr(response, "data", None) or []
        vector = getattr(data[0], "embedding", None) if data else None
        if not vector:
            raise EmbeddingResponseError(
                "Invalid embedding response format from OpenAI API",
                attempts=1,
            )
        if len(vector) != self.dimensions:
            raise EmbeddingResponseError(
                f"Embedding dimension mismatch: expected {self.dimensions}, got {len(vector)}",
                attempts=1,
            )
        return np.asarray(vector, dtype=np.float32).tolist()


class FakeEmbeddingService(EmbeddingService):
    """
    Deterministic, network-free embedding service.

    Returns ``embedding`` when given, otherwise a unit vector seeded from
    the text, so equal texts always map to equal vectors. Failures can be
    forced for every call (``should_fail``) or for the first
    ``failure_attempts`` calls.
    """

    def __init__(
        self,
        embedding: Optional[Sequence[float]] = None,
        should_fail: bool = False,
        failure_attempts: int = 0,
        error_message: str = "Fake embedding generation failed",
        dimensions: int = EMBEDDING_DIM,
    ):
        self.dimensions = dimensions
        self.should_fail = should_fail
        self.failure_attempts = failure_attempts
        self.error_message = error_message
        self._embedding = list(embedding) if embedding is not None else None
        self.call_count = 0
        self.texts: List[str] = []

    def set_embedding(self, embedding: Optional[Sequence[float]]) -> None:
        self._embedding = list(embedding) if embedding is not None else None

    def reset_call_count(self) -> None:
        self.call_count = 0
        self.texts = []

    def generate_embedding(self, text: str) -> List[float]:
        self.call_count += 1
        self.texts.append(text)

        if self.should_fail:
            raise EmbeddingError(self.error_message, attempts=1, last_error=self.error_message)

        if self.call_count <= self.failure_attempts:
            message = f"{self.error_message} on call {self.call_count}"
            raise EmbeddingError(message, attempts=1, last_error=message)

        if self._embedding is not None:
            return list(self._embedding)
        return self.vector_for(text, self.dimensions)

    @staticmethod
    def vector_for(text: str, dimensions: int = EMBEDDING_DIM) -> List[float]:
        """Unit vector derived from a hash of ``text``."""
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vec = np.random.default_rng(seed).standard_normal(dimensions)
        vec /= np.linalg.norm(vec)
        return vec.astype(np.float32).tolist()

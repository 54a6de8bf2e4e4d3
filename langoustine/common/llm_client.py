"""
Provider-agnostic LLM client for Langoustine.

Supports OpenAI and Anthropic behind one interface: plain text generation
and schema-constrained generation into a pydantic model.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Type, TypeVar

import anthropic
import openai
from openai import OpenAI
from pydantic import BaseModel, ValidationError

from .llm_utils import parse_llm_json

logger = logging.getLogger("langoustine.common.llm_client")

ModelT = TypeVar("ModelT", bound=BaseModel)

SUPPORTED_PROVIDERS = ("openai", "anthropic")


class LLMResponseError(Exception):
    """The model answered, but the answer does not fit the requested schema."""
    pass


class LLMClient:
    """Unified generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        openai_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self._client = None

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            # Retry policy belongs to the caller
            self._client = OpenAI(api_key=openai_api_key, max_retries=0)
            return

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            self._client = anthropic.Anthropic(api_key=anthropic_api_key, max_retries=0)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def _messages(self, prompt: str, system: Optional[str]) -> List[dict]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            response = self._client.chat.completions.create(
                model=self.model,
                max_completion_tokens=max_tokens,
                messages=self._messages(prompt, system),
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    def generate_structured(
        self,
        prompt: str,
        response_model: Type[ModelT],
        *,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ) -> ModelT:
        """Generate an answer constrained to ``response_model``.

        OpenAI enforces the schema server-side (structured outputs);
        Anthropic answers in JSON which is validated locally.

        Raises:
            LLMResponseError: the answer is a refusal or does not fit the schema
            Exception: transport or provider failures, unchanged
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "openai":
            try:
                completion = self._client.chat.completions.parse(
                    model=self.model,
                    messages=self._messages(prompt, system),
                    response_format=response_model,
                    timeout=timeout,
                )
            except (
                ValidationError,
                openai.LengthFinishReasonError,
                openai.ContentFilterFinishReasonError,
            ) as e:
                raise LLMResponseError(str(e)) from e

            message = completion.choices[0].message
            if message.parsed is None:
                raise LLMResponseError(message.refusal or "empty structured response")
            return message.parsed

        raw = self.generate(prompt, system=system, max_tokens=max_tokens, timeout=timeout)
        data = parse_llm_json(raw)
        if not data:
            raise LLMResponseError(f"No JSON object in model response: {raw[:200]!r}")
        try:
            return response_model.model_validate(data)
        except ValidationError as e:
            raise LLMResponseError(str(e)) from e

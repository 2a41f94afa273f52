"""
Generation Service and structured-output decoding

Wraps the OpenAI-compatible chat completions API behind two capabilities:

    complete_json(system, user)  -> raw JSON text (json_object response format)
    stream(system, user)         -> async iterator of content tokens

Generated JSON is never trusted as-is: decode() validates it against a strict
pydantic schema and returns a DecodeResult holding either the parsed value or
the error. Callers treat a decode error exactly like a failed generation.
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .models import Confidence
from .settings import GenerationConfig

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class GenerationService:
    """Async chat-completions client configured from GenerationConfig."""

    def __init__(self, config: Optional[GenerationConfig] = None):
        self.config = config or GenerationConfig()
        self._client = None
        self._init_client()

    def _init_client(self):
        api_key = self.config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            logger.warning("OPENAI_API_KEY not found. Generation will fail.")
            return

        from openai import AsyncOpenAI
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.config.base_url,
            timeout=self.config.timeout,
        )
        logger.info(f"Generation client initialized with model {self.config.model}")

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def _require_client(self) -> None:
        if not self._client:
            raise RuntimeError("OpenAI client not initialized. Check OPENAI_API_KEY.")

    async def complete_json(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        """
        Request a JSON object response.

        Returns:
            The raw message content

        Raises:
            RuntimeError: if the client is missing or the response is empty
        """
        self._require_client()

        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise RuntimeError(f"Empty response from {self.config.model}")
        return content

    async def stream(
        self, system_prompt: str, user_prompt: str, temperature: float,
    ) -> AsyncIterator[str]:
        """
        Stream content tokens.

        The upstream stream is closed when the consumer stops iterating, so a
        disconnected client does not keep the provider connection open.
        """
        self._require_client()

        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            stream=True,
        )
        try:
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        finally:
            await response.close()


# =============================================================================
# Structured output decoding
# =============================================================================

@dataclass(frozen=True)
class DecodeResult(Generic[T]):
    """Either a validated value or the reason decoding failed."""
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


class _StrictPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CitationPayload(_StrictPayload):
    quote: str
    source: str
    filename: Optional[str] = None
    page_number: Optional[int] = None


class AnalysisPayload(_StrictPayload):
    """Shape the category analysis prompt asks the model to return."""
    summary: str
    legal_basis: str
    citation: CitationPayload
    complications: list[str] = []
    risks: list[str] = []
    confidence_level: Confidence


def decode(content: Optional[str], schema: Type[T]) -> DecodeResult[T]:
    """Parse and validate generated JSON against `schema`. Never raises."""
    if not content:
        return DecodeResult(error="empty content")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        return DecodeResult(error=f"invalid JSON: {e}")

    if not isinstance(data, dict):
        return DecodeResult(error=f"expected a JSON object, got {type(data).__name__}")

    try:
        return DecodeResult(value=schema.model_validate(data))
    except ValidationError as e:
        return DecodeResult(error=f"schema mismatch: {e.error_count()} error(s): {e.errors()[0]['msg']}")


def decode_analysis(content: Optional[str]) -> DecodeResult[AnalysisPayload]:
    return decode(content, AnalysisPayload)

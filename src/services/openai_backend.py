"""OpenAI chat-completions backend that drafts itineraries as JSON."""
from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from openai import AsyncOpenAI, OpenAIError

from src.errors import GenerationError
from src.models.job import Day, TimeOfDay
from src.utils.logging_utils import structured_log

from .interfaces import ItineraryGenerator

_LOG = logging.getLogger("generation.openai")

DEFAULT_MODEL = "gpt-4o"
RAW_PREVIEW_CHARS = 500


def build_itinerary_prompt(destination: str, duration_days: int) -> str:
    times = "|".join(member.value for member in TimeOfDay)
    return (
        f"Generate a {duration_days}-day travel itinerary for {destination}. "
        'Return ONLY JSON: { "itinerary": [ { "day": 1, "theme": "string", '
        f'"activities": [ {{ "time": "{times}", "description": "string", '
        '"location": "string" } ] } ] }. '
        "Rules: valid JSON only, no markdown, no extra text."
    )


def parse_itinerary(raw_text: str | None) -> List[Day]:
    """Extract the `itinerary` array from the model's JSON answer."""
    text = (raw_text or "").strip()
    if not text:
        raise GenerationError("No response content from generation backend")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError(
            f"Failed to parse LLM output as JSON: {exc}. Raw: {text[:RAW_PREVIEW_CHARS]}"
        ) from exc
    itinerary = parsed.get("itinerary") if isinstance(parsed, dict) else None
    if not isinstance(itinerary, list):
        raise GenerationError('Invalid itinerary format: expected array under "itinerary"')
    return itinerary


class OpenAIItineraryBackend(ItineraryGenerator):
    """Single chat completion in JSON-object mode; retries are left to the caller."""

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1500,
        temperature: float = 0.7,
        timeout: float | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise GenerationError("Missing OPENAI_API_KEY")
            self._client = AsyncOpenAI(
                api_key=self._api_key, timeout=self._timeout, max_retries=0
            )
        return self._client

    async def generate(self, *, destination: str, duration_days: int) -> str:
        client = self._get_client()
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": build_itinerary_prompt(destination, duration_days),
                    }
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise GenerationError(f"OpenAI API error: {exc}") from exc

        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise GenerationError("No response content from OpenAI")
        structured_log(
            _LOG,
            logging.DEBUG,
            "generation_raw_output",
            model=self.model,
            raw_preview=content[:RAW_PREVIEW_CHARS],
        )
        return content.strip()


__all__ = [
    "DEFAULT_MODEL",
    "OpenAIItineraryBackend",
    "build_itinerary_prompt",
    "parse_itinerary",
]

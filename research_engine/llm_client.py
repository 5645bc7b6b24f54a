"""OpenRouter generation client exposing structured and free-text generation."""
from __future__ import annotations

import re
import time
from typing import Any, TypeVar

from pydantic import BaseModel

from research_engine.config import settings
from research_engine.services import logger as log_service

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _strip_code_fence(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


class GenerationClient:
    """Thin wrapper over an OpenAI-compatible chat completions client.

    Every call takes an explicit model identity so callers can switch between
    the primary and the fallback backend per request.
    """

    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _temperature_for_model(model: str) -> int:
        # Some OpenAI GPT-5-compatible gateways reject temperature=0.
        lowered = (model or "").lower()
        if "gpt-5" in lowered:
            return 1
        return 0

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def _complete(
        self,
        identity: str,
        caller: str,
        timeout: float | None,
        **kwargs: Any,
    ) -> str:
        if timeout is None:
            timeout = settings.generation_timeout_seconds
        if timeout is not None:
            kwargs["timeout"] = timeout

        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=identity,
                temperature=self._temperature_for_model(identity),
                **kwargs,
            )
        except Exception as exc:
            log_service.log_llm_call(
                model=identity,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(exc),
            )
            raise

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=identity,
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return getattr(response.choices[0].message, "content", None) or ""

    async def generate_structured(
        self,
        identity: str,
        system_prompt: str,
        user_prompt: str,
        schema: type[SchemaT],
        *,
        timeout: float | None = None,
    ) -> SchemaT:
        """Generate an object matching `schema`. Invalid JSON raises."""
        text = await self._complete(
            identity,
            f"structured:{schema.__name__}",
            timeout,
            messages=self._messages(system_prompt, user_prompt),
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": schema.model_json_schema(),
                },
            },
        )
        return schema.model_validate_json(_strip_code_fence(text))

    async def generate_text(
        self,
        identity: str,
        system_prompt: str,
        user_prompt: str,
        *,
        timeout: float | None = None,
    ) -> str:
        return await self._complete(
            identity,
            "text",
            timeout,
            messages=self._messages(system_prompt, user_prompt),
        )


def get_client(http_client: Any | None = None) -> GenerationClient:
    """Get OpenRouter client via OpenAI-compatible SDK.

    SDK retries are disabled: each generation call is exactly one request,
    and model fallback is decided by `services.resilience.invoke`.
    """
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        max_retries=0,
        http_client=http_client,
    )
    return GenerationClient(openai_client)


def get_model() -> str:
    """Primary model id used for planning, extraction and clarification."""
    return settings.primary_model


def get_fallback_model() -> str | None:
    """Model id substituted after a rate-limit failure, if configured."""
    return settings.fallback_model.strip() or None


def get_deep_model() -> str:
    """Model id used to write the final report."""
    return settings.deep_model.strip() or settings.primary_model


_client: GenerationClient | None = None


def client() -> GenerationClient:
    """Get or create the generation client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client

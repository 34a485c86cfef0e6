"""OpenAI-backed generation client (Responses API)."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict

import openai

from .base import GenerationClient, GenerationResult
from ..core.config import ModelTier, settings
from ..core.errors import ConfigurationError, QuotaExceeded, UpstreamError, upstream_error
from ..core.metrics import GENERATION_CALLS
from ..services.prompts import ComposedPrompt

logger = logging.getLogger(__name__)

# Provider-side web search not enabled for the key/model
TOOL_UNSUPPORTED = re.compile(
    r"web[_-]?search|tool|unsupported|not enabled|unknown tool", re.IGNORECASE
)


def build_payload(
    prompt: ComposedPrompt,
    tier: ModelTier,
    max_output_tokens: int,
    with_web_search: bool,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": tier.model,
        "input": [
            {"role": "system", "content": prompt.system},
            {"role": "user", "content": prompt.user},
        ],
        "max_output_tokens": max_output_tokens,
    }
    if tier.temperature is not None:
        payload["temperature"] = tier.temperature
    if tier.reasoning_effort:
        payload["reasoning"] = {"effort": tier.reasoning_effort}
    if with_web_search:
        payload["tools"] = [{"type": "web_search"}]
        payload["tool_choice"] = "auto"
    return payload


def _as_dict(response: Any) -> Dict[str, Any]:
    if isinstance(response, dict):
        return response
    if hasattr(response, "model_dump"):
        return response.model_dump()
    raise TypeError(f"Unexpected provider response type: {type(response).__name__}")


class OpenAIGeneration(GenerationClient):
    provider = "openai"

    def __init__(
        self,
        max_output_tokens: int = 900,
        timeout: float = 15.0,
        base_url: str | None = None,
        client_factory: Callable[[str], Any] | None = None,
    ):
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self.base_url = base_url
        self._client_factory = client_factory or self._default_client

    def _default_client(self, api_key: str) -> openai.AsyncOpenAI:
        # Bounded deadline and no SDK-level retries: the only retry is ours.
        return openai.AsyncOpenAI(
            api_key=api_key, base_url=self.base_url, timeout=self.timeout, max_retries=0
        )

    async def _call(self, client: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        model = payload["model"]
        try:
            response = await client.responses.create(**payload)
        except openai.APIStatusError as exc:
            GENERATION_CALLS.labels(model=model, outcome="error").inc()
            message = getattr(exc, "message", None) or str(exc)
            raise upstream_error(exc.status_code, message) from exc
        except openai.APITimeoutError as exc:
            GENERATION_CALLS.labels(model=model, outcome="timeout").inc()
            raise UpstreamError(504, "Generation provider timed out") from exc
        except openai.APIConnectionError as exc:
            GENERATION_CALLS.labels(model=model, outcome="error").inc()
            raise UpstreamError(503, f"Could not reach generation provider: {exc}") from exc
        GENERATION_CALLS.labels(model=model, outcome="ok").inc()
        return _as_dict(response)

    async def generate(
        self,
        prompt: ComposedPrompt,
        tier: ModelTier,
        api_key: str | None,
        use_web_search: bool = True,
    ) -> GenerationResult:
        """Call the Responses API, retrying once without tools if web search is rejected.

        Parameters
        ----------
        prompt: ComposedPrompt
            System and user text.
        tier: ModelTier
            Model (and sampling options) picked from the caller's plan.
        api_key: str | None
            Generation credential; missing keys fail before any network call.
        use_web_search: bool
            Offer the provider's web_search tool on the first attempt.

        Returns
        -------
        GenerationResult
            Raw reply envelope plus whether web search was actually available.
        """
        if not api_key:
            raise ConfigurationError("Missing OpenAI API key")

        payload = build_payload(prompt, tier, self.max_output_tokens, use_web_search)
        async with self._client_factory(api_key) as client:
            try:
                envelope = await self._call(client, payload)
            except QuotaExceeded:
                raise
            except UpstreamError as err:
                if not (use_web_search and TOOL_UNSUPPORTED.search(err.message)):
                    raise
                logger.info("model %s rejected web_search (%s); retrying without tools", tier.model, err.message)
                payload = build_payload(prompt, tier, self.max_output_tokens, False)
                envelope = await self._call(client, payload)
                return GenerationResult(envelope=envelope, model=tier.model, used_web_search=False)
        return GenerationResult(envelope=envelope, model=tier.model, used_web_search=use_web_search)


def openai_generation() -> OpenAIGeneration:
    return OpenAIGeneration(
        max_output_tokens=settings.MAX_OUTPUT_TOKENS,
        timeout=settings.GENERATION_TIMEOUT_SECONDS,
        base_url=settings.OPENAI_BASE_URL,
    )

"""
LLMClient - single entry point for text generation
Wraps the configured provider with in-call backoff for rate-limit/overload signals
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from devscore.core.config import settings
from devscore.core.pipeline_errors import AnalysisError, TransientProviderError

logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

# 529 is the provider-specific "overloaded" status
TRANSIENT_STATUS_CODES = frozenset({429, 529})
TRANSIENT_MARKERS = ("rate limit", "rate_limit", "overloaded")


class LLMProvider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass
class LLMRequest:
    """Standardized LLM request format"""
    prompt: str
    max_tokens: int = 4096
    temperature: float = 0.4
    system_message: Optional[str] = None
    model: Optional[str] = None


@dataclass
class LLMResponse:
    """Standardized LLM response format"""
    content: str
    provider: LLMProvider
    model: str
    tokens_used: Optional[int] = None
    response_time_ms: int = 0
    attempts: int = 1


def is_transient_signal(status_code: Optional[int], text: str = "") -> bool:
    """True for rate-limit/overload responses, the only errors worth retrying in-call."""
    if status_code in TRANSIENT_STATUS_CODES:
        return True
    lowered = (text or "").lower()
    return any(marker in lowered for marker in TRANSIENT_MARKERS)


class LLMClient:
    """
    Stateless text-generation client.

    Holds configuration only; every call opens its own HTTP client, so one
    instance is safe to share between concurrent callers.
    """

    max_attempts = 3
    base_backoff = 5.0  # seconds; doubles per attempt

    def __init__(
        self,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.provider = LLMProvider(provider or settings.llm_provider)
        if api_key is None:
            api_key = settings.anthropic_api_key if self.provider == LLMProvider.ANTHROPIC else settings.openai_api_key
        self.api_key = api_key
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout_seconds

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
        if response.status_code >= 400:
            body = response.text
            if is_transient_signal(response.status_code, body):
                raise TransientProviderError(
                    f"{self.provider.value} returned {response.status_code}", status_code=response.status_code
                )
            raise AnalysisError(f"{self.provider.value} returned {response.status_code}: {body[:300]}")
        return response.json()

    async def _call_anthropic(self, request: LLMRequest) -> LLMResponse:
        if not self.api_key:
            raise AnalysisError("Anthropic API key not configured")

        payload: Dict[str, Any] = {
            "model": request.model or self.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_message:
            payload["system"] = request.system_message

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        start_time = time.time()
        data = await self._post(ANTHROPIC_MESSAGES_URL, payload, headers)
        blocks: List[Dict[str, Any]] = data.get("content") or []
        content = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        usage = data.get("usage") or {}

        return LLMResponse(
            content=content,
            provider=LLMProvider.ANTHROPIC,
            model=payload["model"],
            tokens_used=(usage.get("input_tokens") or 0) + (usage.get("output_tokens") or 0),
            response_time_ms=int((time.time() - start_time) * 1000),
        )

    async def _call_openai(self, request: LLMRequest) -> LLMResponse:
        if not self.api_key:
            raise AnalysisError("OpenAI API key not configured")

        messages = []
        if request.system_message:
            messages.append({"role": "system", "content": request.system_message})
        messages.append({"role": "user", "content": request.prompt})

        payload = {
            "model": request.model or self.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        start_time = time.time()
        data = await self._post(OPENAI_CHAT_URL, payload, headers)
        content = data["choices"][0]["message"]["content"] or ""

        return LLMResponse(
            content=content,
            provider=LLMProvider.OPENAI,
            model=payload["model"],
            tokens_used=(data.get("usage") or {}).get("total_tokens"),
            response_time_ms=int((time.time() - start_time) * 1000),
        )

    async def _call_provider(self, request: LLMRequest) -> LLMResponse:
        try:
            if self.provider == LLMProvider.ANTHROPIC:
                return await self._call_anthropic(request)
            return await self._call_openai(request)
        except (TransientProviderError, AnalysisError):
            raise
        except httpx.HTTPError as e:
            raise AnalysisError(f"{self.provider.value} request failed: {e}") from e
        except (KeyError, IndexError, ValueError) as e:
            raise AnalysisError(f"{self.provider.value} returned an unexpected payload: {e}") from e

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Run one generation with exponential backoff on rate-limit/overload.

        Anything else, and exhaustion of the attempts, surfaces as AnalysisError.
        """
        for attempt in range(self.max_attempts):
            try:
                response = await self._call_provider(request)
                response.attempts = attempt + 1
                return response
            except TransientProviderError as e:
                if attempt < self.max_attempts - 1:
                    backoff = self.base_backoff * (2 ** attempt)
                    logger.warning(
                        f"Provider busy (attempt {attempt + 1}/{self.max_attempts}), waiting {backoff:.0f}s",
                        extra={"attempt": attempt + 1, "status_code": e.status_code, "backoff_seconds": backoff},
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.error(f"Provider still busy after {self.max_attempts} attempts")
                raise AnalysisError(
                    f"Text generation unavailable after {self.max_attempts} attempts: {e}"
                ) from e

        raise AnalysisError(f"Max attempts ({self.max_attempts}) exceeded for {self.provider.value}")


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create global LLM client instance"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client

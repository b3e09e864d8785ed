"""
OpenAI-compatible chat client used as the reasoning collaborator.

- POSTs ``/chat/completions`` over httpx
- Retries transport errors, 429 and 5xx with tenacity (exponential wait)
- Caches successful replies by (messages, model, temperature) with TTL and size bound
- Never raises from ``chat``; failures come back as ``ChatResult(success=False)``
"""

import copy
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agenthub.exceptions_unified import ReasoningServiceError
from agenthub.interfaces import ChatResult

logger = logging.getLogger(__name__)


class _TransientReasoningError(ReasoningServiceError):
    """Status codes worth retrying (429, 5xx)."""


@dataclass
class ReasoningMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cache_hits: int = 0
    total_response_time: float = 0.0

    @property
    def average_response_time(self) -> float:
        completed = self.successful_requests + self.failed_requests
        return self.total_response_time / completed if completed else 0.0


class ReasoningClient:
    """Chat completions client satisfying ``IReasoningService``.

    Args:
        base_url: API root, e.g. ``https://api.openai.com/v1``
        api_key: Bearer token
        http_client: Injected ``httpx.AsyncClient`` (tests use MockTransport)
        retry_wait_multiplier: Seconds multiplier for exponential backoff
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_wait_multiplier: float = 0.5,
        retry_wait_max: float = 10.0,
        cache_size: int = 1000,
        cache_ttl_seconds: float = 300.0,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self.retry_wait_multiplier = retry_wait_multiplier
        self.retry_wait_max = retry_wait_max
        self.cache_size = cache_size
        self.cache_ttl_seconds = cache_ttl_seconds
        self.clock = clock
        self.metrics = ReasoningMetrics()
        self._cache: "OrderedDict[str, Tuple[float, ChatResult]]" = OrderedDict()
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: Any, http_client: Optional[httpx.AsyncClient] = None) -> "ReasoningClient":
        return cls(
            base_url=settings.reasoning_base_url,
            api_key=settings.reasoning_api_key,
            model=settings.reasoning_model,
            max_tokens=settings.reasoning_max_tokens,
            temperature=settings.reasoning_temperature,
            timeout_seconds=settings.reasoning_timeout_seconds,
            max_retries=settings.reasoning_max_retries,
            cache_size=settings.reasoning_cache_size,
            cache_ttl_seconds=settings.reasoning_cache_ttl_seconds,
            http_client=http_client,
        )

    # ── Public API ──────────────────────────────────────────────────────

    async def chat(
        self,
        messages: List[Dict[str, str]],
        options: Optional[Dict[str, Any]] = None,
    ) -> ChatResult:
        options = options or {}
        start = self.clock()
        self.metrics.total_requests += 1

        model = options.get("model") or self.model
        temperature = options.get("temperature", self.temperature)
        max_tokens = options.get("max_tokens") or self.max_tokens

        key = self._cache_key(messages, model, temperature)
        cached = self._get_cached(key)
        if cached is not None:
            return cached

        body = {
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        logger.debug(
            f"Reasoning request: {len(messages)} messages to {model} "
            f"(agent_type={options.get('agent_type', 'n/a')})"
        )

        try:
            data = await self._post_with_retry(body)
            content = data["choices"][0]["message"]["content"]
        except (ReasoningServiceError, httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            elapsed_ms = (self.clock() - start) * 1000
            self.metrics.failed_requests += 1
            self.metrics.total_response_time += elapsed_ms
            logger.error(f"Reasoning chat failed: {e}")
            return ChatResult(
                content="",
                success=False,
                error=str(e),
                model=model,
                response_time_ms=elapsed_ms,
            )

        elapsed_ms = (self.clock() - start) * 1000
        self.metrics.successful_requests += 1
        self.metrics.total_response_time += elapsed_ms
        result = ChatResult(
            content=content or "",
            success=True,
            model=data.get("model", model),
            usage=dict(data.get("usage") or {}),
            response_time_ms=elapsed_ms,
        )
        self._set_cached(key, result)
        return result

    def get_metrics(self) -> Dict[str, Any]:
        m = self.metrics
        return {
            "total_requests": m.total_requests,
            "successful_requests": m.successful_requests,
            "failed_requests": m.failed_requests,
            "cache_hits": m.cache_hits,
            "average_response_time": m.average_response_time,
            "cache_size": len(self._cache),
            "success_rate": (
                m.successful_requests / m.total_requests * 100 if m.total_requests else 0.0
            ),
        }

    def clear_cache(self) -> None:
        self._cache.clear()

    async def health_check(self) -> Dict[str, Any]:
        result = await self.chat(
            [{"role": "user", "content": "Health check - respond with OK"}],
            {"max_tokens": 10, "temperature": 0},
        )
        return {
            "healthy": result.success,
            "response_time_ms": result.response_time_ms,
            "model": self.model,
            "error": result.error,
        }

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── HTTP ────────────────────────────────────────────────────────────

    async def _post_with_retry(self, body: Dict[str, Any]) -> Dict[str, Any]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_wait_multiplier, max=self.retry_wait_max),
            retry=retry_if_exception_type((httpx.TransportError, _TransientReasoningError)),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(f"Retry attempt {attempt.retry_state.attempt_number} for reasoning request")
                return await self._post(body)
        raise ReasoningServiceError("Reasoning request was not attempted")

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ReasoningServiceError("Reasoning API key not configured", is_recoverable=False)
        client = self._get_client()
        r = await client.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json=body,
        )
        if r.status_code == 429 or r.status_code >= 500:
            raise _TransientReasoningError(f"Reasoning API error: {r.status_code}")
        if r.status_code != 200:
            raise ReasoningServiceError(f"Reasoning API error: {r.status_code}")
        return r.json()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    # ── Cache ───────────────────────────────────────────────────────────

    @staticmethod
    def _cache_key(messages: List[Dict[str, str]], model: str, temperature: float) -> str:
        raw = json.dumps(
            {
                "messages": [{"role": m.get("role"), "content": m.get("content")} for m in messages],
                "model": model,
                "temperature": temperature,
            },
            sort_keys=True,
        )
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def _get_cached(self, key: str) -> Optional[ChatResult]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if self.clock() - stored_at >= self.cache_ttl_seconds:
            del self._cache[key]
            return None
        self.metrics.cache_hits += 1
        logger.debug("Cache hit for reasoning request")
        hit = copy.copy(result)
        hit.cached = True
        return hit

    def _set_cached(self, key: str, result: ChatResult) -> None:
        if self.cache_size <= 0:
            return
        if key in self._cache:
            del self._cache[key]
        while len(self._cache) >= self.cache_size:
            self._cache.popitem(last=False)
        self._cache[key] = (self.clock(), result)

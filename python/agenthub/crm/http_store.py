"""CRM REST API store over httpx.

Each entity maps to ``{base_url}/{entity}``. Entities listed in
``bypass_entities`` (leads by default) are sent with the bypass auth header.
HTTP and network failures come back as ``CRMResult(success=False)``.
"""

import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from agenthub.exceptions_unified import CRMStoreError
from agenthub.interfaces import CRMResult

logger = logging.getLogger(__name__)


class HttpCRMStore:
    """``ICRMStore`` backed by the CRM REST API."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        bypass_header: str = "X-bypass-Auth",
        bypass_value: str = "true",
        bypass_entities: Iterable[str] = ("leads",),
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.bypass_header = bypass_header
        self.bypass_value = bypass_value
        self.bypass_entities = set(bypass_entities)
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: Any, http_client: Optional[httpx.AsyncClient] = None) -> "HttpCRMStore":
        return cls(
            base_url=settings.crm_base_url,
            timeout_seconds=settings.crm_timeout_seconds,
            bypass_header=settings.crm_bypass_header,
            bypass_value=settings.crm_bypass_value,
            http_client=http_client,
        )

    async def create(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        return await self._request("POST", entity, json=data)

    async def get(self, entity: str, data: Optional[Dict[str, Any]] = None) -> CRMResult:
        data = dict(data or {})
        record_id = data.pop("id", None)
        if record_id is not None:
            return await self._request("GET", entity, f"/{record_id}")
        return await self._request("GET", entity, params=data or None)

    async def update(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        data = dict(data)
        record_id = data.pop("id", None)
        if record_id is None:
            return _failure(CRMStoreError(f"update {entity} requires an id"))
        return await self._request("PUT", entity, f"/{record_id}", json=data)

    async def delete(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        record_id = data.get("id")
        if record_id is None:
            return _failure(CRMStoreError(f"delete {entity} requires an id"))
        return await self._request("DELETE", entity, f"/{record_id}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── Internals ───────────────────────────────────────────────────────

    def _headers(self, entity: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if entity in self.bypass_entities:
            headers[self.bypass_header] = self.bypass_value
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    async def _request(
        self,
        method: str,
        entity: str,
        path: str = "",
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> CRMResult:
        url = f"{self.base_url}/{entity}{path}"
        logger.debug(f"{method} {url}")
        try:
            r = await self._get_client().request(
                method, url, headers=self._headers(entity), json=json, params=params
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            return _failure(CRMStoreError(f"Network error - server unreachable: {e}"))

        body = _body(r)
        if r.is_success:
            return CRMResult(success=True, data=body, status=r.status_code)
        logger.warning(f"{method} {url} returned {r.status_code}")
        return CRMResult(
            success=False,
            error=body if isinstance(body, str) else str(body),
            status=r.status_code,
        )


def _body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _failure(error: CRMStoreError) -> CRMResult:
    return CRMResult(success=False, error=error.message, status=error.status)

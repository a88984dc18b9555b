from __future__ import annotations

import re
from types import TracebackType
from typing import Any

import httpx
import structlog

from app.shared.adapters.http_retry import execute_with_http_retry
from app.shared.core.config import get_settings
from app.shared.core.exceptions import ConfigurationError, ExternalAPIError
from app.shared.core.ops_metrics import PROVIDER_REQUEST_FAILURES

logger = structlog.get_logger()

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


def _endpoint_label(path: str) -> str:
    """Collapse numeric ids so metric labels stay low-cardinality."""
    return _NUMERIC_SEGMENT.sub("/{id}", path.split("?", 1)[0])


class LinodeClient:
    """
    Bearer-token client for the Linode / Akamai Cloud v4 REST API.

    Use as an async context manager; one instance owns one pooled
    httpx.AsyncClient for the lifetime of an account's pipeline run.
    """

    def __init__(
        self,
        api_token: str | None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        page_size: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not api_token:
            raise ConfigurationError("Provider account has no API token configured.")
        settings = get_settings()
        self.base_url = (base_url or settings.PROVIDER_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.PROVIDER_MAX_RETRIES
        self.page_size = page_size or settings.PROVIDER_PAGE_SIZE
        self.retry_backoff = settings.PROVIDER_RETRY_BACKOFF_SECONDS
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Accept": "application/json",
        }
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "LinodeClient":
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers,
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a single JSON object. Raises ExternalAPIError on any failure."""
        if self._client is None:
            raise RuntimeError("LinodeClient must be used as an async context manager")
        client = self._client
        url = self._url(path)
        try:
            response = await execute_with_http_retry(
                request=lambda: client.get(url, params=params, headers=self._headers),
                url=url,
                max_retries=self.max_retries,
                retry_http_status_log_event="provider_retry_http_status",
                retry_transport_log_event="provider_retry_transport_error",
                status_error_prefix="Provider request failed",
                transport_error_prefix="Provider request failed",
                retry_sleep_base_seconds=self.retry_backoff,
            )
        except ExternalAPIError:
            PROVIDER_REQUEST_FAILURES.labels(endpoint=_endpoint_label(path)).inc()
            raise

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalAPIError(
                f"Provider request returned invalid JSON payload: {path}"
            ) from exc
        if not isinstance(payload, dict):
            raise ExternalAPIError(f"Provider request returned a non-object payload: {path}")
        return payload

    async def list_all(
        self, path: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Follow `page`/`pages` pagination to completion and return every item."""
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            payload = await self.get(
                path, params={**(params or {}), "page": page, "page_size": self.page_size}
            )
            data = payload.get("data") or []
            items.extend(item for item in data if isinstance(item, dict))
            try:
                pages = int(payload.get("pages") or 1)
            except (TypeError, ValueError):
                pages = 1
            if page >= pages:
                break
            page += 1
        return items

    async def list_page(self, path: str, page_size: int) -> list[dict[str, Any]]:
        """Fetch only the first page (used for feeds that are read newest-first)."""
        payload = await self.get(path, params={"page": 1, "page_size": page_size})
        return [item for item in payload.get("data") or [] if isinstance(item, dict)]

"""Typesense REST backend (httpx). Returns contract models."""

import asyncio
import logging
from typing import Any

import httpx

from multisearch.contracts.typesense_v1 import CollectionSchema, SearchResponse
from multisearch.core.config import config
from multisearch.errors import BackendError
from multisearch.gateway.interface import SearchBackendPort

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-TYPESENSE-API-KEY"
RETRYABLE_STATUS = (429, 500, 502, 503, 504)


def _encode_params(params: dict[str, Any]) -> dict[str, str | int | float]:
    """Query-string form of search params: no None values, lowercase booleans."""
    encoded: dict[str, str | int | float] = {}
    for key, value in params.items():
        if value is None:
            continue
        if key == "preset" and not value:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            encoded[key] = ",".join(str(v) for v in value)
        else:
            encoded[key] = value
    return encoded


class TypesenseBackend(SearchBackendPort):
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        num_retries: int | None = None,
        retry_interval_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or config.typesense_url).rstrip("/")
        self._api_key = (api_key if api_key is not None else config.typesense_api_key).strip()
        self._num_retries = max(
            0, config.num_retries if num_retries is None else num_retries
        )
        self._retry_interval = (
            config.retry_interval_seconds
            if retry_interval_seconds is None
            else retry_interval_seconds
        )
        self.client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout_seconds or config.connection_timeout_seconds,
            headers={API_KEY_HEADER: self._api_key},
            transport=transport,
        )

    def _should_retry(self, e: Exception) -> bool:
        if isinstance(e, httpx.HTTPStatusError):
            return e.response.status_code in RETRYABLE_STATUS
        return isinstance(e, httpx.TransportError)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        last_error: Exception | None = None
        for attempt in range(self._num_retries + 1):
            try:
                response = await self.client.get(path, params=params)
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPStatusError, httpx.TransportError) as e:
                last_error = e
                if attempt < self._num_retries and self._should_retry(e):
                    logger.debug(
                        "Typesense GET %s failed (attempt %s), retrying: %s",
                        path,
                        attempt + 1,
                        e,
                    )
                    await asyncio.sleep(self._retry_interval)
                    continue
                raise
        raise RuntimeError(f"Typesense GET {path} failed") from last_error

    async def execute_search(
        self,
        collection: str,
        params: dict[str, Any],
    ) -> SearchResponse:
        path = f"/collections/{collection}/documents/search"
        try:
            data = await self._get_json(path, params=_encode_params(params))
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"Search failed for '{collection}': HTTP {e.response.status_code} {_error_text(e.response)}",
                collection=collection,
                params=params,
                original=e,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise BackendError.for_search(collection, params, e) from e
        return SearchResponse.model_validate(data)

    async def fetch_schema(self, collection: str) -> CollectionSchema:
        try:
            data = await self._get_json(f"/collections/{collection}")
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"Failed to retrieve schema for '{collection}': HTTP {e.response.status_code} {_error_text(e.response)}",
                collection=collection,
                original=e,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise BackendError.for_schema(collection, e) from e
        return CollectionSchema.model_validate(data)

    async def close(self) -> None:
        await self.client.aclose()


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return str(body)[:200]

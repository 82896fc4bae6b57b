"""Caching search gateway: memoizes and deduplicates calls to a search backend.

Search results and collection schemas share one ResultCache owned by the
gateway instance. Concurrent identical requests share a single in-flight
backend call.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from multisearch.contracts.typesense_v1 import (
    CollectionSchema,
    SearchParams,
    SearchResponse,
)
from multisearch.core.config import config
from multisearch.core.logger import logger
from multisearch.errors import BackendError
from multisearch.gateway.cache import ResultCache, make_cache_key, make_schema_key
from multisearch.gateway.interface import SearchBackendPort

T = TypeVar("T")


def _request_params(params: SearchParams | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(params, SearchParams):
        return params.to_request()
    return {k: v for k, v in params.items() if v is not None}


@dataclass
class _InFlight:
    task: asyncio.Future
    waiters: int = 0


class CachingSearchGateway:
    """Search and schema lookups against one backend, with opt-in caching."""

    def __init__(
        self,
        backend: SearchBackendPort,
        cache_timeout_ms: int | None = None,
        max_cache_entries: int | None = None,
        cache: ResultCache | None = None,
    ):
        self._backend = backend
        if cache is None:
            cache = ResultCache(
                timeout_ms=(
                    config.cache_timeout_ms if cache_timeout_ms is None else cache_timeout_ms
                ),
                max_entries=(
                    config.max_cache_entries
                    if max_cache_entries is None
                    else max_cache_entries
                ),
            )
        self._cache = cache
        self._in_flight: dict[str, _InFlight] = {}

    @property
    def backend(self) -> SearchBackendPort:
        return self._backend

    async def search(
        self,
        collection: str,
        params: SearchParams | Mapping[str, Any],
        use_cache: bool = True,
    ) -> SearchResponse:
        """Search ``collection``; raises BackendError on any backend failure.

        Each caller gets its own copy of the response; the cached entry is
        never handed out.
        """
        request = _request_params(params)
        if not use_cache:
            return await self._fetch_search(collection, request, cache_key=None)

        key = make_cache_key(collection, request)
        cached = self._cache.get(key)
        if cached is not None:
            logger.backend_call("search", collection, 0.0, True, cached=True)
            return cached.model_copy(deep=True)
        response = await self._shared(
            key, lambda: self._fetch_search(collection, request, cache_key=key)
        )
        return response.model_copy(deep=True)

    async def batch_search(
        self,
        collection: str,
        params_list: Sequence[SearchParams | Mapping[str, Any]],
        use_cache: bool = True,
    ) -> list[SearchResponse]:
        """Run several searches on one collection concurrently.

        Responses keep the order of ``params_list``. The first failure cancels
        the outstanding searches and is raised as-is.
        """
        if not params_list:
            return []
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(self.search(collection, params, use_cache))
                    for params in params_list
                ]
        except ExceptionGroup as group:
            raise group.exceptions[0] from None
        return [task.result() for task in tasks]

    async def get_schema(self, collection: str) -> CollectionSchema:
        """Fetch the collection schema through the shared result cache."""
        key = make_schema_key(collection)
        cached = self._cache.get(key)
        if cached is not None:
            logger.backend_call("schema", collection, 0.0, True, cached=True)
            return cached.model_copy(deep=True)
        schema = await self._shared(key, lambda: self._fetch_schema(collection, key))
        return schema.model_copy(deep=True)

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> dict[str, int]:
        return self._cache.stats()

    async def close(self) -> None:
        await self._backend.close()

    async def _shared(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        entry = self._in_flight.get(key)
        if entry is None:
            entry = _InFlight(task=asyncio.ensure_future(factory()))
            self._in_flight[key] = entry
            entry.task.add_done_callback(lambda _, k=key, e=entry: self._forget(k, e))
        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            # Last waiter gone: nobody needs the backend call any more.
            # Unregister first so a later identical call starts a fresh one.
            if entry.waiters <= 1 and not entry.task.done():
                self._forget(key, entry)
                entry.task.cancel()
            raise
        finally:
            entry.waiters -= 1

    def _forget(self, key: str, entry: _InFlight) -> None:
        if self._in_flight.get(key) is entry:
            del self._in_flight[key]

    async def _fetch_search(
        self,
        collection: str,
        request: dict[str, Any],
        cache_key: str | None,
    ) -> SearchResponse:
        t0 = time.monotonic()
        try:
            raw = await self._backend.execute_search(collection, dict(request))
            response = (
                raw
                if isinstance(raw, SearchResponse)
                else SearchResponse.model_validate(raw)
            )
        except BackendError as e:
            logger.backend_call(
                "search", collection, time.monotonic() - t0, False, error_reason=str(e)
            )
            raise
        except Exception as e:
            logger.backend_call(
                "search", collection, time.monotonic() - t0, False, error_reason=str(e)
            )
            raise BackendError.for_search(collection, request, e) from e

        logger.backend_call("search", collection, time.monotonic() - t0, True)
        if cache_key is not None:
            self._cache.put(cache_key, response)
        return response

    async def _fetch_schema(self, collection: str, cache_key: str) -> CollectionSchema:
        t0 = time.monotonic()
        try:
            raw = await self._backend.fetch_schema(collection)
            schema = (
                raw
                if isinstance(raw, CollectionSchema)
                else CollectionSchema.model_validate(raw)
            )
        except BackendError as e:
            logger.backend_call(
                "schema", collection, time.monotonic() - t0, False, error_reason=str(e)
            )
            raise
        except Exception as e:
            logger.backend_call(
                "schema", collection, time.monotonic() - t0, False, error_reason=str(e)
            )
            raise BackendError.for_schema(collection, e) from e

        logger.backend_call("schema", collection, time.monotonic() - t0, True)
        self._cache.put(cache_key, schema)
        return schema

"""Multi-collection aggregator: parallel fan-out, per-collection failure isolation, merge.

Pipeline:
  1. Validate collection configs and options (ConfigurationError, no I/O)
  2. Per collection, concurrently: schema (only when fields/sort must be
     inferred) -> field planning -> cached search
  3. Wait for every branch to settle; a failed branch becomes an error entry
  4. Annotate and merge the successful result sets
  5. Build the response for the requested result mode
"""

import asyncio
import time
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from multisearch.aggregator.constants import ResultMode
from multisearch.aggregator.merger import ResultMerger
from multisearch.aggregator.models import (
    AggregateOptions,
    AggregateResponse,
    CollectionQueryConfig,
    MergedHit,
    RawCollectionResult,
)
from multisearch.aggregator.planner import QueryFieldPlanner
from multisearch.contracts.typesense_v1 import CollectionSchema, FacetCount
from multisearch.core.logger import logger
from multisearch.errors import BackendError, ConfigurationError
from multisearch.gateway.client import CachingSearchGateway


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 1)


def _error_message(error: BaseException) -> str:
    text = str(error).strip()
    return text or type(error).__name__


def _coerce_config(item: Any) -> CollectionQueryConfig:
    if isinstance(item, CollectionQueryConfig):
        return item
    if isinstance(item, str):
        item = {"collection": item}
    if isinstance(item, Mapping):
        try:
            return CollectionQueryConfig.model_validate(item)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid collection config: {e}") from e
    raise ConfigurationError(f"Invalid collection config: {item!r}")


class MultiCollectionAggregator:
    """Searches several collections in parallel and merges their results."""

    def __init__(
        self,
        gateway: CachingSearchGateway,
        planner: QueryFieldPlanner | None = None,
        merger: ResultMerger | None = None,
    ):
        self._gateway = gateway
        self._planner = planner or QueryFieldPlanner()
        self._merger = merger or ResultMerger()
        self._schema_cache: dict[str, CollectionSchema] = {}

    @property
    def gateway(self) -> CachingSearchGateway:
        return self._gateway

    def clear_schema_cache(self) -> None:
        """Forget fetched schemas; the gateway's result cache is untouched."""
        self._schema_cache.clear()

    def _validate_collections(
        self, collections: Sequence[CollectionQueryConfig | Mapping[str, Any] | str]
    ) -> list[CollectionQueryConfig]:
        if not collections:
            raise ConfigurationError("At least one collection must be configured")
        configs = [_coerce_config(c) for c in collections]
        seen: set[str] = set()
        for c in configs:
            if c.collection in seen:
                raise ConfigurationError(
                    f"Collection '{c.collection}' is configured more than once"
                )
            seen.add(c.collection)
        return configs

    def _resolve_options(
        self,
        options: AggregateOptions | Mapping[str, Any] | None,
        overrides: dict[str, Any],
    ) -> AggregateOptions:
        if options is None and not overrides:
            return AggregateOptions()
        if isinstance(options, AggregateOptions):
            if not overrides:
                return options
            data = {**options.model_dump(), **overrides}
        else:
            data = {**dict(options or {}), **overrides}
        try:
            return AggregateOptions.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid aggregation options: {e}") from e

    async def aggregate(
        self,
        query: str,
        collections: Sequence[CollectionQueryConfig | Mapping[str, Any] | str],
        options: AggregateOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> AggregateResponse:
        """Search every configured collection and merge the results.

        Never raises because a collection failed; failures are reported in
        ``errors_by_collection``. Raises ConfigurationError for an empty
        collection list or invalid options, before any backend call.
        """
        configs = self._validate_collections(collections)
        opts = self._resolve_options(options, overrides)
        t0 = time.monotonic()

        outcomes = await asyncio.gather(
            *(self._search_collection(query, c, opts) for c in configs),
            return_exceptions=True,
        )

        results: list[RawCollectionResult] = []
        for config, outcome in zip(configs, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Search failed for %s: %s", config.collection, outcome)
                outcome = RawCollectionResult(config=config, error=_error_message(outcome))
            results.append(outcome)

        response = self._build_response(query, results, opts, _elapsed_ms(t0))
        logger.aggregation_done(
            query,
            [c.collection for c in configs],
            list(response.errors_by_collection),
            response.found,
            response.search_time_ms / 1000,
        )
        return response

    async def _collection_schema(self, collection: str) -> CollectionSchema:
        schema = self._schema_cache.get(collection)
        if schema is None:
            schema = await self._gateway.get_schema(collection)
            self._schema_cache[collection] = schema
        return schema

    async def _search_collection(
        self,
        query: str,
        config: CollectionQueryConfig,
        options: AggregateOptions,
    ) -> RawCollectionResult:
        """One branch: never raises except on cancellation."""
        t0 = time.monotonic()
        try:
            schema = (
                await self._collection_schema(config.collection)
                if config.needs_schema
                else None
            )
            resolved = self._planner.resolve(config, schema)
            params = self._planner.build_search_params(query, config, resolved, options)
            response = await self._gateway.search(config.collection, params, use_cache=True)
        except BackendError as e:
            # Already reported by the gateway's backend_call event.
            logger.debug("Collection %s failed: %s", config.collection, e)
            return RawCollectionResult(
                config=config, error=_error_message(e), elapsed_ms=_elapsed_ms(t0)
            )
        except Exception as e:
            logger.warning("Search failed for %s: %s", config.collection, e)
            return RawCollectionResult(
                config=config, error=_error_message(e), elapsed_ms=_elapsed_ms(t0)
            )
        logger.debug(
            "Collection %s: %s hits of %s found",
            config.collection,
            len(response.hits),
            response.found,
        )
        return RawCollectionResult(
            config=config, response=response, elapsed_ms=_elapsed_ms(t0)
        )

    def _build_response(
        self,
        query: str,
        results: list[RawCollectionResult],
        options: AggregateOptions,
        elapsed_ms: float,
    ) -> AggregateResponse:
        mode = ResultMode(options.result_mode)
        succeeded = [r for r in results if r.ok]
        groups = self._merger.annotate(
            succeeded,
            normalize=options.normalize_scores,
            enable_highlighting=options.enable_highlighting,
        )

        hits: list[MergedHit] = []
        if mode.includes_interleaved:
            hits = self._merger.interleave(
                groups, options.merge_strategy, options.global_max_results
            )

        hits_by_collection: dict[str, list[MergedHit]] | None = None
        if mode.includes_per_collection:
            hits_by_collection = {
                r.config.collection: group for r, group in zip(succeeded, groups)
            }

        included: dict[str, int] = {r.config.collection: 0 for r in succeeded}
        if mode == ResultMode.INTERLEAVED:
            for hit in hits:
                included[hit.collection] += 1
        else:
            for name, group in (hits_by_collection or {}).items():
                included[name] = len(group)

        facets: dict[str, list[FacetCount]] = {
            r.config.collection: r.facet_counts
            for r in succeeded
            if r.config.wants_facets and r.facet_counts
        }

        if mode == ResultMode.PER_COLLECTION:
            found = sum(len(g) for g in groups)
        else:
            found = len(hits)

        return AggregateResponse(
            query=query,
            result_mode=mode,
            hits=hits,
            found=found,
            hits_by_collection=hits_by_collection,
            total_found_by_collection={r.config.collection: r.found for r in succeeded},
            included_by_collection=included,
            search_time_ms=elapsed_ms,
            search_time_by_collection={r.config.collection: r.elapsed_ms for r in results},
            facets_by_collection=facets,
            errors_by_collection={
                r.config.collection: r.error for r in results if r.error is not None
            },
        )

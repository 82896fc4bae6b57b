"""Caching search gateway and multi-collection aggregation for a document-search backend."""

from multisearch.aggregator import (
    AggregateOptions,
    AggregateResponse,
    CollectionQueryConfig,
    MergeStrategy,
    MultiCollectionAggregator,
    ResultMode,
)
from multisearch.errors import BackendError, ConfigurationError, MultiSearchError
from multisearch.gateway import CachingSearchGateway, ResultCache, SearchBackendPort

__all__ = [
    "AggregateOptions",
    "AggregateResponse",
    "BackendError",
    "CachingSearchGateway",
    "CollectionQueryConfig",
    "ConfigurationError",
    "MergeStrategy",
    "MultiCollectionAggregator",
    "MultiSearchError",
    "ResultCache",
    "ResultMode",
    "SearchBackendPort",
]

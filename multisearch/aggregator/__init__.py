"""Multi-collection aggregation: field planning, parallel fan-out and result merging."""

from multisearch.aggregator.aggregator import MultiCollectionAggregator
from multisearch.aggregator.constants import MergeStrategy, ResultMode
from multisearch.aggregator.merger import ResultMerger
from multisearch.aggregator.models import (
    AggregateOptions,
    AggregateResponse,
    CollectionQueryConfig,
    HighlightConfig,
    MergedHit,
    RawCollectionResult,
)
from multisearch.aggregator.planner import QueryFieldPlanner

__all__ = [
    "AggregateOptions",
    "AggregateResponse",
    "CollectionQueryConfig",
    "HighlightConfig",
    "MergeStrategy",
    "MergedHit",
    "MultiCollectionAggregator",
    "QueryFieldPlanner",
    "RawCollectionResult",
    "ResultMerger",
    "ResultMode",
]

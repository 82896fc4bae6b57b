"""Shared typed constants for multi-collection aggregation."""

from enum import StrEnum


class MergeStrategy(StrEnum):
    """How per-collection hit lists are combined into one sequence."""

    RELEVANCE = "relevance"
    ROUND_ROBIN = "roundRobin"
    COLLECTION_ORDER = "collectionOrder"


class ResultMode(StrEnum):
    """Which result shapes an aggregation returns."""

    INTERLEAVED = "interleaved"
    PER_COLLECTION = "perCollection"
    BOTH = "both"

    @property
    def includes_interleaved(self) -> bool:
        return self in (ResultMode.INTERLEAVED, ResultMode.BOTH)

    @property
    def includes_per_collection(self) -> bool:
        return self in (ResultMode.PER_COLLECTION, ResultMode.BOTH)


DEFAULT_MAX_RESULTS = 20
MAX_FACET_VALUES = 100
DEFAULT_HIGHLIGHT_START_TAG = "<mark>"
DEFAULT_HIGHLIGHT_END_TAG = "</mark>"
DEFAULT_HIGHLIGHT_AFFIX_NUM_TOKENS = 4

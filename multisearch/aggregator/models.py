"""Request, intermediate and response models for multi-collection aggregation."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from multisearch.aggregator.constants import (
    DEFAULT_HIGHLIGHT_AFFIX_NUM_TOKENS,
    DEFAULT_HIGHLIGHT_END_TAG,
    DEFAULT_HIGHLIGHT_START_TAG,
    DEFAULT_MAX_RESULTS,
    MergeStrategy,
    ResultMode,
)
from multisearch.contracts.typesense_v1 import FacetCount, SearchHit, SearchResponse


def _join_fields(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        joined = ",".join(str(v).strip() for v in value if str(v).strip())
        return joined or None
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CollectionQueryConfig(BaseModel):
    """Per-collection search intent for one aggregation call."""

    model_config = ConfigDict(frozen=True)

    collection: str = Field(min_length=1, description="Backend collection name")
    namespace: str | None = Field(
        default=None, description="Optional tag for categorizing hits, e.g. 'product'"
    )
    query_by: str | None = Field(
        default=None, description="Fields to search; inferred from schema when absent"
    )
    sort_by: str | None = Field(
        default=None, description="Sort expression; schema default when absent"
    )
    filter_by: str | None = None
    facet_by: str | None = None
    include_facets: bool | None = Field(
        default=None,
        description="Return facet counts; defaults to on when facet_by is given",
    )
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1)
    weight: float = Field(default=1.0, ge=0.0, description="Relevance weight multiplier")
    include_fields: str | None = None
    exclude_fields: str | None = None

    @field_validator(
        "query_by", "facet_by", "include_fields", "exclude_fields", mode="before"
    )
    @classmethod
    def _normalize_field_lists(cls, value: Any) -> Any:
        return _join_fields(value)

    @property
    def wants_facets(self) -> bool:
        return bool(self.facet_by) and self.include_facets is not False

    @property
    def needs_schema(self) -> bool:
        return not self.query_by or not self.sort_by


class HighlightConfig(BaseModel):
    start_tag: str = DEFAULT_HIGHLIGHT_START_TAG
    end_tag: str = DEFAULT_HIGHLIGHT_END_TAG
    affix_num_tokens: int = Field(default=DEFAULT_HIGHLIGHT_AFFIX_NUM_TOKENS, ge=0)


class AggregateOptions(BaseModel):
    """Per-call aggregation settings."""

    merge_strategy: MergeStrategy = MergeStrategy.RELEVANCE
    normalize_scores: bool = True
    result_mode: ResultMode = ResultMode.INTERLEAVED
    global_max_results: int | None = Field(default=None, ge=1)
    enable_highlighting: bool = False
    highlight_config: HighlightConfig = Field(default_factory=HighlightConfig)


class ResolvedQueryConfig(BaseModel):
    """Search fields and sort after schema-based defaults are applied."""

    query_by: str
    sort_by: str | None = None


class RawCollectionResult(BaseModel):
    """Outcome of searching one collection: a response or an error, never both."""

    config: CollectionQueryConfig
    response: SearchResponse | None = None
    error: str | None = None
    elapsed_ms: float = 0.0

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "RawCollectionResult":
        if (self.response is None) == (self.error is None):
            raise ValueError("exactly one of response or error must be set")
        return self

    @property
    def ok(self) -> bool:
        return self.response is not None

    @property
    def hits(self) -> list[SearchHit]:
        return self.response.hits if self.response is not None else []

    @property
    def found(self) -> int:
        return self.response.found if self.response is not None else 0

    @property
    def facet_counts(self) -> list[FacetCount]:
        return self.response.facet_counts if self.response is not None else []


class HighlightSpan(BaseModel):
    """Uniform highlight for one field of one hit."""

    field: str
    snippet: str | None = None
    snippets: list[str] = Field(default_factory=list)
    matched_tokens: list[Any] = Field(default_factory=list)
    value: str | None = None


class MergedHit(BaseModel):
    """A hit annotated with its origin and its scores."""

    document: dict[str, Any] = Field(default_factory=dict)
    collection: str
    namespace: str | None = None
    collection_rank: int = Field(ge=1, description="1-based rank within its collection")
    original_score: float
    normalized_score: float
    collection_weight: float
    merged_score: float
    highlights: list[HighlightSpan] = Field(default_factory=list)


class AggregateResponse(BaseModel):
    """Final answer to one aggregation call."""

    query: str
    result_mode: ResultMode = ResultMode.INTERLEAVED
    hits: list[MergedHit] = Field(default_factory=list)
    found: int = 0
    hits_by_collection: dict[str, list[MergedHit]] | None = None
    total_found_by_collection: dict[str, int] = Field(default_factory=dict)
    included_by_collection: dict[str, int] = Field(default_factory=dict)
    search_time_ms: float = 0.0
    search_time_by_collection: dict[str, float] = Field(default_factory=dict)
    facets_by_collection: dict[str, list[FacetCount]] = Field(default_factory=dict)
    errors_by_collection: dict[str, str] = Field(default_factory=dict)

    @property
    def is_degraded(self) -> bool:
        return bool(self.errors_by_collection)

    @property
    def succeeded_collections(self) -> list[str]:
        return list(self.total_found_by_collection.keys())

    def results_for(self, collection: str) -> list[MergedHit]:
        if self.hits_by_collection is not None:
            return list(self.hits_by_collection.get(collection, []))
        return [h for h in self.hits if h.collection == collection]

    def collection_stats(self) -> dict[str, dict[str, float]]:
        return {
            name: {
                "found": found,
                "included": self.included_by_collection.get(name, 0),
                "search_time_ms": self.search_time_by_collection.get(name, 0.0),
            }
            for name, found in self.total_found_by_collection.items()
        }

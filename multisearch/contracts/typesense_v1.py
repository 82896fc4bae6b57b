"""Typesense search contract v1.

Defines the canonical types exchanged with the search backend:
  - Query parameters (SearchParams)
  - Search response envelope (SearchResponse, SearchHit, FacetCount)
  - Collection schema (CollectionSchema, SchemaField)

Backends validate raw JSON into these models. Unknown keys are kept
(extra="allow") so engine-specific fields pass through untouched.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Query parameters
# ---------------------------------------------------------------------------


class SearchParams(BaseModel):
    """Parameters for one search against one collection.

    Only ``q`` and ``query_by`` are interpreted by the aggregation layer;
    tuning knobs (typo tolerance, cutoff, pinned/hidden hits, ...) are
    forwarded to the backend as given.
    """

    model_config = ConfigDict(extra="allow")

    q: str = Field(default="*", description="Query text; '*' matches everything")
    query_by: str | None = Field(
        default=None, description="Comma-separated fields to search"
    )
    filter_by: str | None = None
    sort_by: str | None = None
    facet_by: str | None = None
    max_facet_values: int | None = None
    facet_query: str | None = None
    page: int | None = Field(default=None, ge=1)
    per_page: int | None = Field(default=None, ge=0)
    group_by: str | None = None
    group_limit: int | None = None
    include_fields: str | None = None
    exclude_fields: str | None = None
    highlight_fields: str | None = None
    highlight_full_fields: str | None = None
    highlight_start_tag: str | None = None
    highlight_end_tag: str | None = None
    highlight_affix_num_tokens: int | None = None
    snippet_threshold: int | None = None
    num_typos: int | str | None = None
    prefix: bool | str | None = None
    search_cutoff_ms: int | None = None
    pinned_hits: str | None = None
    hidden_hits: str | None = None
    preset: str | None = None

    def to_request(self) -> dict[str, Any]:
        """Parameters as sent on the wire: ``None`` values omitted."""
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Search response
# ---------------------------------------------------------------------------


class SearchHit(BaseModel):
    """One hit as returned by the backend."""

    model_config = ConfigDict(extra="allow")

    document: dict[str, Any] = Field(default_factory=dict)
    text_match: float | None = Field(default=None, description="Text relevance score")
    geo_distance_meters: float | dict[str, float] | None = None
    vector_distance: float | None = None
    highlights: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Legacy highlight list: [{'field', 'snippet', 'matched_tokens', ...}]",
    )
    highlight: dict[str, Any] = Field(
        default_factory=dict,
        description="Nested highlight object keyed by field name",
    )


class FacetValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: str
    count: int
    highlighted: str | None = None


class FacetCount(BaseModel):
    """Facet counts for a single field."""

    model_config = ConfigDict(extra="allow")

    field_name: str
    counts: list[FacetValue] = Field(default_factory=list)
    stats: dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    """Response envelope for one search call."""

    model_config = ConfigDict(extra="allow")

    found: int = Field(default=0, description="Total matching documents")
    out_of: int = Field(default=0, description="Documents in the collection")
    page: int = Field(default=1)
    search_time_ms: float = Field(default=0, description="Backend-reported search time")
    hits: list[SearchHit] = Field(default_factory=list)
    facet_counts: list[FacetCount] = Field(default_factory=list)
    request_params: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Collection schema
# ---------------------------------------------------------------------------


class SchemaField(BaseModel):
    """One declared field of a collection."""

    model_config = ConfigDict(extra="allow")

    name: str
    type: str = Field(description="'string', 'string[]', 'int32', 'float', 'auto', ...")
    facet: bool = False
    index: bool = True
    optional: bool = False
    sort: bool | None = None


class CollectionSchema(BaseModel):
    """Declared fields and defaults of a collection."""

    model_config = ConfigDict(extra="allow")

    name: str
    fields: list[SchemaField] = Field(default_factory=list)
    default_sorting_field: str | None = None
    num_documents: int = 0

    def get_field(self, name: str) -> SchemaField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

"""Typesense search contract v1: query params, response envelope and collection schema."""

from multisearch.contracts.typesense_v1 import (
    CollectionSchema,
    FacetCount,
    FacetValue,
    SchemaField,
    SearchHit,
    SearchParams,
    SearchResponse,
)

__all__ = [
    "CollectionSchema",
    "FacetCount",
    "FacetValue",
    "SchemaField",
    "SearchHit",
    "SearchParams",
    "SearchResponse",
]

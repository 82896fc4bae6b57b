"""Query field planning: schema-derived defaults for search fields and sort order.

No I/O happens here; callers fetch the schema first (through the gateway)
and only when the collection config leaves fields or sort unspecified.
"""

import logging

from multisearch.aggregator.constants import MAX_FACET_VALUES
from multisearch.aggregator.models import (
    AggregateOptions,
    CollectionQueryConfig,
    ResolvedQueryConfig,
)
from multisearch.contracts.typesense_v1 import (
    CollectionSchema,
    SchemaField,
    SearchParams,
)

logger = logging.getLogger(__name__)

SEARCHABLE_TYPES = frozenset({"string", "string[]"})
NUMERIC_TYPES = frozenset({"int32", "int64", "float"})
MATCH_ALL_FIELDS = "*"


def is_searchable_field(field: SchemaField) -> bool:
    return field.index is not False and field.type in SEARCHABLE_TYPES


def infer_query_fields(schema: CollectionSchema | None) -> str:
    """Every indexed string / string[] field, comma-joined; '*' if none."""
    if schema is None or not schema.fields:
        return MATCH_ALL_FIELDS
    names = [f.name for f in schema.fields if is_searchable_field(f)]
    return ",".join(names) if names else MATCH_ALL_FIELDS


def default_sort(schema: CollectionSchema | None) -> str | None:
    """Sort expression from the schema's declared default sorting field.

    A bare field name gets a direction: numeric fields (and fields missing
    from the field list) sort descending, others ascending.
    """
    if schema is None or not schema.default_sorting_field:
        return None
    name = schema.default_sorting_field
    if ":" in name:
        return name
    field = schema.get_field(name)
    if field is None or field.type in NUMERIC_TYPES:
        return f"{name}:desc"
    return f"{name}:asc"


class QueryFieldPlanner:
    """Resolves search fields and sort order for one collection config."""

    def resolve(
        self,
        config: CollectionQueryConfig,
        schema: CollectionSchema | None,
    ) -> ResolvedQueryConfig:
        query_by = config.query_by or infer_query_fields(schema)
        sort_by = config.sort_by or default_sort(schema)
        if not config.query_by:
            logger.debug(
                "Planner: inferred query_by=%s for '%s'", query_by, config.collection
            )
        return ResolvedQueryConfig(query_by=query_by, sort_by=sort_by)

    def build_search_params(
        self,
        query: str,
        config: CollectionQueryConfig,
        resolved: ResolvedQueryConfig,
        options: AggregateOptions,
    ) -> SearchParams:
        """Backend params for one collection branch of an aggregation."""
        params = SearchParams(
            q=query,
            query_by=resolved.query_by,
            per_page=config.max_results,
            page=1,
            sort_by=resolved.sort_by,
            filter_by=config.filter_by,
        )
        if config.wants_facets:
            params.facet_by = config.facet_by
            params.max_facet_values = MAX_FACET_VALUES

        if config.include_fields:
            params.include_fields = config.include_fields
        elif config.exclude_fields:
            params.exclude_fields = config.exclude_fields

        if options.enable_highlighting:
            highlight = options.highlight_config
            params.highlight_fields = resolved.query_by
            params.highlight_full_fields = resolved.query_by
            params.highlight_start_tag = highlight.start_tag
            params.highlight_end_tag = highlight.end_tag
            params.highlight_affix_num_tokens = highlight.affix_num_tokens
        return params

"""Result merger: combines per-collection hit lists into one ranked sequence.

Each hit is annotated with its collection, rank, original score, a score
normalized within its own collection and a weighted merged score. The
annotated lists are then interleaved by one of three fixed strategies.
"""

import logging
from collections.abc import Sequence
from typing import Any

from multisearch.aggregator.constants import MergeStrategy
from multisearch.aggregator.models import (
    CollectionQueryConfig,
    HighlightSpan,
    MergedHit,
    RawCollectionResult,
)
from multisearch.contracts.typesense_v1 import SearchHit

logger = logging.getLogger(__name__)

_SPAN_KEYS = ("snippet", "snippets", "matched_tokens", "value")


def extract_score(hit: SearchHit) -> float:
    """Backend-native relevance score: text match, then geo, then vector distance."""
    for value in (hit.text_match, hit.geo_distance_meters, hit.vector_distance):
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value:
            return float(value)
    return 1.0


def normalize_scores(scores: Sequence[float]) -> list[float]:
    """Scale scores by the best score of the list into the 0-1 range.

    A single score, all-equal scores, or a non-positive maximum all map to 1.0.
    """
    if not scores:
        return []
    best = max(scores)
    if len(scores) == 1 or best <= 0 or min(scores) == best:
        return [1.0] * len(scores)
    return [min(1.0, max(0.0, s / best)) for s in scores]


def _span_from_dict(field: str, data: dict[str, Any]) -> HighlightSpan:
    snippets = data.get("snippets") or []
    snippet = data.get("snippet")
    if snippet is None and snippets:
        snippet = snippets[0]
    return HighlightSpan(
        field=field,
        snippet=snippet,
        snippets=[str(s) for s in snippets],
        matched_tokens=list(data.get("matched_tokens") or []),
        value=data.get("value"),
    )


def _spans_from_nested(prefix: str, node: Any) -> list[HighlightSpan]:
    if isinstance(node, dict):
        if any(k in node for k in _SPAN_KEYS):
            return [_span_from_dict(prefix, node)]
        spans: list[HighlightSpan] = []
        for key, child in node.items():
            spans.extend(_spans_from_nested(f"{prefix}.{key}" if prefix else key, child))
        return spans
    if isinstance(node, list):
        # Array field: one entry per element, merged into a single span.
        parts = [p for p in node if isinstance(p, dict) and any(k in p for k in _SPAN_KEYS)]
        if not parts:
            return []
        snippets: list[str] = []
        tokens: list[Any] = []
        for part in parts:
            span = _span_from_dict(prefix, part)
            if span.snippet is not None:
                snippets.append(span.snippet)
            tokens.extend(span.matched_tokens)
        return [
            HighlightSpan(
                field=prefix,
                snippet=snippets[0] if snippets else None,
                snippets=snippets,
                matched_tokens=tokens,
            )
        ]
    return []


def normalize_highlights(hit: SearchHit) -> list[HighlightSpan]:
    """Uniform highlight spans from either backend highlight representation."""
    spans: list[HighlightSpan] = []
    seen: set[str] = set()
    for item in hit.highlights:
        field = item.get("field")
        if not field or field in seen:
            continue
        seen.add(field)
        spans.append(_span_from_dict(str(field), item))
    for span in _spans_from_nested("", hit.highlight):
        if span.field not in seen:
            seen.add(span.field)
            spans.append(span)
    return spans


def annotate_hits(
    result: RawCollectionResult,
    config: CollectionQueryConfig | None = None,
    normalize: bool = True,
    enable_highlighting: bool = False,
) -> list[MergedHit]:
    """Annotate one collection's hits, capped at its ``max_results``."""
    config = config or result.config
    hits = result.hits[: config.max_results]
    raw_scores = [extract_score(h) for h in hits]
    normalized = normalize_scores(raw_scores) if normalize else raw_scores
    weight = config.weight

    annotated: list[MergedHit] = []
    for rank, (hit, raw, norm) in enumerate(zip(hits, raw_scores, normalized), start=1):
        annotated.append(
            MergedHit(
                document=hit.document,
                collection=config.collection,
                namespace=config.namespace,
                collection_rank=rank,
                original_score=raw,
                normalized_score=norm,
                collection_weight=weight,
                merged_score=norm * weight,
                highlights=normalize_highlights(hit) if enable_highlighting else [],
            )
        )
    return annotated


class ResultMerger:
    """Merges annotated per-collection hit lists with a fixed strategy."""

    def annotate(
        self,
        results: Sequence[RawCollectionResult],
        configs: Sequence[CollectionQueryConfig] | None = None,
        normalize: bool = True,
        enable_highlighting: bool = False,
    ) -> list[list[MergedHit]]:
        """One annotated hit list per successful result, in declaration order."""
        if configs is not None and len(configs) != len(results):
            raise ValueError("results and configs must have the same length")
        groups: list[list[MergedHit]] = []
        for i, result in enumerate(results):
            if not result.ok:
                continue
            config = configs[i] if configs is not None else result.config
            groups.append(
                annotate_hits(result, config, normalize, enable_highlighting)
            )
        return groups

    def interleave(
        self,
        groups: Sequence[Sequence[MergedHit]],
        strategy: MergeStrategy = MergeStrategy.RELEVANCE,
        global_max_results: int | None = None,
    ) -> list[MergedHit]:
        """Order the annotated groups into one list and apply the global cap."""
        strategy = MergeStrategy(strategy)
        if strategy == MergeStrategy.RELEVANCE:
            merged = self._by_relevance(groups)
        elif strategy == MergeStrategy.ROUND_ROBIN:
            merged = self._round_robin(groups, global_max_results)
        elif strategy == MergeStrategy.COLLECTION_ORDER:
            merged = [hit for group in groups for hit in group]
        else:
            raise ValueError(f"Unsupported merge strategy: {strategy}")

        if global_max_results is not None:
            merged = merged[:global_max_results]
        return merged

    def merge(
        self,
        results: Sequence[RawCollectionResult],
        configs: Sequence[CollectionQueryConfig] | None = None,
        strategy: MergeStrategy = MergeStrategy.RELEVANCE,
        normalize: bool = True,
        global_max_results: int | None = None,
        enable_highlighting: bool = False,
    ) -> list[MergedHit]:
        """Annotate and merge per-collection results.

        Args:
            results: One result per collection; failed results are skipped.
            configs: Per-collection configs aligned with ``results``
                (defaults to each result's own config).
            strategy: relevance | roundRobin | collectionOrder.
            normalize: Scale scores per collection before weighting.
            global_max_results: Cap on the merged list length.
            enable_highlighting: Attach uniform highlight spans to each hit.

        Returns:
            Merged, annotated hits.
        """
        groups = self.annotate(results, configs, normalize, enable_highlighting)
        merged = self.interleave(groups, strategy, global_max_results)
        logger.info(
            "Merge: %s collections -> %s hits | strategy=%s normalize=%s",
            len(groups),
            len(merged),
            MergeStrategy(strategy),
            normalize,
        )
        return merged

    def _by_relevance(self, groups: Sequence[Sequence[MergedHit]]) -> list[MergedHit]:
        keyed = [
            ((-hit.merged_score, order, hit.collection_rank), hit)
            for order, group in enumerate(groups)
            for hit in group
        ]
        keyed.sort(key=lambda x: x[0])
        return [hit for _, hit in keyed]

    def _round_robin(
        self,
        groups: Sequence[Sequence[MergedHit]],
        limit: int | None,
    ) -> list[MergedHit]:
        merged: list[MergedHit] = []
        depth = max((len(g) for g in groups), default=0)
        for index in range(depth):
            for group in groups:
                if index < len(group):
                    merged.append(group[index])
                    if limit is not None and len(merged) >= limit:
                        return merged
        return merged

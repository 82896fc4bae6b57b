"""One-shot interface: run a single aggregation, print the response JSON, exit."""

from __future__ import annotations

import asyncio

from multisearch.aggregator import (
    AggregateOptions,
    CollectionQueryConfig,
    MultiCollectionAggregator,
)
from multisearch.core.config import config
from multisearch.errors import ConfigurationError
from multisearch.gateway import CachingSearchGateway
from multisearch.gateway.backends import TypesenseBackend


def parse_collections(text: str) -> list[CollectionQueryConfig]:
    """Parse 'products:2.0,articles' into collection configs (weight after ':')."""
    configs: list[CollectionQueryConfig] = []
    for part in (text or "").split(","):
        part = part.strip()
        if not part:
            continue
        name, _, weight = part.partition(":")
        try:
            configs.append(
                CollectionQueryConfig(
                    collection=name.strip(),
                    weight=float(weight) if weight.strip() else 1.0,
                )
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid collection entry '{part}': {e}") from e
    return configs


async def run_oneshot(
    query: str,
    collections: str,
    strategy: str = "relevance",
    max_results: int | None = None,
) -> int:
    text = (query or "").strip()
    if not text:
        print("Error: query must not be empty")
        return 2

    try:
        configs = parse_collections(collections)
        options = AggregateOptions.model_validate(
            {"merge_strategy": strategy, "global_max_results": max_results}
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 2
    if not configs:
        print("Error: --collections is required")
        return 2

    gateway = CachingSearchGateway(TypesenseBackend())
    try:
        aggregator = MultiCollectionAggregator(gateway)
        response = await aggregator.aggregate(text, configs, options)
        print(response.model_dump_json(indent=2))
        return 0
    finally:
        await gateway.close()


def main(
    query: str,
    collections: str,
    strategy: str = "relevance",
    max_results: int | None = None,
) -> int:
    problems = [p for p in config.validate() if "API_KEY" not in p]
    if problems:
        for p in problems:
            print(f"Error: {p}")
        return 2
    return asyncio.run(
        run_oneshot(
            query=query,
            collections=collections,
            strategy=strategy,
            max_results=max_results,
        )
    )

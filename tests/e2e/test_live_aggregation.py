import logging

import pytest

from multisearch.aggregator import MultiCollectionAggregator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@pytest.mark.asyncio
async def test_match_all_across_live_collections(
    aggregator: MultiCollectionAggregator, live_collections: list[str]
):
    response = await aggregator.aggregate("*", live_collections, global_max_results=10)

    logger.info("Stats: %s", response.collection_stats())
    assert not response.errors_by_collection, response.errors_by_collection
    assert len(response.hits) <= 10
    assert set(response.total_found_by_collection) == set(live_collections)


@pytest.mark.asyncio
async def test_unknown_collection_degrades_instead_of_failing(
    aggregator: MultiCollectionAggregator, live_collections: list[str]
):
    missing = "multisearch_e2e_missing_collection"

    response = await aggregator.aggregate("*", [live_collections[0], missing])

    assert missing in response.errors_by_collection
    assert live_collections[0] in response.total_found_by_collection


@pytest.mark.asyncio
async def test_repeated_query_is_served_from_cache(
    aggregator: MultiCollectionAggregator, live_collections: list[str]
):
    await aggregator.aggregate("*", live_collections[:1])
    before = aggregator.gateway.get_cache_stats()["hits"]
    await aggregator.aggregate("*", live_collections[:1])

    assert aggregator.gateway.get_cache_stats()["hits"] > before

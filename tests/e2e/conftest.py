import os
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from multisearch.aggregator import MultiCollectionAggregator
from multisearch.gateway import CachingSearchGateway
from multisearch.gateway.backends import TypesenseBackend


@pytest.fixture
def live_collections() -> list[str]:
    """Collections to search, from E2E_COLLECTIONS (comma-separated)."""
    names = [c.strip() for c in os.getenv("E2E_COLLECTIONS", "").split(",") if c.strip()]
    if not names:
        pytest.skip("E2E_COLLECTIONS is not set")
    return names


@pytest_asyncio.fixture
async def aggregator() -> AsyncIterator[MultiCollectionAggregator]:
    """Aggregator over a real Typesense server for e2e/integration suites only."""
    gateway = CachingSearchGateway(TypesenseBackend())
    try:
        yield MultiCollectionAggregator(gateway)
    finally:
        await gateway.close()

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from multisearch.contracts.typesense_v1 import (
    CollectionSchema,
    SchemaField,
    SearchHit,
    SearchResponse,
)
from multisearch.gateway.interface import SearchBackendPort


def build_response(
    scores: Sequence[float],
    prefix: str = "doc",
    found: int | None = None,
    **extra: Any,
) -> SearchResponse:
    """Search response whose hits carry the given text_match scores, in order."""
    hits = [
        SearchHit(document={"id": f"{prefix}-{i}", "title": f"{prefix} {i}"}, text_match=s)
        for i, s in enumerate(scores)
    ]
    return SearchResponse(
        found=len(hits) if found is None else found,
        out_of=100,
        hits=hits,
        **extra,
    )


class FakeBackend(SearchBackendPort):
    """In-memory backend that records calls and can delay or fail per collection."""

    def __init__(
        self,
        responses: dict[str, SearchResponse] | None = None,
        schemas: dict[str, CollectionSchema] | None = None,
        failures: dict[str, Exception] | None = None,
        schema_failures: dict[str, Exception] | None = None,
        delays: dict[str, float] | None = None,
    ):
        self.responses = responses or {}
        self.schemas = schemas or {}
        self.failures = failures or {}
        self.schema_failures = schema_failures or {}
        self.delays = delays or {}
        self.search_calls: list[tuple[str, dict[str, Any]]] = []
        self.schema_calls: list[str] = []
        self.cancelled: list[str] = []
        self.closed = False

    async def execute_search(self, collection: str, params: dict[str, Any]) -> SearchResponse:
        self.search_calls.append((collection, dict(params)))
        try:
            delay = self.delays.get(collection, 0)
            if delay:
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(collection)
            raise
        if collection in self.failures:
            raise self.failures[collection]
        return self.responses.get(collection, SearchResponse())

    async def fetch_schema(self, collection: str) -> CollectionSchema:
        self.schema_calls.append(collection)
        if collection in self.schema_failures:
            raise self.schema_failures[collection]
        return self.schemas.get(
            collection,
            CollectionSchema(
                name=collection,
                fields=[
                    SchemaField(name="title", type="string"),
                    SchemaField(name="tags", type="string[]", facet=True),
                    SchemaField(name="price", type="float"),
                ],
            ),
        )

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_backend_cls() -> type[FakeBackend]:
    return FakeBackend


@pytest.fixture
def make_response() -> Callable[..., SearchResponse]:
    return build_response


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration/e2e tests that require a live search backend.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: requires a live search backend"
    )
    config.addinivalue_line("markers", "e2e: end-to-end runtime tests")
    config.addinivalue_line("markers", "property: property-based deterministic tests")


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: Sequence[pytest.Item],
) -> None:
    run_integration = config.getoption("--run-integration")
    skip_integration = pytest.mark.skip(
        reason="integration/e2e is opt-in; rerun with --run-integration"
    )

    for item in items:
        if "tests/e2e/" in item.nodeid:
            item.add_marker("integration")
            item.add_marker("e2e")
        if (
            item.get_closest_marker("integration") or item.get_closest_marker("e2e")
        ) and not run_integration:
            item.add_marker(skip_integration)

import asyncio

import pytest

from multisearch.aggregator import (
    AggregateOptions,
    CollectionQueryConfig,
    MultiCollectionAggregator,
    ResultMode,
)
from multisearch.contracts.typesense_v1 import FacetCount, FacetValue
from multisearch.errors import BackendError, ConfigurationError
from multisearch.gateway.client import CachingSearchGateway


def _aggregator(backend) -> MultiCollectionAggregator:
    return MultiCollectionAggregator(CachingSearchGateway(backend))


@pytest.fixture
def backend(fake_backend_cls, make_response):
    return fake_backend_cls(
        responses={
            "products": make_response([8.0, 4.0], prefix="p", found=40),
            "articles": make_response([4.0, 1.0], prefix="a", found=7),
            "reviews": make_response([2.0], prefix="r"),
        }
    )


@pytest.mark.asyncio
async def test_failed_collection_is_reported_not_raised(backend):
    backend.failures["articles"] = ConnectionError("connection refused")
    aggregator = _aggregator(backend)

    response = await aggregator.aggregate(
        "shoe",
        [
            CollectionQueryConfig(collection="products", query_by="title"),
            CollectionQueryConfig(collection="articles", query_by="title"),
            CollectionQueryConfig(collection="reviews", query_by="title"),
        ],
    )

    assert set(response.errors_by_collection) == {"articles"}
    assert "connection refused" in response.errors_by_collection["articles"]
    assert {h.collection for h in response.hits} == {"products", "reviews"}
    assert response.total_found_by_collection == {"products": 40, "reviews": 1}
    assert response.is_degraded
    assert set(response.search_time_by_collection) == {"products", "articles", "reviews"}


@pytest.mark.asyncio
async def test_every_collection_appears_in_results_or_errors(backend):
    backend.failures["products"] = RuntimeError("boom")
    backend.failures["reviews"] = BackendError("HTTP 404", collection="reviews")
    aggregator = _aggregator(backend)
    names = ["products", "articles", "reviews"]

    response = await aggregator.aggregate(
        "shoe", [{"collection": n, "query_by": "title"} for n in names]
    )

    for name in names:
        assert (name in response.total_found_by_collection) != (
            name in response.errors_by_collection
        )


@pytest.mark.asyncio
async def test_all_collections_failing_still_returns_response(fake_backend_cls):
    backend = fake_backend_cls(
        failures={"a": RuntimeError("down"), "b": RuntimeError("down")}
    )
    response = await _aggregator(backend).aggregate(
        "x", [{"collection": "a", "query_by": "t"}, {"collection": "b", "query_by": "t"}]
    )
    assert response.hits == []
    assert response.found == 0
    assert set(response.errors_by_collection) == {"a", "b"}


@pytest.mark.asyncio
async def test_weighted_relevance_merge(backend):
    response = await _aggregator(backend).aggregate(
        "shoe",
        [
            CollectionQueryConfig(collection="products", query_by="title", weight=2.0),
            CollectionQueryConfig(collection="articles", query_by="title"),
        ],
    )

    assert response.hits[0].collection == "products"
    assert response.hits[0].merged_score == pytest.approx(2.0)
    assert response.found == 4
    assert response.included_by_collection == {"products": 2, "articles": 2}


@pytest.mark.asyncio
async def test_empty_collection_list_is_rejected(backend):
    with pytest.raises(ConfigurationError):
        await _aggregator(backend).aggregate("shoe", [])
    assert backend.search_calls == []


@pytest.mark.asyncio
async def test_duplicate_collections_are_rejected(backend):
    with pytest.raises(ConfigurationError):
        await _aggregator(backend).aggregate("shoe", ["products", "products"])


@pytest.mark.asyncio
async def test_invalid_options_are_rejected_before_any_call(backend):
    aggregator = _aggregator(backend)
    with pytest.raises(ConfigurationError):
        await aggregator.aggregate("shoe", ["products"], merge_strategy="bestOf")
    with pytest.raises(ConfigurationError):
        await aggregator.aggregate("shoe", [{"collection": "products", "weight": -1}])
    assert backend.search_calls == []


@pytest.mark.asyncio
async def test_schema_is_fetched_once_across_calls(backend):
    aggregator = _aggregator(backend)

    await aggregator.aggregate("shoe", ["products"])
    aggregator.gateway.clear_cache()
    await aggregator.aggregate("boot", ["products"])

    assert backend.schema_calls == ["products"]
    _, params = backend.search_calls[0]
    assert params["query_by"] == "title,tags"


@pytest.mark.asyncio
async def test_clear_schema_cache_forces_refetch(backend):
    aggregator = _aggregator(backend)

    await aggregator.aggregate("shoe", ["products"])
    aggregator.clear_schema_cache()
    aggregator.gateway.clear_cache()
    await aggregator.aggregate("shoe", ["products"])

    assert backend.schema_calls == ["products", "products"]


@pytest.mark.asyncio
async def test_explicit_fields_skip_schema_lookup(backend):
    await _aggregator(backend).aggregate(
        "shoe",
        [CollectionQueryConfig(collection="products", query_by="title", sort_by="price:asc")],
    )
    assert backend.schema_calls == []
    _, params = backend.search_calls[0]
    assert params["sort_by"] == "price:asc"
    assert params["per_page"] == 20
    assert params["page"] == 1


@pytest.mark.asyncio
async def test_schema_failure_fails_only_that_collection(backend):
    backend.schema_failures["products"] = TimeoutError("schema timed out")

    response = await _aggregator(backend).aggregate(
        "shoe", ["products", {"collection": "articles", "query_by": "title"}]
    )

    assert "schema" in response.errors_by_collection["products"].lower()
    assert "articles" in response.total_found_by_collection


@pytest.mark.asyncio
async def test_repeated_aggregation_is_served_from_cache(backend):
    aggregator = _aggregator(backend)
    configs = [{"collection": "products", "query_by": "title"}]

    await aggregator.aggregate("shoe", configs)
    await aggregator.aggregate("shoe", configs)

    assert len(backend.search_calls) == 1


@pytest.mark.asyncio
async def test_per_collection_mode(backend):
    response = await _aggregator(backend).aggregate(
        "shoe",
        [
            {"collection": "products", "query_by": "title", "max_results": 1},
            {"collection": "articles", "query_by": "title"},
        ],
        result_mode="perCollection",
    )

    assert response.result_mode == ResultMode.PER_COLLECTION
    assert response.hits == []
    assert [h.document["id"] for h in response.hits_by_collection["products"]] == ["p-0"]
    assert len(response.hits_by_collection["articles"]) == 2
    assert response.found == 3
    assert response.results_for("articles")[0].collection_rank == 1


@pytest.mark.asyncio
async def test_both_mode_returns_both_shapes(backend):
    response = await _aggregator(backend).aggregate(
        "shoe",
        [
            {"collection": "products", "query_by": "title"},
            {"collection": "articles", "query_by": "title"},
        ],
        AggregateOptions(result_mode=ResultMode.BOTH, global_max_results=1),
    )

    assert len(response.hits) == 1
    assert set(response.hits_by_collection) == {"products", "articles"}
    assert response.included_by_collection == {"products": 2, "articles": 2}


@pytest.mark.asyncio
async def test_interleaved_counts_only_hits_that_made_the_cut(backend):
    response = await _aggregator(backend).aggregate(
        "shoe",
        [
            {"collection": "products", "query_by": "title"},
            {"collection": "articles", "query_by": "title"},
        ],
        merge_strategy="collectionOrder",
        global_max_results=3,
    )

    assert [h.collection for h in response.hits] == ["products", "products", "articles"]
    assert response.included_by_collection == {"products": 2, "articles": 1}
    assert response.hits_by_collection is None
    assert response.collection_stats()["products"]["found"] == 40


@pytest.mark.asyncio
async def test_facets_are_returned_per_collection(fake_backend_cls, make_response):
    facets = [FacetCount(field_name="brand", counts=[FacetValue(value="acme", count=3)])]
    backend = fake_backend_cls(
        responses={"products": make_response([1.0], facet_counts=facets)}
    )

    response = await _aggregator(backend).aggregate(
        "shoe", [{"collection": "products", "query_by": "title", "facet_by": "brand"}]
    )

    assert response.facets_by_collection["products"][0].counts[0].value == "acme"
    _, params = backend.search_calls[0]
    assert params["facet_by"] == "brand"
    assert params["max_facet_values"] == 100


@pytest.mark.asyncio
async def test_highlighting_requests_params_and_normalizes_spans(fake_backend_cls, make_response):
    response = make_response([1.0])
    response.hits[0].highlight = {"title": {"snippet": "<mark>shoe</mark>", "matched_tokens": ["shoe"]}}
    backend = fake_backend_cls(responses={"products": response})

    result = await _aggregator(backend).aggregate(
        "shoe",
        [{"collection": "products", "query_by": "title"}],
        enable_highlighting=True,
    )

    _, params = backend.search_calls[0]
    assert params["highlight_fields"] == "title"
    assert params["highlight_start_tag"] == "<mark>"
    assert result.hits[0].highlights[0].snippet == "<mark>shoe</mark>"


@pytest.mark.asyncio
async def test_collections_are_searched_concurrently(fake_backend_cls, make_response):
    backend = fake_backend_cls(
        responses={n: make_response([1.0], prefix=n) for n in ("a", "b", "c")},
        delays={"a": 0.2, "b": 0.2, "c": 0.2},
    )
    aggregator = _aggregator(backend)

    loop = asyncio.get_running_loop()
    t0 = loop.time()
    response = await aggregator.aggregate(
        "x", [{"collection": n, "query_by": "title"} for n in ("a", "b", "c")]
    )

    assert loop.time() - t0 < 0.5
    assert len(response.hits) == 3


@pytest.mark.asyncio
async def test_slow_collection_does_not_block_others_from_reporting(fake_backend_cls, make_response):
    backend = fake_backend_cls(
        responses={"fast": make_response([1.0]), "slow": make_response([1.0])},
        delays={"slow": 0.05},
        failures={"fast": RuntimeError("nope")},
    )
    response = await _aggregator(backend).aggregate(
        "x", [{"collection": "fast", "query_by": "t"}, {"collection": "slow", "query_by": "t"}]
    )
    assert list(response.errors_by_collection) == ["fast"]
    assert "slow" in response.total_found_by_collection


@pytest.mark.asyncio
async def test_cancelling_aggregation_cancels_backend_calls(fake_backend_cls):
    backend = fake_backend_cls(delays={"a": 5, "b": 5})
    aggregator = _aggregator(backend)

    task = asyncio.ensure_future(
        aggregator.aggregate(
            "x", [{"collection": "a", "query_by": "t"}, {"collection": "b", "query_by": "t"}]
        )
    )
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0)

    assert sorted(backend.cancelled) == ["a", "b"]

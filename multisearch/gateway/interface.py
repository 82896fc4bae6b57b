"""Standard interface for the search backend used by the gateway.

Implementations perform one call against one named collection and return
contract models, or raise. Per-call timeouts and retries belong to the
implementation.
"""

from abc import ABC, abstractmethod
from typing import Any

from multisearch.contracts.typesense_v1 import CollectionSchema, SearchResponse


class SearchBackendPort(ABC):
    """Base class for all search backends."""

    @abstractmethod
    async def execute_search(
        self,
        collection: str,
        params: dict[str, Any],
    ) -> SearchResponse:
        """Run one search against ``collection`` and return the response envelope."""

    @abstractmethod
    async def fetch_schema(self, collection: str) -> CollectionSchema:
        """Fetch the declared field schema of ``collection``."""

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""

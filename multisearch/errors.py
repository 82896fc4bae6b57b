"""Error taxonomy: backend failures carry the collection and params that failed."""

from typing import Any


class MultiSearchError(Exception):
    """Base class for errors raised by this package."""


class BackendError(MultiSearchError):
    """A call to the search backend failed (network, auth, server-side)."""

    def __init__(
        self,
        message: str,
        *,
        collection: str,
        params: dict[str, Any] | None = None,
        original: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.collection = collection
        self.params = dict(params) if params else {}
        self.original = original
        self.status_code = status_code

    @classmethod
    def for_search(
        cls,
        collection: str,
        params: dict[str, Any] | None,
        original: BaseException,
    ) -> "BackendError":
        return cls(
            f"Search failed for '{collection}': {_describe(original)}",
            collection=collection,
            params=params,
            original=original,
            status_code=getattr(original, "status_code", None),
        )

    @classmethod
    def for_schema(cls, collection: str, original: BaseException) -> "BackendError":
        return cls(
            f"Failed to retrieve schema for '{collection}': {_describe(original)}",
            collection=collection,
            original=original,
            status_code=getattr(original, "status_code", None),
        )


class ConfigurationError(MultiSearchError, ValueError):
    """Invalid aggregation input, raised before any I/O."""


def _describe(error: BaseException) -> str:
    text = str(error).strip()
    return text or type(error).__name__

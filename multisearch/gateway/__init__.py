"""Search gateway: backend port, result cache and the caching gateway."""

from multisearch.gateway.cache import ResultCache
from multisearch.gateway.client import CachingSearchGateway
from multisearch.gateway.interface import SearchBackendPort

__all__ = [
    "CachingSearchGateway",
    "ResultCache",
    "SearchBackendPort",
]

from multisearch.gateway.backends.typesense import TypesenseBackend

__all__ = [
    "TypesenseBackend",
]

"""Storage module for signing private evidence files."""

from casefile.storage.client import (
    FakeStorageClient,
    StorageClient,
    StorageClientBase,
    StorageError,
    get_storage_client,
)

__all__ = [
    "StorageClientBase",
    "StorageClient",
    "FakeStorageClient",
    "StorageError",
    "get_storage_client",
]

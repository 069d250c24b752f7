"""Pluggable storage backends for resources, history and sub-resources."""

from hypermedia_kernel.storage.base import StorageBackend, UnitOfWork
from hypermedia_kernel.storage.memory import InMemoryStorage
from hypermedia_kernel.storage.sql import SqlAlchemyStorage

__all__ = [
    "InMemoryStorage",
    "SqlAlchemyStorage",
    "StorageBackend",
    "UnitOfWork",
]

"""
Kernel services.

``ResourceStore`` is the only writer; ``HistoryLog`` and
``SubresourceCollectionManager`` are its collaborators.
"""

from hypermedia_kernel.services.collection_manager import SubresourceCollectionManager
from hypermedia_kernel.services.history_log import HistoryLog, HistoryView
from hypermedia_kernel.services.locks import KeyedLock
from hypermedia_kernel.services.resource_store import ResourceStore

__all__ = [
    "HistoryLog",
    "HistoryView",
    "KeyedLock",
    "ResourceStore",
    "SubresourceCollectionManager",
]

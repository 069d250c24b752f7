"""ORM models for the hypermedia kernel."""

from hypermedia_kernel.models.history_event import HistoryEventRecord
from hypermedia_kernel.models.resource import ResourceRecord
from hypermedia_kernel.models.subresource import SubresourceRecord

__all__ = [
    "HistoryEventRecord",
    "ResourceRecord",
    "SubresourceRecord",
]

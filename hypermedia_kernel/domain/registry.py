"""
Resource type registry.

Holds the validated ``ResourceType`` definitions the engine, resolver and
store consult.  Definitions are registered once and never replaced, so
every resource of a type behaves identically for the life of the process.
This is part of the functional core - no I/O, no ORM.
"""

import threading
from collections.abc import Iterable, Iterator

from hypermedia_kernel.domain.state_machine import ResourceType
from hypermedia_kernel.exceptions import (
    DuplicateResourceTypeError,
    UnknownResourceTypeError,
)
from hypermedia_kernel.logging_config import get_logger

logger = get_logger("domain.registry")


class ResourceTypeRegistry:
    """
    Registry of resource types by name.

    Usage:
        registry = ResourceTypeRegistry()
        registry.register(leave_request_type)
        rt = registry.get("leave-request")
    """

    def __init__(self, types: Iterable[ResourceType] = ()):
        self._types: dict[str, ResourceType] = {}
        self._lock = threading.Lock()
        for rt in types:
            self.register(rt)

    def register(self, resource_type: ResourceType) -> None:
        """
        Register a resource type.

        Raises:
            DuplicateResourceTypeError: If the name is already registered.
        """
        with self._lock:
            if resource_type.name in self._types:
                logger.warning(
                    "resource_type_already_registered",
                    extra={"resource_type": resource_type.name},
                )
                raise DuplicateResourceTypeError(resource_type.name)
            self._types[resource_type.name] = resource_type

        logger.info(
            "resource_type_registered",
            extra={
                "resource_type": resource_type.name,
                "state_count": len(resource_type.states),
                "transition_count": len(resource_type.transitions),
                "collection_count": len(resource_type.collections),
            },
        )

    def get(self, type_name: str) -> ResourceType:
        """
        Get a resource type by name.

        Raises:
            UnknownResourceTypeError: If no type with that name is registered.
        """
        try:
            return self._types[type_name]
        except KeyError:
            raise UnknownResourceTypeError(type_name) from None

    def has_type(self, type_name: str) -> bool:
        return type_name in self._types

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._types))

    def __iter__(self) -> Iterator[ResourceType]:
        return iter([self._types[name] for name in self.names])

    def __len__(self) -> int:
        return len(self._types)

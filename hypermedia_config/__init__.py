"""
hypermedia_config -- single public entrypoint for resource type configuration.

Responsibility:
    Provides the one way to obtain resource types at runtime through
    ``load_registry()``.  YAML loading, validation and compilation are
    internal build/test tooling.

Architecture position:
    Configuration -- YAML-driven, build-time validated.  This package sits
    above ``hypermedia_kernel``.  The kernel MUST NEVER import from
    ``hypermedia_config``; this package hands it compiled ``ResourceType``
    objects only.

Invariants enforced:
    - Build-time validation: every set must pass schema, expression and
      state-graph validation before any type is registered.
    - Deterministic compilation: the same YAML files always produce the
      same checksum and the same resource types.

Failure modes:
    - ``FileNotFoundError`` -- the configuration directory does not exist.
    - ``CompilationFailedError`` -- validation or compilation errors.
    - ``DuplicateResourceTypeError`` -- two sets define the same type.

Audit relevance:
    Every successful ``load_registry()`` call emits a
    ``RESOURCE_CONFIG_TRACE`` log entry with the checksum and the type
    names, tying resource behaviour to the exact configuration in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hypermedia_config.compiler import CompilationFailedError, compile_configuration
from hypermedia_config.loader import load_configuration_set
from hypermedia_kernel.domain.registry import ResourceTypeRegistry

_logger = logging.getLogger("hypermedia_kernel.config")

# Default configuration sets directory
DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = [
    "CompilationFailedError",
    "DEFAULT_CONFIG_DIR",
    "load_registry",
]


def load_registry(config_dir: Path | None = None) -> ResourceTypeRegistry:
    """The public configuration entrypoint.

    Args:
        config_dir: Directory of resource type YAML files.  Defaults to
            the sets shipped in ``hypermedia_config/sets/``.

    Returns:
        A registry holding every compiled resource type.

    Raises:
        FileNotFoundError: If ``config_dir`` does not exist.
        CompilationFailedError: If validation or compilation fails.
    """
    sets_dir = Path(config_dir) if config_dir is not None else DEFAULT_CONFIG_DIR

    config_set = load_configuration_set(sets_dir)
    compiled = compile_configuration(config_set)

    for warning in compiled.warnings:
        _logger.warning("resource_config_warning", extra={"warning": warning})

    registry = compiled.to_registry()

    _logger.info(
        "RESOURCE_CONFIG_TRACE",
        extra={
            "trace_type": "RESOURCE_CONFIG_TRACE",
            "config_dir": str(sets_dir),
            "checksum": compiled.checksum,
            "resource_types": list(registry.names),
            "resource_type_count": len(registry),
        },
    )

    return registry

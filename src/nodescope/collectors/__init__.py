"""Collector framework and built-in collectors for nodescope.

- Collector: Abstract base class every data source implements
- CollectorRegistry: Named collector table and scrape loop
- netstat, gpu, netstat_pod: Built-in collectors

Use :func:`build_registry` to get a registry with every built-in collector
and any third-party collectors published as entry points.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from nodescope.collectors import gpu, netstat, netstat_pod
from nodescope.collectors.base import CollectionResult, Collector, Emit
from nodescope.collectors.registry import (
    ENTRY_POINT_GROUP,
    CollectorConflictError,
    CollectorError,
    CollectorInitializationError,
    CollectorNotFoundError,
    CollectorRegistration,
    CollectorRegistry,
    ScrapeResult,
)

if TYPE_CHECKING:
    from nodescope.config import Config

BUILTIN_MODULES = (netstat, gpu, netstat_pod)


def build_registry(config: Config, *, discover: bool = True) -> CollectorRegistry:
    """Create a registry holding the built-in collectors.

    Args:
        config: Validated application configuration
        discover: Also load collectors from the ``nodescope.collectors``
            entry-point group

    Raises:
        CollectorConflictError: If two collectors share a name
    """
    registry = CollectorRegistry(config)
    for module in BUILTIN_MODULES:
        module.register(registry, config)
    if discover:
        registry.discover_entry_points()
    return registry


__all__ = [
    "BUILTIN_MODULES",
    "ENTRY_POINT_GROUP",
    "CollectionResult",
    "Collector",
    "CollectorConflictError",
    "CollectorError",
    "CollectorInitializationError",
    "CollectorNotFoundError",
    "CollectorRegistration",
    "CollectorRegistry",
    "Emit",
    "ScrapeResult",
    "build_registry",
]

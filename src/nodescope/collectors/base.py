"""Abstract base class for metric collectors.

This module defines the Collector interface that every data source implements.
A collector samples its source once per scrape and writes MetricRecords to the
sink it is handed. The registry runs collectors through ``safe_update`` so one
failing source never takes down the rest of the scrape.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from nodescope.models.base import MetricRecord, MetricType, build_fq_name

if TYPE_CHECKING:
    from nodescope.config import Config

logger = logging.getLogger(__name__)

Emit = Callable[[MetricRecord], None]
"""Sink a collector writes its records to. Must be safe to call from worker threads."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class CollectionResult:
    """Outcome of one ``update`` attempt.

    Attributes:
        success: True when ``update`` returned normally
        error: ``"<ExceptionType>: <message>"`` for a failed attempt
        duration_seconds: Wall time spent in ``update``
        timestamp: When the attempt started
        collector_name: Collector the attempt belongs to
        exception: The exception a failed attempt raised
    """

    success: bool
    error: str | None = None
    duration_seconds: float = 0.0
    timestamp: datetime = field(default_factory=_utcnow)
    collector_name: str = ""
    exception: Exception | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.success and self.error is None:
            raise ValueError("Failed collection must include error message")


@dataclass
class CollectorStats:
    """Running counters kept by each collector instance."""

    total_collections: int = 0
    total_failures: int = 0
    consecutive_failures: int = 0
    last_collection: datetime | None = None

    @property
    def success_rate(self) -> float:
        if not self.total_collections:
            return 0.0
        return 1.0 - self.total_failures / self.total_collections

    def as_dict(self) -> dict[str, Any]:
        return {**asdict(self), "success_rate": self.success_rate}


class Collector(ABC):
    """Abstract base class for collectors.

    Subclasses implement :meth:`update`. Calls are serialized per instance:
    ``safe_update`` holds the instance lock for the whole update, so a
    collector may keep reusable state between cycles without extra locking.

    Class Attributes:
        name: Registry key, also used as the ``collector`` label
        subsystem: Metric name segment between namespace and field

    Example:
        class UptimeCollector(Collector):
            name = "uptime"
            subsystem = "uptime"

            def update(self, emit: Emit) -> None:
                emit(self.record("seconds", read_uptime(), MetricType.GAUGE))
    """

    name: str = "unnamed_collector"
    subsystem: str = ""

    def __init__(self, config: "Config | None" = None) -> None:
        if config is None:
            from nodescope.config import Config

            config = Config()
        self.config = config
        self.namespace: str = config.namespace
        self._lock = threading.Lock()
        self._stats = CollectorStats()

    @property
    def last_collection(self) -> datetime | None:
        """When the last successful update finished."""
        return self._stats.last_collection

    @property
    def consecutive_failures(self) -> int:
        return self._stats.consecutive_failures

    @property
    def stats(self) -> dict[str, Any]:
        """Counters for this instance plus its name and success rate."""
        return {"name": self.name, **self._stats.as_dict()}

    def fq_name(self, field_name: str) -> str:
        """Return the fully qualified metric name for a field of this collector."""
        return build_fq_name(self.namespace, self.subsystem, field_name)

    def record(
        self,
        field_name: str,
        value: float,
        kind: MetricType = MetricType.UNTYPED,
        help: str = "",
        labels: dict[str, str] | None = None,
    ) -> MetricRecord:
        """Build a MetricRecord named after this collector's subsystem."""
        return MetricRecord(
            name=self.fq_name(field_name),
            labels=labels or {},
            value=value,
            kind=kind,
            help=help,
        )

    @abstractmethod
    def update(self, emit: Emit) -> None:
        """Sample the data source and emit its records.

        Raises:
            Exception: Any error aborts this collector's cycle only; it is
                caught by ``safe_update``
        """
        ...

    def shutdown(self) -> None:
        """Release collector resources.

        Called when the registry is torn down. Override to close clients.
        """

    def safe_update(self, emit: Emit) -> CollectionResult:
        """Run ``update`` under the instance lock, timing it and catching errors."""
        with self._lock:
            started_at = _utcnow()
            started = time.perf_counter()
            error: str | None = None
            exc: Exception | None = None

            try:
                self.update(emit)
            except PermissionError as e:
                # Expected for unprivileged runs
                logger.debug("Permission denied in collector '%s': %s", self.name, e)
                error, exc = f"Permission denied: {e!s}", e
            except Exception as e:
                error, exc = f"{type(e).__name__}: {e!s}", e

            stats = self._stats
            stats.total_collections += 1
            if exc is None:
                stats.consecutive_failures = 0
                stats.last_collection = _utcnow()
            else:
                stats.consecutive_failures += 1
                stats.total_failures += 1

            return CollectionResult(
                success=exc is None,
                error=error,
                exception=exc,
                duration_seconds=time.perf_counter() - started,
                timestamp=started_at,
                collector_name=self.name,
            )

    def reset_stats(self) -> None:
        """Reset all collection statistics."""
        self._stats = CollectorStats()

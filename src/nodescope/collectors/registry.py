"""Collector registry for nodescope.

This module provides the table of named data sources and the scrape loop:
- Registration of collector factories with a default enabled state
- Per-source enable/disable overrides
- Lazy construction and caching of collector instances
- Sequential execution of enabled collectors with per-collector failure isolation
- Discovery of third-party collectors via setuptools entry points
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
import importlib.metadata
import logging
import threading
import traceback
from typing import TYPE_CHECKING

from nodescope.collectors.base import CollectionResult, Collector
from nodescope.models.base import MetricRecord, MetricType, build_fq_name

if TYPE_CHECKING:
    from nodescope.config import Config

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "nodescope.collectors"

CollectorFactory = Callable[["Config"], Collector]
ErrorHook = Callable[[str, CollectionResult], None]


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class CollectorError(Exception):
    """Base exception for collector registry errors.

    Attributes:
        collector_name: Name of the collector that caused the error (if known)
        cause: The underlying exception that caused this error (if any)
    """

    def __init__(
        self,
        message: str,
        collector_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.collector_name = collector_name
        self.cause = cause

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.collector_name:
            parts.insert(0, f"[{self.collector_name}]")
        if self.cause:
            parts.append(f"(caused by: {self.cause})")
        return " ".join(parts)


class CollectorConflictError(CollectorError):
    """Raised when two collectors register under the same name.

    This is a packaging defect; the process should refuse to start.
    """


class CollectorNotFoundError(CollectorError):
    """Raised when a requested collector is not registered."""


class CollectorInitializationError(CollectorError):
    """Raised when a collector factory fails."""


@dataclass(frozen=True)
class CollectorRegistration:
    """A registered data source.

    Attributes:
        name: Unique collector name
        enabled_by_default: Whether the collector runs without an explicit override
        factory: Callable building the collector from the app config
    """

    name: str
    enabled_by_default: bool
    factory: CollectorFactory


@dataclass
class ScrapeResult:
    """Everything one scrape cycle produced.

    Attributes:
        records: Metric records from every successful collector plus scrape meta-metrics
        results: Per-collector CollectionResult
        timestamp: When the scrape started
    """

    records: list[MetricRecord] = field(default_factory=list)
    results: dict[str, CollectionResult] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def errors(self) -> dict[str, str]:
        """Return collector name -> error message for failed collectors."""
        return {
            name: result.error or ""
            for name, result in self.results.items()
            if not result.success
        }

    @property
    def all_failed(self) -> bool:
        """Return True if at least one collector ran and none succeeded."""
        return bool(self.results) and all(not r.success for r in self.results.values())


class _BufferedSink:
    """Thread-safe record buffer handed to a single collector."""

    def __init__(self) -> None:
        self._records: list[MetricRecord] = []
        self._lock = threading.Lock()

    def __call__(self, record: MetricRecord) -> None:
        with self._lock:
            self._records.append(record)

    def drain(self) -> list[MetricRecord]:
        with self._lock:
            records, self._records = self._records, []
        return records


class CollectorRegistry:
    """Registry of named collectors and the scrape entry point.

    One registry is built at process start and passed to whatever drives
    scrapes; tests build a fresh one per case.

    Lifecycle:
        1. Create: registry = CollectorRegistry(config)
        2. Register: registry.register("netstat", True, NetStatCollector)
        3. Scrape: result = registry.run()  (repeatedly)
        4. Shutdown: registry.shutdown_all()

    Example:
        registry = CollectorRegistry(config)
        registry.register("netstat", True, NetStatCollector)
        result = registry.run()
        for record in result.records:
            print(record.name, record.value)
    """

    def __init__(self, config: "Config | None" = None) -> None:
        """Initialize the registry.

        Args:
            config: Application configuration passed to collector factories
        """
        if config is None:
            from nodescope.config import Config

            config = Config()
        self._config = config
        self._registrations: dict[str, CollectorRegistration] = {}
        self._collectors: dict[str, Collector] = {}
        self._error_hooks: list[ErrorHook] = []
        self._construct_lock = threading.Lock()

    @property
    def config(self) -> "Config":
        """Return the configuration collectors are built with."""
        return self._config

    def register(self, name: str, enabled_by_default: bool, factory: CollectorFactory) -> None:
        """Register a collector factory.

        Args:
            name: Unique collector name
            enabled_by_default: Whether the collector runs unless overridden
            factory: Callable taking the Config and returning a Collector

        Raises:
            CollectorConflictError: If a collector with this name is already registered
        """
        if name in self._registrations:
            raise CollectorConflictError(
                f"Collector '{name}' is already registered", collector_name=name
            )
        self._registrations[name] = CollectorRegistration(name, enabled_by_default, factory)
        logger.debug("Registered collector %s (enabled by default: %s)", name, enabled_by_default)

    def unregister(self, name: str) -> None:
        """Remove a collector, shutting down its instance if one was built.

        Raises:
            CollectorNotFoundError: If no collector with that name is registered
        """
        if name not in self._registrations:
            raise CollectorNotFoundError(f"Collector '{name}' is not registered")
        collector = self._collectors.pop(name, None)
        if collector is not None:
            collector.shutdown()
        del self._registrations[name]

    def registrations(self) -> list[CollectorRegistration]:
        """Return all registrations in registration order."""
        return list(self._registrations.values())

    def add_error_hook(self, hook: ErrorHook) -> None:
        """Add a callback invoked with (name, result) for each failed collector."""
        self._error_hooks.append(hook)

    def discover_entry_points(self) -> list[str]:
        """Load registration hooks published under the ``nodescope.collectors`` group.

        Each entry point must resolve to a callable ``hook(registry, config)``.
        A hook that fails to load is logged and skipped; a hook that registers
        a duplicate name raises.

        Returns:
            Names of the entry points that were loaded

        Raises:
            CollectorConflictError: If a hook registers an existing name
        """
        loaded: list[str] = []
        try:
            entry_points = importlib.metadata.entry_points(group=ENTRY_POINT_GROUP)
        except Exception as e:
            logger.error("Failed to get entry points for group %s: %s", ENTRY_POINT_GROUP, e)
            return loaded

        for ep in entry_points:
            try:
                hook = ep.load()
            except Exception as e:
                logger.error("Failed to load collector entry point %s: %s", ep.name, e)
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug(traceback.format_exc())
                continue
            hook(self, self._config)
            loaded.append(ep.name)
            logger.info("Loaded collector entry point %s from %s", ep.name, ep.value)
        return loaded

    def enabled_names(self, overrides: dict[str, bool] | None = None) -> list[str]:
        """Resolve which collectors run.

        Args:
            overrides: Explicit collector name -> enabled flags

        Returns:
            Enabled collector names in registration order

        Raises:
            CollectorNotFoundError: If an override names an unknown collector
        """
        overrides = overrides or {}
        unknown = sorted(set(overrides) - set(self._registrations))
        if unknown:
            raise CollectorNotFoundError(f"Unknown collector(s): {', '.join(unknown)}")
        return [
            name
            for name, reg in self._registrations.items()
            if overrides.get(name, reg.enabled_by_default)
        ]

    def get(self, name: str) -> Collector:
        """Return the collector instance for ``name``, building it on first use.

        Raises:
            CollectorNotFoundError: If the name is not registered
            CollectorInitializationError: If the factory fails
        """
        registration = self._registrations.get(name)
        if registration is None:
            raise CollectorNotFoundError(f"Collector '{name}' is not registered")

        with self._construct_lock:
            collector = self._collectors.get(name)
            if collector is None:
                try:
                    collector = registration.factory(self._config)
                except Exception as e:
                    raise CollectorInitializationError(
                        "Failed to construct collector", collector_name=name, cause=e
                    ) from e
                self._collectors[name] = collector
        return collector

    def run(self, enabled: list[str] | None = None) -> ScrapeResult:
        """Run one scrape over the enabled collectors.

        Collectors run one at a time. Each writes into its own buffer; the
        buffer is kept if ``update`` succeeds and dropped if it fails, so a
        failed collector contributes no series this cycle. Scrape duration and
        success gauges are added for every collector that was attempted.

        Args:
            enabled: Collector names to run; defaults to ``enabled_names()``

        Returns:
            ScrapeResult with records and per-collector results
        """
        names = enabled if enabled is not None else self.enabled_names(self._config.overrides())
        scrape = ScrapeResult()

        for name in names:
            sink = _BufferedSink()
            try:
                collector = self.get(name)
            except CollectorError as e:
                logger.error("Collector %s could not be built: %s", name, e)
                result = CollectionResult(success=False, error=str(e), collector_name=name)
            else:
                result = collector.safe_update(sink)

            records = sink.drain()
            if result.success:
                scrape.records.extend(records)
                logger.debug(
                    "Collector %s succeeded in %.3fs with %d records",
                    name,
                    result.duration_seconds,
                    len(records),
                )
            else:
                logger.error(
                    "Collector %s failed after %.3fs: %s",
                    name,
                    result.duration_seconds,
                    result.error,
                )
                for hook in self._error_hooks:
                    try:
                        hook(name, result)
                    except Exception:
                        logger.exception("Error hook failed for collector %s", name)

            scrape.results[name] = result
            scrape.records.extend(self._scrape_records(name, result))

        return scrape

    def _scrape_records(self, name: str, result: CollectionResult) -> list[MetricRecord]:
        labels = {"collector": name}
        namespace = self._config.namespace
        return [
            MetricRecord(
                name=build_fq_name(namespace, "scrape", "collector_duration_seconds"),
                labels=labels,
                value=result.duration_seconds,
                kind=MetricType.GAUGE,
                help="nodescope: Duration of a collector scrape.",
            ),
            MetricRecord(
                name=build_fq_name(namespace, "scrape", "collector_success"),
                labels=labels,
                value=1.0 if result.success else 0.0,
                kind=MetricType.GAUGE,
                help="nodescope: Whether a collector succeeded.",
            ),
        ]

    def shutdown_all(self) -> list[str]:
        """Shut down every constructed collector.

        Returns:
            Names of collectors whose shutdown raised
        """
        failed: list[str] = []
        for name, collector in self._collectors.items():
            try:
                collector.shutdown()
            except Exception as e:
                logger.error("Failed to shut down collector %s: %s", name, e)
                failed.append(name)
        self._collectors.clear()
        return failed

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, name: str) -> bool:
        return name in self._registrations

    def __iter__(self) -> Iterator[str]:
        return iter(self._registrations)

    def __repr__(self) -> str:
        return f"CollectorRegistry(collectors={list(self._registrations)})"

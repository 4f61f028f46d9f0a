"""Per-container socket state collector.

This module provides the ``netstat_pod`` collector. Each scrape it:
- Lists containers from the container runtime
- Inspects each container on a bounded worker pool to find its root pid
- Tallies socket states from ``<procfs>/<pid>/net/<proto>``
- Emits one ``node_netstat_pod_<STATE>`` series per non-zero state, labelled
  with the container's ``pod_name``. A ``protocol`` label is added when the
  collector reads any table besides tcp, so tcp and udp series stay apart

A container that cannot be inspected or read is skipped; it may simply have
exited between listing and reading.
"""

from __future__ import annotations

from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Protocol

import docker

from nodescope.collectors.base import Collector, Emit
from nodescope.models.base import ContainerSample, MetricType
from nodescope.procfs.sockets import TCP, SocketTally, read_socket_table

if TYPE_CHECKING:
    from nodescope.collectors.registry import CollectorRegistry
    from nodescope.config import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerRef:
    """A container as returned by a runtime listing."""

    id: str
    name: str


@dataclass(frozen=True)
class ContainerInfo:
    """Inspection result for one container; pid 0 means it is not running."""

    name: str
    pid: int


class ContainerRuntime(Protocol):
    """Container runtime operations the collector depends on."""

    def list_containers(self) -> list[ContainerRef]: ...

    def inspect_container(self, container_id: str) -> ContainerInfo: ...


class DockerRuntime:
    """ContainerRuntime backed by the Docker Engine API.

    Args:
        client: Docker client; built from the environment when None
        max_pool_size: HTTP connections kept open to the daemon; match it to
            the number of workers sharing the client
    """

    def __init__(
        self, client: docker.DockerClient | None = None, max_pool_size: int = 10
    ) -> None:
        if client is None:
            client = docker.from_env(max_pool_size=max_pool_size)
        self._client = client

    def ping(self) -> bool:
        return bool(self._client.ping())

    def list_containers(self) -> list[ContainerRef]:
        refs = []
        for entry in self._client.api.containers():
            names = entry.get("Names") or [""]
            refs.append(ContainerRef(id=entry["Id"], name=names[0]))
        return refs

    def inspect_container(self, container_id: str) -> ContainerInfo:
        attrs: dict[str, Any] = self._client.api.inspect_container(container_id)
        state = attrs.get("State") or {}
        return ContainerInfo(name=attrs.get("Name", ""), pid=int(state.get("Pid") or 0))

    def close(self) -> None:
        self._client.close()


class PodNetstatCollector(Collector):
    """Collector for socket states inside each running container.

    Args:
        config: Application configuration
        runtime: Container runtime; a DockerRuntime is created on first use
            when None
    """

    name = "netstat_pod"
    subsystem = "netstat_pod"

    def __init__(
        self, config: Config | None = None, runtime: ContainerRuntime | None = None
    ) -> None:
        super().__init__(config)
        self._runtime = runtime
        self.pool_size = self.config.netstat_pod.pool_size
        self.protocols = list(self.config.netstat_pod.protocols)

    @property
    def runtime(self) -> ContainerRuntime:
        if self._runtime is None:
            self._runtime = DockerRuntime(max_pool_size=self.pool_size)
        return self._runtime

    def sample_container(self, ref: ContainerRef) -> ContainerSample | None:
        """Inspect one container and tally its sockets.

        Returns None if the container is skipped this cycle.
        """
        try:
            info = self.runtime.inspect_container(ref.id)
        except Exception as e:
            logger.warning("Container %s (%s): inspect failed: %s", ref.name, ref.id, e)
            return None

        if info.pid == 0:
            logger.debug("Container %s (%s) is not running, skipping", info.name, ref.id)
            return None

        tally: SocketTally = Counter()
        for protocol in self.protocols:
            path = self.config.procfs_path(str(info.pid), "net", protocol)
            try:
                tally.update(read_socket_table(path, protocol))
            except OSError as e:
                logger.debug("Container %s (%s): cannot read %s: %s", info.name, ref.id, path, e)
                return None

        return ContainerSample.from_counter(ref.id, info.name or ref.name, info.pid, tally)

    def emit_sample(self, sample: ContainerSample, emit: Emit) -> None:
        for protocol, states in sample.tally.items():
            labels = {"pod_name": sample.display_name}
            if self.protocols != [TCP]:
                labels["protocol"] = protocol
            for state, count in states.items():
                emit(
                    self.record(
                        state,
                        float(count),
                        MetricType.UNTYPED,
                        help=f"Number of {state} sockets in the pod.",
                        labels=labels,
                    )
                )

    def update(self, emit: Emit) -> None:
        containers = self.runtime.list_containers()
        if not containers:
            logger.debug("No containers running")
            return

        sampled = 0
        with ThreadPoolExecutor(
            max_workers=self.pool_size, thread_name_prefix="netstat-pod"
        ) as pool:
            futures = {pool.submit(self.sample_container, ref): ref for ref in containers}
            for future in as_completed(futures):
                ref = futures[future]
                try:
                    sample = future.result()
                except Exception as e:
                    logger.warning("Container %s (%s): collection failed: %s", ref.name, ref.id, e)
                    continue
                if sample is None:
                    continue
                self.emit_sample(sample, emit)
                sampled += 1

        logger.debug("netstat_pod: sampled %d of %d containers", sampled, len(containers))

    def shutdown(self) -> None:
        close = getattr(self._runtime, "close", None)
        if close is not None:
            close()
        self._runtime = None


def probe_docker() -> DockerRuntime | None:
    """Return a connected DockerRuntime, or None if the daemon is unreachable."""
    try:
        runtime = DockerRuntime()
        runtime.ping()
    except Exception as e:
        logger.info("Docker unavailable, netstat_pod collector disabled by default: %s", e)
        return None
    return runtime


def register(registry: CollectorRegistry, config: Config) -> None:
    """Register the per-container collector, enabled only when Docker answers."""
    runtime = probe_docker()
    if runtime is not None:
        runtime.close()
    registry.register(PodNetstatCollector.name, runtime is not None, PodNetstatCollector)

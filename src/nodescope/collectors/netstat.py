"""Host network statistics collector.

This module provides the ``netstat`` collector which exports:
- Kernel protocol counters from /proc/net/netstat, /proc/net/snmp and
  /proc/net/snmp6, filtered by a configurable field pattern
- Host-wide socket counts per state from /proc/net/tcp and /proc/net/udp

All values are read fresh on every scrape; nothing is kept between cycles.
"""

from __future__ import annotations

from collections import Counter
import logging
from typing import TYPE_CHECKING

from nodescope.collectors.base import Collector, Emit
from nodescope.models.base import MetricType
from nodescope.procfs.netstat import (
    filter_stats,
    merge_namespaces,
    read_paired_stats,
    read_snmp6_stats,
)
from nodescope.procfs.sockets import PROTOCOLS, read_socket_table, tally_to_keys

if TYPE_CHECKING:
    from nodescope.collectors.registry import CollectorRegistry
    from nodescope.config import Config

logger = logging.getLogger(__name__)


class NetStatCollector(Collector):
    """Collector for host-wide network statistics.

    Reads, in order, the netstat, snmp and (optional) snmp6 counter files and
    the tcp and udp socket tables under the configured procfs root. A missing
    or malformed required file fails the whole cycle.
    """

    name = "netstat"
    subsystem = "netstat"

    def __init__(self, config: Config | None = None) -> None:
        super().__init__(config)
        self._pattern = self.config.netstat.pattern

    def read_stats(self) -> dict[str, float]:
        """Read, merge and filter the kernel counter files.

        Raises:
            OSError: If netstat or snmp cannot be read
            StatParseError: If a file is malformed or a value is not a number
        """
        net = self.config.procfs_path("net")
        stats = merge_namespaces(
            read_paired_stats(net / "netstat"),
            read_paired_stats(net / "snmp"),
            read_snmp6_stats(net / "snmp6"),
        )
        return filter_stats(stats, self._pattern)

    def read_sockets(self) -> Counter[str]:
        """Tally host sockets by ``PROTO_STATE`` key.

        Raises:
            OSError: If a socket table cannot be read
        """
        net = self.config.procfs_path("net")
        keys: Counter[str] = Counter()
        for protocol in PROTOCOLS:
            keys.update(tally_to_keys(read_socket_table(net / protocol, protocol)))
        return keys

    def update(self, emit: Emit) -> None:
        stats = self.read_stats()
        sockets = self.read_sockets()

        for key, value in stats.items():
            protocol, _, field_name = key.partition("_")
            emit(
                self.record(
                    key,
                    value,
                    MetricType.UNTYPED,
                    help=f"Statistic {protocol}{field_name}.",
                )
            )
        for key, count in sockets.items():
            emit(
                self.record(
                    key,
                    float(count),
                    MetricType.UNTYPED,
                    help=f"Number of {key} sockets.",
                )
            )
        logger.debug("netstat: %d counters, %d socket states", len(stats), len(sockets))


def register(registry: CollectorRegistry, config: Config) -> None:
    """Register the host netstat collector; it is always enabled by default."""
    registry.register(NetStatCollector.name, True, NetStatCollector)

"""Shared fixtures: a fake procfs tree, a fake NVML module and a fake container runtime."""

from collections.abc import Callable
from pathlib import Path
import threading
import time
from types import SimpleNamespace
from typing import Any

import pytest

from nodescope.collectors.netstat_pod import ContainerInfo, ContainerRef
from nodescope.config import Config

NETSTAT = """\
TcpExt: SyncookiesSent SyncookiesRecv ListenOverflows ListenDrops TCPSynRetrans PruneCalled
TcpExt: 0 0 5 7 12 3
IpExt: InNoRoutes InOctets OutOctets
IpExt: 0 1000 2000
"""

SNMP = """\
Ip: Forwarding DefaultTTL InReceives InHdrErrors
Ip: 1 64 12345 0
Tcp: RtoAlgorithm ActiveOpens PassiveOpens InErrs CurrEstab
Tcp: 1 3821 200 4 17
Udp: InDatagrams NoPorts InErrors OutDatagrams
Udp: 500 3 0 400
"""

SNMP6 = """\
Ip6InReceives                   \t2871
Ip6InOctets                     \t9000
Icmp6InMsgs                     \t12
Icmp6InType136                  \t4
Udp6InDatagrams                 \t33
"""

TABLE_HEADER = (
    "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt"
    "   uid  timeout inode\n"
)


def socket_table(*states: str) -> str:
    """Build a /proc/net/tcp style table with one row per state code."""
    rows = [
        f"   {i}: 0100007F:{1000 + i:04X} 00000000:0000 {state} 00000000:00000000 "
        f"00:00000000 00000000     0        0 {20000 + i} 1 0000000000000000 100 0 0 10 0\n"
        for i, state in enumerate(states)
    ]
    return TABLE_HEADER + "".join(rows)


@pytest.fixture
def make_procfs(tmp_path: Path) -> Callable[..., Path]:
    """Return a builder that writes a procfs tree under tmp_path."""

    def build(
        netstat: str | None = NETSTAT,
        snmp: str | None = SNMP,
        snmp6: str | None = SNMP6,
        tcp: str | None = None,
        udp: str | None = None,
        pids: dict[int, dict[str, str]] | None = None,
    ) -> Path:
        root = tmp_path / "proc"
        net = root / "net"
        net.mkdir(parents=True, exist_ok=True)
        files = {
            "netstat": netstat,
            "snmp": snmp,
            "snmp6": snmp6,
            "tcp": tcp if tcp is not None else socket_table("0A", "0A", "01"),
            "udp": udp if udp is not None else socket_table("07"),
        }
        for name, content in files.items():
            if content is not None:
                (net / name).write_text(content)
        for pid, tables in (pids or {}).items():
            pid_net = root / str(pid) / "net"
            pid_net.mkdir(parents=True, exist_ok=True)
            for protocol, content in tables.items():
                (pid_net / protocol).write_text(content)
        return root

    return build


@pytest.fixture
def procfs(make_procfs: Callable[..., Path]) -> Path:
    """A procfs tree with the default host files."""
    return make_procfs()


@pytest.fixture
def config(procfs: Path) -> Config:
    """Config pointing at the fake procfs tree."""
    return Config(procfs=str(procfs))


class FakeNvmlError(Exception):
    """Stand-in for pynvml.NVMLError."""


class FakeNvml:
    """Minimal NVML module double.

    ``devices`` holds one dict per index. Set ``fail`` to a set of
    ``(index, function name)`` pairs to make those calls raise.
    """

    NVML_TEMPERATURE_GPU = 0

    def __init__(self, devices: list[dict[str, Any]] | None = None) -> None:
        self.devices = devices if devices is not None else []
        self.fail: set[tuple[int | None, str]] = set()
        self.init_calls = 0
        self.shutdown_calls = 0

    def _check(self, index: int | None, op: str) -> None:
        if (index, op) in self.fail:
            raise FakeNvmlError(f"{op} failed")

    def nvmlInit(self) -> None:
        self._check(None, "nvmlInit")
        self.init_calls += 1

    def nvmlShutdown(self) -> None:
        self.shutdown_calls += 1

    def nvmlDeviceGetCount(self) -> int:
        self._check(None, "nvmlDeviceGetCount")
        return len(self.devices)

    def nvmlDeviceGetHandleByIndex(self, index: int) -> int:
        self._check(index, "nvmlDeviceGetHandleByIndex")
        return index

    def nvmlDeviceGetMinorNumber(self, handle: int) -> int:
        self._check(handle, "nvmlDeviceGetMinorNumber")
        return self.devices[handle]["minor"]

    def nvmlDeviceGetUUID(self, handle: int) -> str | bytes:
        self._check(handle, "nvmlDeviceGetUUID")
        return self.devices[handle]["uuid"]

    def nvmlDeviceGetName(self, handle: int) -> str | bytes:
        self._check(handle, "nvmlDeviceGetName")
        return self.devices[handle]["name"]

    def nvmlDeviceGetMemoryInfo(self, handle: int) -> SimpleNamespace:
        self._check(handle, "nvmlDeviceGetMemoryInfo")
        d = self.devices[handle]
        return SimpleNamespace(used=d["used"], total=d["total"], free=d["total"] - d["used"])

    def nvmlDeviceGetUtilizationRates(self, handle: int) -> SimpleNamespace:
        self._check(handle, "nvmlDeviceGetUtilizationRates")
        return SimpleNamespace(gpu=self.devices[handle]["util"], memory=0)

    def nvmlDeviceGetPowerUsage(self, handle: int) -> int:
        self._check(handle, "nvmlDeviceGetPowerUsage")
        return self.devices[handle]["power"]

    def nvmlDeviceGetTemperature(self, handle: int, sensor: int) -> int:
        self._check(handle, "nvmlDeviceGetTemperature")
        return self.devices[handle]["temp"]

    def nvmlDeviceGetFanSpeed(self, handle: int) -> int:
        self._check(handle, "nvmlDeviceGetFanSpeed")
        return self.devices[handle]["fan"]


def gpu_device(minor: int, **overrides: Any) -> dict[str, Any]:
    device = {
        "minor": minor,
        "uuid": f"GPU-{minor:04d}",
        "name": "Tesla T4",
        "used": 1024,
        "total": 16384,
        "util": 42,
        "power": 70000,
        "temp": 55,
        "fan": 30,
    }
    device.update(overrides)
    return device


@pytest.fixture
def fake_nvml() -> FakeNvml:
    """Fake NVML with two healthy devices."""
    return FakeNvml([gpu_device(0), gpu_device(1, name=b"Tesla V100")])


class FakeRuntime:
    """In-memory ContainerRuntime.

    Tracks the peak number of concurrent ``inspect_container`` calls.
    """

    def __init__(
        self,
        containers: dict[str, tuple[str, int]] | None = None,
        inspect_delay: float = 0.0,
    ) -> None:
        self.containers = containers or {}
        self.inspect_delay = inspect_delay
        self.failing: set[str] = set()
        self.list_error: Exception | None = None
        self.active = 0
        self.max_active = 0
        self.inspected: list[str] = []
        self._lock = threading.Lock()

    def list_containers(self) -> list[ContainerRef]:
        if self.list_error is not None:
            raise self.list_error
        return [ContainerRef(id=cid, name=name) for cid, (name, _) in self.containers.items()]

    def inspect_container(self, container_id: str) -> ContainerInfo:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.inspected.append(container_id)
        try:
            if self.inspect_delay:
                time.sleep(self.inspect_delay)
            if container_id in self.failing:
                raise RuntimeError(f"no such container: {container_id}")
            name, pid = self.containers[container_id]
            return ContainerInfo(name=name, pid=pid)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_runtime_factory() -> Callable[..., FakeRuntime]:
    return FakeRuntime


@pytest.fixture
def fake_nvml_factory() -> Callable[..., FakeNvml]:
    return FakeNvml


@pytest.fixture
def device_factory() -> Callable[..., dict[str, Any]]:
    return gpu_device


@pytest.fixture
def table_factory() -> Callable[..., str]:
    return socket_table

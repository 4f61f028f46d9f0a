"""Tests for the GPU collector."""

from collections.abc import Callable
from typing import Any
from unittest.mock import patch

from nodescope.collectors import gpu
from nodescope.collectors.gpu import GpuCollector, probe_nvml
from nodescope.collectors.registry import CollectorRegistry
from nodescope.config import Config
from nodescope.models import MetricRecord, MetricType


def _collect(nvml: Any) -> tuple[bool, list[MetricRecord]]:
    records: list[MetricRecord] = []
    result = GpuCollector(Config(), nvml=nvml).safe_update(records.append)
    return result.success, records


def _by_device(records: list[MetricRecord], name: str) -> dict[str, float]:
    return {r.labels["minor_number"]: r.value for r in records if r.name == name}


class TestGpuCollector:
    """Tests for device sampling."""

    def test_all_metrics(self, fake_nvml: Any) -> None:
        ok, records = _collect(fake_nvml)
        assert ok

        count = [r for r in records if r.name == "node_gpu_num_devices"]
        assert len(count) == 1
        assert count[0].value == 2
        assert count[0].kind == MetricType.GAUGE

        assert _by_device(records, "node_gpu_memory_used_bytes") == {"0": 1024, "1": 1024}
        assert _by_device(records, "node_gpu_memory_total_bytes") == {"0": 16384, "1": 16384}
        assert _by_device(records, "node_gpu_duty_cycle") == {"0": 42, "1": 42}
        assert _by_device(records, "node_gpu_power_usage_milliwatts") == {"0": 70000, "1": 70000}
        assert _by_device(records, "node_gpu_temperature_celsius") == {"0": 55, "1": 55}
        assert _by_device(records, "node_gpu_fanspeed_percent") == {"0": 30, "1": 30}

    def test_labels(self, fake_nvml: Any) -> None:
        _, records = _collect(fake_nvml)
        temps = [r for r in records if r.name == "node_gpu_temperature_celsius"]
        assert temps[1].labels == {"minor_number": "1", "uuid": "GPU-0001", "name": "Tesla V100"}

    def test_help_and_type_from_model(self, fake_nvml: Any) -> None:
        _, records = _collect(fake_nvml)
        temp = next(r for r in records if r.name == "node_gpu_temperature_celsius")
        assert temp.kind == MetricType.GAUGE
        assert temp.help == "Temperature of the GPU device in celsius"

    def test_init_and_shutdown_each_cycle(self, fake_nvml: Any) -> None:
        collector = GpuCollector(Config(), nvml=fake_nvml)
        collector.safe_update(lambda r: None)
        collector.safe_update(lambda r: None)
        assert fake_nvml.init_calls == 2
        assert fake_nvml.shutdown_calls == 2

    def test_failed_reading_drops_only_that_metric(self, fake_nvml: Any) -> None:
        fake_nvml.fail.add((1, "nvmlDeviceGetFanSpeed"))
        ok, records = _collect(fake_nvml)

        assert ok
        assert _by_device(records, "node_gpu_fanspeed_percent") == {"0": 30}
        assert _by_device(records, "node_gpu_temperature_celsius") == {"0": 55, "1": 55}

    def test_failed_memory_drops_both_memory_metrics(self, fake_nvml: Any) -> None:
        fake_nvml.fail.add((0, "nvmlDeviceGetMemoryInfo"))
        _, records = _collect(fake_nvml)
        assert _by_device(records, "node_gpu_memory_used_bytes") == {"1": 1024}
        assert _by_device(records, "node_gpu_memory_total_bytes") == {"1": 16384}

    def test_identity_failure_skips_device(self, fake_nvml: Any) -> None:
        fake_nvml.fail.add((0, "nvmlDeviceGetUUID"))
        ok, records = _collect(fake_nvml)

        assert ok
        assert _by_device(records, "node_gpu_duty_cycle") == {"1": 42}
        count = next(r for r in records if r.name == "node_gpu_num_devices")
        assert count.value == 2

    def test_handle_failure_skips_device(self, fake_nvml: Any) -> None:
        fake_nvml.fail.add((1, "nvmlDeviceGetHandleByIndex"))
        _, records = _collect(fake_nvml)
        assert set(_by_device(records, "node_gpu_duty_cycle")) == {"0"}

    def test_count_failure_fails_cycle(self, fake_nvml: Any) -> None:
        fake_nvml.fail.add((None, "nvmlDeviceGetCount"))
        ok, records = _collect(fake_nvml)

        assert not ok
        assert records == []
        assert fake_nvml.shutdown_calls == 1

    def test_init_failure_fails_cycle(self, fake_nvml: Any) -> None:
        fake_nvml.fail.add((None, "nvmlInit"))
        ok, _ = _collect(fake_nvml)
        assert not ok

    def test_no_devices(self, fake_nvml_factory: Callable[..., Any]) -> None:
        ok, records = _collect(fake_nvml_factory([]))
        assert ok
        assert [(r.name, r.value) for r in records] == [("node_gpu_num_devices", 0)]

    def test_removed_device_not_exported(
        self, fake_nvml: Any, device_factory: Callable[..., dict[str, Any]]
    ) -> None:
        collector = GpuCollector(Config(), nvml=fake_nvml)
        collector.safe_update(lambda r: None)

        fake_nvml.devices = [device_factory(0)]
        records: list[MetricRecord] = []
        collector.safe_update(records.append)
        assert set(_by_device(records, "node_gpu_duty_cycle")) == {"0"}

    def test_invalid_identity_skips_only_that_device(
        self,
        fake_nvml_factory: Callable[..., Any],
        device_factory: Callable[..., dict[str, Any]],
    ) -> None:
        nvml = fake_nvml_factory([device_factory(0), device_factory(1, name="")])
        ok, records = _collect(nvml)

        assert ok
        assert _by_device(records, "node_gpu_temperature_celsius") == {"0": 55}
        count = next(r for r in records if r.name == "node_gpu_num_devices")
        assert count.value == 2


class TestProbe:
    """Tests for the startup probe and registration."""

    def test_probe_success(self, fake_nvml: Any) -> None:
        assert probe_nvml(fake_nvml)
        assert fake_nvml.shutdown_calls == 1

    def test_probe_failure(self, fake_nvml: Any) -> None:
        fake_nvml.fail.add((None, "nvmlInit"))
        assert not probe_nvml(fake_nvml)

    def test_register_disabled_without_nvml(self) -> None:
        registry = CollectorRegistry()
        with patch.object(gpu, "probe_nvml", return_value=False):
            gpu.register(registry, registry.config)
        assert "gpu" in registry
        assert registry.enabled_names() == []

    def test_register_enabled_with_nvml(self) -> None:
        registry = CollectorRegistry()
        with patch.object(gpu, "probe_nvml", return_value=True):
            gpu.register(registry, registry.config)
        assert registry.enabled_names() == ["gpu"]

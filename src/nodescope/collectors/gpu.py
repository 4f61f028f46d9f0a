"""GPU device collector backed by NVIDIA NVML.

This module provides the ``gpu`` collector which exports, per device:
- Memory used and total in bytes
- Duty cycle (GPU utilization percent)
- Power usage in milliwatts
- Temperature in celsius
- Fan speed in percent

Devices are identified by the ``minor_number``, ``uuid`` and ``name`` labels.
A fresh list of DeviceSample objects is built on every scrape, so devices that
disappear stop being exported on the next cycle.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
from types import ModuleType
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError
import pynvml

from nodescope.collectors.base import Collector, Emit
from nodescope.models.base import DeviceSample, MetricType, get_metric_type

if TYPE_CHECKING:
    from nodescope.collectors.registry import CollectorRegistry
    from nodescope.config import Config

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exported metric name -> DeviceSample field. Type and HELP come from the field.
DEVICE_METRICS: tuple[tuple[str, str], ...] = (
    ("memory_used_bytes", "used_bytes"),
    ("memory_total_bytes", "total_bytes"),
    ("duty_cycle", "duty_cycle_pct"),
    ("power_usage_milliwatts", "power_mw"),
    ("temperature_celsius", "temperature_c"),
    ("fanspeed_percent", "fan_pct"),
)


def _text(value: str | bytes) -> str:
    """Decode NVML strings; older bindings return bytes."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class GpuCollector(Collector):
    """Collector for NVIDIA GPU devices.

    Args:
        config: Application configuration
        nvml: Module exposing the NVML API; defaults to ``pynvml``
    """

    name = "gpu"
    subsystem = "gpu"

    def __init__(self, config: Config | None = None, nvml: ModuleType | Any = None) -> None:
        super().__init__(config)
        self._nvml = nvml if nvml is not None else pynvml

    def _reading(self, index: int, operation: str, read: Callable[[], T]) -> T | None:
        """Run one per-device NVML call; a failure drops just that reading."""
        try:
            return read()
        except Exception as e:
            logger.warning("GPU %d: %s failed: %s", index, operation, e)
            return None

    def sample_device(self, index: int) -> DeviceSample | None:
        """Read one device; returns None when its identity cannot be read or is invalid."""
        nvml = self._nvml
        try:
            handle = nvml.nvmlDeviceGetHandleByIndex(index)
            minor_number = nvml.nvmlDeviceGetMinorNumber(handle)
            uuid = _text(nvml.nvmlDeviceGetUUID(handle))
            device_name = _text(nvml.nvmlDeviceGetName(handle))
        except Exception as e:
            logger.warning("GPU %d: skipping device, identity unavailable: %s", index, e)
            return None

        memory = self._reading(
            index, "nvmlDeviceGetMemoryInfo", lambda: nvml.nvmlDeviceGetMemoryInfo(handle)
        )
        utilization = self._reading(
            index,
            "nvmlDeviceGetUtilizationRates",
            lambda: nvml.nvmlDeviceGetUtilizationRates(handle),
        )
        power = self._reading(
            index, "nvmlDeviceGetPowerUsage", lambda: nvml.nvmlDeviceGetPowerUsage(handle)
        )
        temperature = self._reading(
            index,
            "nvmlDeviceGetTemperature",
            lambda: nvml.nvmlDeviceGetTemperature(handle, nvml.NVML_TEMPERATURE_GPU),
        )
        fan = self._reading(
            index, "nvmlDeviceGetFanSpeed", lambda: nvml.nvmlDeviceGetFanSpeed(handle)
        )

        try:
            return DeviceSample(
                minor_number=minor_number,
                uuid=uuid,
                name=device_name,
                used_bytes=float(memory.used) if memory is not None else None,
                total_bytes=float(memory.total) if memory is not None else None,
                duty_cycle_pct=float(utilization.gpu) if utilization is not None else None,
                power_mw=float(power) if power is not None else None,
                temperature_c=float(temperature) if temperature is not None else None,
                fan_pct=float(fan) if fan is not None else None,
            )
        except ValidationError as e:
            logger.warning("GPU %d: skipping device, invalid readings: %s", index, e)
            return None

    def sample_devices(self) -> tuple[int, list[DeviceSample]]:
        """Return the device count and the samples of every readable device.

        Raises:
            Exception: If the device count cannot be read
        """
        count = self._nvml.nvmlDeviceGetCount()
        samples = []
        for index in range(count):
            sample = self.sample_device(index)
            if sample is not None:
                samples.append(sample)
        return count, samples

    def update(self, emit: Emit) -> None:
        nvml = self._nvml
        nvml.nvmlInit()
        try:
            count, samples = self.sample_devices()
        finally:
            try:
                nvml.nvmlShutdown()
            except Exception as e:
                logger.warning("nvmlShutdown failed: %s", e)

        emit(
            self.record(
                "num_devices", float(count), MetricType.GAUGE, help="Number of GPU devices"
            )
        )
        for sample in samples:
            labels = sample.labels
            for field_name, attr in DEVICE_METRICS:
                value = getattr(sample, attr)
                if value is None:
                    continue
                emit(
                    self.record(
                        field_name,
                        value,
                        get_metric_type(DeviceSample, attr) or MetricType.GAUGE,
                        help=DeviceSample.model_fields[attr].description or "",
                        labels=labels,
                    )
                )


def probe_nvml(nvml: ModuleType | Any = None) -> bool:
    """Return True if NVML can be initialized on this host."""
    nvml = nvml if nvml is not None else pynvml
    try:
        nvml.nvmlInit()
    except Exception as e:
        logger.info("NVML unavailable, gpu collector disabled by default: %s", e)
        return False
    try:
        nvml.nvmlShutdown()
    except Exception as e:
        logger.debug("nvmlShutdown failed during probe: %s", e)
    return True


def register(registry: CollectorRegistry, config: Config) -> None:
    """Register the GPU collector, enabled only when NVML is usable."""
    registry.register(GpuCollector.name, probe_nvml(), GpuCollector)

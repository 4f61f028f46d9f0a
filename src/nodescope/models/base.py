"""Base Pydantic models for nodescope data types.

This module defines the foundational data models shared by every collector:
- MetricType: Enum for semantic metric types (counter, gauge, untyped, ...)
- MetricRecord: One immutable sample handed from a collector to the exposition layer
- DeviceSample: Per-GPU readings gathered during a single scrape
- ContainerSample: Per-container socket tally gathered during a single scrape
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.fields import FieldInfo

from nodescope.procfs.sockets import SocketTally


class MetricType(str, Enum):
    """Semantic types for metrics following Prometheus conventions.

    Attributes:
        COUNTER: Monotonically increasing value that only goes up (may reset to zero).
        GAUGE: Value that can go up and down, representing current state.
        UNTYPED: Raw value whose semantics the source does not declare.
                 Kernel counters read from /proc/net are exported this way.
        HISTOGRAM: Observations bucketed into configurable ranges plus count/sum.
        SUMMARY: Streaming quantiles over sliding time window plus count/sum.
    """

    COUNTER = "counter"
    GAUGE = "gauge"
    UNTYPED = "untyped"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts of a metric name with underscores.

    Example:
        >>> build_fq_name("node", "netstat", "Tcp_ActiveOpens")
        'node_netstat_Tcp_ActiveOpens'
        >>> build_fq_name("node", "", "gpu_num_devices")
        'node_gpu_num_devices'
    """
    return "_".join(part for part in (namespace, subsystem, name) if part)


def _metric_field(metric_type: MetricType, description: str = "", **kwargs: Any) -> Any:
    """Return a pydantic Field tagged with ``metric_type`` in its schema extras.

    The description doubles as the HELP text of the exported metric.
    """
    extra = kwargs.pop("json_schema_extra", None)
    tagged = dict(extra) if isinstance(extra, dict) else {}
    tagged["metric_type"] = metric_type.value
    return Field(description=description, json_schema_extra=tagged, **kwargs)


def gauge_field(description: str = "", **kwargs: Any) -> Any:
    """Field holding a current reading, e.g. a temperature.

    Example:
        temperature_c: float | None = gauge_field("GPU temperature", default=None)
    """
    return _metric_field(MetricType.GAUGE, description, **kwargs)


def get_metric_type(model: type[BaseModel], field_name: str) -> MetricType | None:
    """Return the MetricType a model field was declared with, or None."""
    info: FieldInfo | None = model.model_fields.get(field_name)
    extra = info.json_schema_extra if info is not None else None
    if not isinstance(extra, dict):
        return None
    try:
        return MetricType(extra.get("metric_type"))
    except ValueError:
        return None


class MetricRecord(BaseModel):
    """A single metric sample produced during a scrape cycle.

    Records are emitted by collectors onto the scrape sink and never mutated
    afterwards. Within one scrape a record is identified by ``(name, labels)``.

    Attributes:
        name: Fully qualified metric name (``<namespace>_<subsystem>_<field>``)
        labels: Ordered label name -> label value mapping
        value: Sample value
        kind: Semantic metric type
        help: Description used for the exposition HELP line
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    labels: dict[str, str] = Field(default_factory=dict)
    value: float
    kind: MetricType = MetricType.UNTYPED
    help: str = Field(default="")

    @property
    def identity(self) -> tuple[str, tuple[tuple[str, str], ...]]:
        """Return the ``(name, labels)`` key that identifies this record."""
        return self.name, tuple(self.labels.items())


class DeviceSample(BaseModel):
    """Readings for one GPU device taken during a single scrape.

    The three identity fields form the label key of every per-device metric.
    Any reading left as None could not be retrieved this cycle and is not
    exported.
    """

    model_config = ConfigDict(frozen=True)

    minor_number: int = Field(..., ge=0)
    uuid: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    used_bytes: float | None = gauge_field("Memory used by the GPU device in bytes", default=None)
    total_bytes: float | None = gauge_field(
        "Total memory of the GPU device in bytes", default=None
    )
    duty_cycle_pct: float | None = gauge_field(
        "Percent of time over the past sample period during which one or more "
        "kernels were executing on the GPU device",
        default=None,
    )
    power_mw: float | None = gauge_field(
        "Power usage of the GPU device in milliwatts", default=None
    )
    temperature_c: float | None = gauge_field(
        "Temperature of the GPU device in celsius", default=None
    )
    fan_pct: float | None = gauge_field(
        "Fanspeed of the GPU device as a percent of its maximum", default=None
    )

    @property
    def labels(self) -> dict[str, str]:
        """Return the label set shared by every metric for this device."""
        return {"minor_number": str(self.minor_number), "uuid": self.uuid, "name": self.name}


class ContainerSample(BaseModel):
    """Socket state tally for one container taken during a single scrape.

    Attributes:
        container_id: Runtime identifier of the container
        display_name: Container name with path separators removed
        pid: Root process id the socket tables were read from
        tally: Socket count per protocol and state name, e.g.
            ``{"tcp": {"LISTEN": 2}}``
    """

    model_config = ConfigDict(frozen=True)

    container_id: str
    display_name: str
    pid: int = Field(..., gt=0)
    tally: dict[str, dict[str, int]] = Field(default_factory=dict)

    @field_validator("display_name", mode="before")
    @classmethod
    def strip_path_separators(cls, v: str) -> str:
        """Drop the ``/`` the container runtime prefixes names with."""
        return v.replace("/", "") if isinstance(v, str) else v

    @classmethod
    def from_counter(
        cls, container_id: str, display_name: str, pid: int, tally: SocketTally
    ) -> "ContainerSample":
        """Build a sample keeping only the non-zero tally entries."""
        nested: dict[str, dict[str, int]] = {}
        for (protocol, state), count in tally.items():
            if count > 0:
                nested.setdefault(protocol, {})[state.name] = count
        return cls(container_id=container_id, display_name=display_name, pid=pid, tally=nested)

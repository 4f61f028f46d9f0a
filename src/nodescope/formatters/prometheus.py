"""Prometheus text exposition formatter.

Renders the records of a ScrapeResult in Prometheus text format, one metric
family per name with its HELP and TYPE lines written once.

Format specification: https://prometheus.io/docs/instrumenting/exposition_formats/
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from nodescope.models.base import MetricRecord, MetricType

if TYPE_CHECKING:
    from nodescope.collectors.registry import ScrapeResult


def _sanitize_metric_name(name: str) -> str:
    """Sanitize a metric name to comply with Prometheus naming conventions.

    Prometheus metric names must match [a-zA-Z_:][a-zA-Z0-9_:]*

    Args:
        name: The raw metric name

    Returns:
        Sanitized metric name
    """
    sanitized = re.sub(r"[^a-zA-Z0-9_:]", "_", name)
    if sanitized and sanitized[0].isdigit():
        sanitized = "_" + sanitized
    return sanitized


def _sanitize_label_name(name: str) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "_", name)
    if sanitized and sanitized[0].isdigit():
        sanitized = "_" + sanitized
    return sanitized


def _escape_label_value(value: str) -> str:
    """Escape backslash, newline and double quote in a label value."""
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_labels(labels: dict[str, str]) -> str:
    """Format labels as a Prometheus label string like {foo="bar",baz="qux"}."""
    if not labels:
        return ""
    pairs = [
        f'{_sanitize_label_name(k)}="{_escape_label_value(str(v))}"' for k, v in labels.items()
    ]
    return "{" + ",".join(pairs) + "}"


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


class PrometheusFormatter:
    """Prometheus text format formatter.

    Records sharing a name form one family. Families are written in the order
    their first record appears; the HELP and TYPE of that first record apply
    to the whole family.

    Example output:
        # HELP node_netstat_Tcp_ActiveOpens Statistic TcpActiveOpens.
        # TYPE node_netstat_Tcp_ActiveOpens untyped
        node_netstat_Tcp_ActiveOpens 3821
    """

    name: str = "prometheus"
    file_extension: str = ".prom"

    def __init__(self, include_help: bool = True, include_type: bool = True) -> None:
        self.include_help = include_help
        self.include_type = include_type

    def format_records(self, records: list[MetricRecord]) -> str:
        families: dict[str, list[MetricRecord]] = {}
        for record in records:
            families.setdefault(_sanitize_metric_name(record.name), []).append(record)

        lines: list[str] = []
        for metric_name, family in families.items():
            first = family[0]
            if self.include_help:
                lines.append(f"# HELP {metric_name} {_escape_help(first.help or metric_name)}")
            if self.include_type:
                kind = first.kind if isinstance(first.kind, MetricType) else MetricType(first.kind)
                lines.append(f"# TYPE {metric_name} {kind.value}")
            for record in family:
                lines.append(
                    f"{metric_name}{_format_labels(record.labels)} {_format_value(record.value)}"
                )

        return "\n".join(lines) + "\n" if lines else ""

    def format(self, result: ScrapeResult, hostname: str = "") -> str:
        """Format a scrape result as Prometheus text.

        Args:
            result: The scrape to render
            hostname: Unused; the scraping server attaches instance labels

        Returns:
            Prometheus exposition format string
        """
        return self.format_records(result.records)

"""Formatters package for nodescope.

This package contains formatters that render a scrape result:

- PrometheusFormatter: Prometheus text exposition format
- JsonFormatter: JSON output for machine-readable data
"""

from nodescope.formatters.json_formatter import JsonFormatter
from nodescope.formatters.prometheus import PrometheusFormatter

FORMATTERS = {
    PrometheusFormatter.name: PrometheusFormatter,
    JsonFormatter.name: JsonFormatter,
}


def get_formatter(name: str) -> PrometheusFormatter | JsonFormatter:
    """Return a formatter instance by name.

    Raises:
        ValueError: If no formatter has that name
    """
    try:
        return FORMATTERS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown format '{name}'. Choose from: {', '.join(FORMATTERS)}"
        ) from None


__all__ = [
    "FORMATTERS",
    "JsonFormatter",
    "PrometheusFormatter",
    "get_formatter",
]

"""JSON formatter for nodescope scrape results.

Serializes every record with Pydantic's ``model_dump(mode="json")`` and adds
the scrape timestamp, host name and per-collector errors.
"""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from nodescope.collectors.registry import ScrapeResult


class JsonFormatter:
    """JSON formatter for machine-readable output.

    Instance Attributes:
        pretty_print: Whether to format with indentation (default: True)
    """

    name: str = "json"
    file_extension: str = ".json"

    def __init__(self, pretty_print: bool = True) -> None:
        self.pretty_print = pretty_print

    def to_dict(self, result: ScrapeResult, hostname: str = "") -> dict[str, Any]:
        """Build the JSON document as a plain dict.

        Non-finite values are written as null since JSON has no NaN.
        """
        metrics = []
        for record in result.records:
            entry = record.model_dump(mode="json")
            if not math.isfinite(record.value):
                entry["value"] = None
            metrics.append(entry)
        return {
            "timestamp": result.timestamp.isoformat(),
            "hostname": hostname,
            "metrics": metrics,
            "errors": dict(result.errors),
        }

    def format(self, result: ScrapeResult, hostname: str = "") -> str:
        """Format a scrape result as a JSON string.

        Example:
            >>> print(JsonFormatter().format(result, "web-1"))
            {
              "timestamp": "2024-01-15T10:30:00+00:00",
              "hostname": "web-1",
              "metrics": [{"name": "node_netstat_Tcp_ActiveOpens", ...}],
              "errors": {}
            }
        """
        indent = 2 if self.pretty_print else None
        separators = None if self.pretty_print else (",", ":")
        return json.dumps(self.to_dict(result, hostname), indent=indent, separators=separators)

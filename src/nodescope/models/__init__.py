"""Pydantic data models for nodescope.

This module provides the core data models used throughout nodescope:
- MetricRecord: One immutable metric sample
- MetricType: Semantic metric types (counter, gauge, untyped, ...)
- DeviceSample, ContainerSample: Per-entity samples built during a scrape
- build_fq_name: Metric name composition
"""

from nodescope.models.base import (
    ContainerSample,
    DeviceSample,
    MetricRecord,
    MetricType,
    build_fq_name,
    gauge_field,
    get_metric_type,
)

__all__ = [
    "MetricRecord",
    "MetricType",
    "DeviceSample",
    "ContainerSample",
    "build_fq_name",
    "gauge_field",
    "get_metric_type",
]

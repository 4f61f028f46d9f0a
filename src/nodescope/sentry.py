"""Sentry SDK integration for nodescope.

This module provides:
- Sentry initialization with logging integration
- Host context and default tags
- Capture of collector failures with collector context

Error reporting is opt-in: nothing is sent unless a DSN is configured.

Usage:
    from nodescope.sentry import init_sentry, report_collector_failure

    if init_sentry(dsn=config.sentry.dsn, environment=config.sentry.environment):
        registry.add_error_hook(report_collector_failure)
"""

from __future__ import annotations

import logging
import platform
from typing import TYPE_CHECKING, Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from nodescope import __version__

if TYPE_CHECKING:
    from nodescope.collectors.base import CollectionResult


def init_sentry(
    *,
    dsn: str | None,
    environment: str = "production",
    traces_sample_rate: float = 0.0,
    event_level: int | None = None,
) -> bool:
    """Initialize Sentry SDK with nodescope-specific configuration.

    Args:
        dsn: Sentry DSN; Sentry stays disabled when empty
        environment: Deployment environment tag
        traces_sample_rate: Sample rate for performance traces (0.0-1.0)
        event_level: Minimum log level that creates Sentry events; None keeps
            log records as breadcrumbs only

    Returns:
        True if Sentry was initialized
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=f"nodescope@{__version__}",
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        # INFO and above become breadcrumbs on the next captured event
        integrations=[LoggingIntegration(level=logging.INFO, event_level=event_level)],
        before_send=_before_send,
    )

    tags = {
        "app.version": __version__,
        "python.version": platform.python_version(),
        "os.name": platform.system(),
        "os.version": platform.release(),
        "arch": platform.machine(),
    }
    for key, value in tags.items():
        sentry_sdk.set_tag(key, value)
    sentry_sdk.set_context(
        "host",
        {
            "hostname": platform.node(),
            "os_full": platform.platform(),
            "python_implementation": platform.python_implementation(),
        },
    )
    return True


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """Drop events for Ctrl-C."""
    exc_info = hint.get("exc_info")
    if exc_info and issubclass(exc_info[0], KeyboardInterrupt):
        return None
    return event


def capture_collector_error(
    collector_name: str,
    error: Exception,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Send ``error`` to Sentry tagged with the collector it came from."""
    context = {"collector": collector_name, "error_type": type(error).__name__}
    context.update(extra or {})
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("collector", collector_name)
        scope.set_context("collector_error", context)
        sentry_sdk.capture_exception(error)


def report_collector_failure(name: str, result: CollectionResult) -> None:
    """Registry error hook forwarding a failed collection to Sentry."""
    error = result.exception or RuntimeError(result.error or "collector failed")
    capture_collector_error(name, error, extra={"duration_seconds": result.duration_seconds})

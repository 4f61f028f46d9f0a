"""Tests for Sentry integration."""

from unittest.mock import MagicMock, patch

from nodescope.collectors.base import CollectionResult
from nodescope.sentry import (
    _before_send,
    capture_collector_error,
    init_sentry,
    report_collector_failure,
)


class TestInitSentry:
    """Tests for init_sentry."""

    def test_disabled_without_dsn(self) -> None:
        with patch("nodescope.sentry.sentry_sdk") as sdk:
            assert init_sentry(dsn=None) is False
            assert init_sentry(dsn="") is False
        sdk.init.assert_not_called()

    def test_init_with_dsn(self) -> None:
        with patch("nodescope.sentry.sentry_sdk") as sdk:
            assert init_sentry(dsn="https://key@example.invalid/1", environment="staging")

        kwargs = sdk.init.call_args.kwargs
        assert kwargs["environment"] == "staging"
        assert kwargs["release"].startswith("nodescope@")
        assert kwargs["send_default_pii"] is False
        tagged = {c.args[0] for c in sdk.set_tag.call_args_list}
        assert "app.version" in tagged
        sdk.set_context.assert_called_once()


class TestBeforeSend:
    def test_drops_keyboard_interrupt(self) -> None:
        hint = {"exc_info": (KeyboardInterrupt, KeyboardInterrupt(), None)}
        assert _before_send({"x": 1}, hint) is None

    def test_keeps_other_events(self) -> None:
        event = {"x": 1}
        assert _before_send(event, {"exc_info": (OSError, OSError(), None)}) is event
        assert _before_send(event, {}) is event


class TestCollectorErrors:
    """Tests for collector failure reporting."""

    def test_capture_sets_scope(self) -> None:
        scope = MagicMock()
        error = OSError("gone")
        with patch("nodescope.sentry.sentry_sdk") as sdk:
            sdk.new_scope.return_value.__enter__.return_value = scope
            capture_collector_error("netstat", error, extra={"path": "/proc/net/tcp"})

        scope.set_tag.assert_called_once_with("collector", "netstat")
        context = scope.set_context.call_args.args[1]
        assert context == {
            "collector": "netstat",
            "error_type": "OSError",
            "path": "/proc/net/tcp",
        }
        sdk.capture_exception.assert_called_once_with(error)

    def test_report_uses_result_exception(self) -> None:
        error = RuntimeError("nvml")
        result = CollectionResult(success=False, error="RuntimeError: nvml", exception=error)
        with patch("nodescope.sentry.capture_collector_error") as capture:
            report_collector_failure("gpu", result)
        assert capture.call_args.args == ("gpu", error)

    def test_report_without_exception(self) -> None:
        result = CollectionResult(success=False, error="ValueError: bad")
        with patch("nodescope.sentry.capture_collector_error") as capture:
            report_collector_failure("gpu", result)
        sent = capture.call_args.args[1]
        assert isinstance(sent, RuntimeError)
        assert str(sent) == "ValueError: bad"

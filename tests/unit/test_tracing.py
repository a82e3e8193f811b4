"""
Unit tests for tracing module.

Tests cover:
    - @traced decorator with tracing disabled and enabled
    - add_span_attributes() helper
"""

from unittest.mock import MagicMock, patch

import pytest

from docrag import tracing


@pytest.fixture
def mock_trace():
    """Replace the OpenTelemetry trace API with a mock."""
    span = MagicMock()
    tracer = MagicMock()
    tracer.start_as_current_span.return_value.__enter__.return_value = span
    trace_api = MagicMock()
    trace_api.get_tracer.return_value = tracer
    trace_api.get_current_span.return_value = span
    with patch.object(tracing, "trace", trace_api):
        yield trace_api, tracer, span


@pytest.mark.unit
class TestTraced:
    """Tests for the @traced decorator."""

    def test_disabled_calls_through(self, mock_trace, settings_factory):
        trace_api, _, _ = mock_trace

        @tracing.traced("unit.op")
        def op(x):
            return x * 2

        with patch.object(tracing, "settings", settings_factory(enable_tracing=False)):
            assert op(21) == 42
        trace_api.get_tracer.assert_not_called()

    def test_enabled_opens_span(self, mock_trace, settings_factory):
        trace_api, tracer, span = mock_trace

        @tracing.traced("unit.op")
        def op(x):
            return [x]

        with patch.object(tracing, "settings", settings_factory(enable_tracing=True)):
            assert op(1) == [1]

        trace_api.get_tracer.assert_called_once_with(tracing.TRACER_NAME)
        tracer.start_as_current_span.assert_called_once_with("unit.op")
        span.set_attribute.assert_any_call("function.name", "op")
        span.set_attribute.assert_any_call("result.type", "list")

    def test_default_span_name(self, mock_trace, settings_factory):
        _, tracer, _ = mock_trace

        @tracing.traced()
        def named_operation():
            return None

        with patch.object(tracing, "settings", settings_factory(enable_tracing=True)):
            named_operation()

        tracer.start_as_current_span.assert_called_once_with("named_operation")

    def test_preserves_metadata(self):
        @tracing.traced()
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."


@pytest.mark.unit
class TestSpanAttributes:
    """Tests for add_span_attributes."""

    def test_sets_attributes_when_enabled(self, mock_trace, settings_factory):
        _, _, span = mock_trace

        with patch.object(tracing, "settings", settings_factory(enable_tracing=True)):
            tracing.add_span_attributes(scope_id="chat-1", degraded=True, outcome=["x"])

        span.set_attribute.assert_any_call("scope_id", "chat-1")
        span.set_attribute.assert_any_call("degraded", True)
        span.set_attribute.assert_any_call("outcome", "['x']")

    def test_noop_when_disabled(self, mock_trace, settings_factory):
        trace_api, _, _ = mock_trace

        with patch.object(tracing, "settings", settings_factory(enable_tracing=False)):
            tracing.add_span_attributes(scope_id="chat-1")

        trace_api.get_current_span.assert_not_called()

"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from cea_agent.services.metrics import NAMESPACE, MetricsClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
        with patch.object(MetricsClient, "_start_flush_thread"):
            return MetricsClient()


def _dims(datum: dict) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in datum["Dimensions"]}


class TestMetricsRecording:
    """Verify that record_call / increment buffer the right data."""

    def test_successful_call_appends_count_and_latency(self):
        client = _make_client()
        client.record_call("tool_backend", "get_deuda", latency_ms=123.4)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalAPI/RequestCount", "ExternalAPI/Latency"}

    def test_failed_call_appends_three_data_points(self):
        client = _make_client()
        client.record_call("anthropic", "Pagos Agent", latency_ms=500.0, error_type="APITimeoutError")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {
            "ExternalAPI/RequestCount",
            "ExternalAPI/ErrorCount",
            "ExternalAPI/Latency",
        }

    def test_zero_latency_is_not_recorded(self):
        client = _make_client()
        client.record_call("tool_backend", "get_deuda", latency_ms=0, error_type="ConnectError")
        assert len(client._buffer) == 2

    def test_call_dimensions(self):
        client = _make_client()
        client.record_call("anthropic", "Classification agent", latency_ms=50.0, error_type="BadRequestError")
        count = next(m for m in client._buffer if m["MetricName"] == "ExternalAPI/RequestCount")
        error = next(m for m in client._buffer if m["MetricName"] == "ExternalAPI/ErrorCount")
        latency = next(m for m in client._buffer if m["MetricName"] == "ExternalAPI/Latency")
        assert _dims(count) == {"Service": "anthropic", "Status": "failure"}
        assert _dims(error)["ErrorType"] == "BadRequestError"
        assert _dims(latency)["Operation"] == "Classification agent"

    def test_increment_counts_workflow_events(self):
        client = _make_client()
        client.increment("Tickets/LocalFolioFallback", Reason="remote_failure")
        (datum,) = client._buffer
        assert datum["MetricName"] == "Tickets/LocalFolioFallback"
        assert datum["Value"] == 1
        assert _dims(datum) == {"Reason": "remote_failure"}


class TestMetricsFlush:
    """Verify flush behaviour with and without CloudWatch enabled."""

    def test_flush_when_disabled_does_not_send(self):
        client = _make_client()
        client.record_call("tool_backend", "get_deuda", latency_ms=100.0)
        assert client.flush() == 0
        assert client._cw_client is None

    def test_flush_clears_buffer(self):
        client = _make_client()
        client.increment("Agents/ApprovalExhausted", Agent="Tickets Agent")
        client.flush()
        assert client._buffer == []

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        assert client.enabled
        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_call("tool_backend", "get_deuda", latency_ms=100.0)
        sent = client.flush()

        assert sent == 2
        kwargs = mock_cw.put_metric_data.call_args[1]
        assert kwargs["Namespace"] == NAMESPACE == "CeaAgent"
        assert len(kwargs["MetricData"]) == 2

    def test_flush_survives_cloudwatch_errors(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()
        client._cw_client.put_metric_data.side_effect = RuntimeError("throttled")

        client.increment("Tickets/LocalFolioFallback", Reason="remote_error")
        assert client.flush() == 0

    def test_flush_empty_buffer_returns_zero(self):
        assert _make_client(enabled=True).flush() == 0

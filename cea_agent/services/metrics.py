"""CloudWatch custom metrics with background batching.

Tracks every call to the chat models and the remote tool backend, plus the
workflow's degraded paths (local folio fallbacks, exhausted approval
loops), so they can be alarmed on instead of going unnoticed.

* Data points are buffered in memory under a lock.
* With ``METRICS_ENABLED=true`` a daemon thread flushes the buffer every
  ``FLUSH_INTERVAL_SECONDS``; otherwise data points are only logged at DEBUG.
* ``put_metric_data`` takes at most ``MAX_BATCH_SIZE`` points per request.

>>> from cea_agent.services.metrics import metrics
>>> metrics.record_call("tool_backend", "get_deuda", latency_ms=80.2)
>>> metrics.record_call("anthropic", "Pagos Agent", latency_ms=950.0, error_type="APITimeoutError")
>>> metrics.increment("Tickets/LocalFolioFallback", reason="remote_error")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "CeaAgent"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000


def _dimensions(**dims: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in dims.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ── Recording ─────────────────────────────────────────────────────

    def record_call(
        self,
        service: str,
        operation: str,
        latency_ms: float,
        error_type: str | None = None,
    ) -> None:
        """Record one external call; *error_type* marks it as failed."""
        status = "failure" if error_type else "success"
        self._add("ExternalAPI/RequestCount", 1, "Count", Service=service, Status=status)
        if latency_ms > 0:
            self._add(
                "ExternalAPI/Latency", latency_ms, "Milliseconds",
                Service=service, Operation=operation,
            )
        if error_type:
            self._add("ExternalAPI/ErrorCount", 1, "Count", Service=service, ErrorType=error_type)
        logger.debug(
            "Metric: %s %s %s latency=%.1fms%s",
            service, operation, status, latency_ms,
            f" error={error_type}" if error_type else "",
        )

    def increment(self, metric_name: str, **dims: str) -> None:
        """Count one occurrence of a workflow event."""
        self._add(metric_name, 1, "Count", **dims)
        logger.debug("Metric: %s +1 %s", metric_name, dims)

    def flush(self) -> int:
        """Send buffered data points to CloudWatch.  Returns count sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []

        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _add(self, metric_name: str, value: float, unit: str, **dims: str) -> None:
        datum = {
            "MetricName": metric_name,
            "Dimensions": _dimensions(**dims),
            "Timestamp": datetime.now(UTC),
            "Value": value,
            "Unit": unit,
        }
        with self._lock:
            self._buffer.append(datum)

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()

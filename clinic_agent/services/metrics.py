"""CloudWatch custom metrics emitter with background batching.

Three families of metrics are published:

* ``ExternalAPI/*``  : count, latency and errors for every database call;
* ``ModelGateway/*`` : one data point per provider attempt, dimensioned by
                        provider and outcome (success / rate_limited /
                        other_error), plus attempt latency;
* ``Booking/*``      : created vs failed chat bookings.

Data points are buffered in memory and flushed by a daemon thread every
``FLUSH_INTERVAL_SECONDS``.  Unless ``METRICS_ENABLED=true`` nothing is
sent to CloudWatch; the buffer is simply dropped on flush.

Usage
-----
>>> from clinic_agent.services.metrics import metrics
>>> metrics.record_success("supabase", "GET /services", latency_ms=41.0)
>>> metrics.record_provider_attempt(attempt, latency_ms=812.5)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from clinic_agent.models import ProviderAttempt

logger = logging.getLogger(__name__)

NAMESPACE = "ClinicChatAgent"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


def _dims(**pairs: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in pairs.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    def _datum(
        self,
        name: str,
        dimensions: list[dict[str, str]],
        value: float = 1,
        unit: str = "Count",
    ) -> None:
        with self._lock:
            self._buffer.append(
                {
                    "MetricName": name,
                    "Dimensions": dimensions,
                    "Timestamp": datetime.now(UTC),
                    "Value": value,
                    "Unit": unit,
                }
            )

    # ── Database calls ────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        self._datum("ExternalAPI/RequestCount", _dims(Service=service, Status="success"))
        self._datum(
            "ExternalAPI/Latency",
            _dims(Service=service, Operation=operation),
            latency_ms,
            "Milliseconds",
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        self._datum("ExternalAPI/RequestCount", _dims(Service=service, Status="failure"))
        self._datum("ExternalAPI/ErrorCount", _dims(Service=service, ErrorType=error_type))
        if latency_ms > 0:
            self._datum(
                "ExternalAPI/Latency",
                _dims(Service=service, Operation=operation),
                latency_ms,
                "Milliseconds",
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    # ── Model gateway ─────────────────────────────────────────────────

    def record_provider_attempt(self, attempt: ProviderAttempt, latency_ms: float) -> None:
        """Record one failover-loop attempt against a model provider."""
        self._datum(
            "ModelGateway/Attempts",
            _dims(Provider=attempt.provider_id, Outcome=attempt.outcome.value),
        )
        self._datum(
            "ModelGateway/Latency",
            _dims(Provider=attempt.provider_id),
            latency_ms,
            "Milliseconds",
        )
        logger.debug(
            "Metric: provider %s %s latency=%.1fms",
            attempt.provider_id, attempt.outcome.value, latency_ms,
        )

    def record_exhausted(self, rate_limited: bool) -> None:
        self._datum(
            "ModelGateway/Exhausted",
            _dims(RateLimited="true" if rate_limited else "false"),
        )

    # ── Bookings ──────────────────────────────────────────────────────

    def record_booking(self, success: bool) -> None:
        self._datum("Booking/ChatBookings", _dims(Status="created" if success else "failed"))

    # ── Flushing ──────────────────────────────────────────────────────

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

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

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()

"""HTTP client for the clinic database's PostgREST (Supabase) interface.

Only the three tables the chat receptionist touches are covered:

* ``services``    : read-only catalog (cached)
* ``appointments``: inserts from the chat agent and the booking form
* ``chat_logs``   : append-only conversation log

Requests authenticate with the service-role key, which bypasses row-level
security, so this client must only ever run server-side.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from clinic_agent.config import SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL
from clinic_agent.models import AppointmentRecord, ServiceRef
from clinic_agent.services.cache import LRUCache
from clinic_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 10.0

CATALOG_TTL_SECONDS = 300
_CK_SERVICES = "services"


class SupabaseAPIError(Exception):
    """Raised when a PostgREST call fails (after retries, where retried)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _error_message(response: httpx.Response) -> str:
    """PostgREST errors are JSON objects with a ``message`` field."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text


class SupabaseClient:
    """Thin PostgREST wrapper with retries and a cached service catalog.

    Reads and chat-log appends are retried on transport errors (timeouts,
    dropped connections) and 5xx responses.  Appointment inserts are sent
    exactly once: a retried insert whose first attempt actually landed
    would double-book.
    """

    def __init__(
        self,
        url: str | None = None,
        service_role_key: str | None = None,
        *,
        cache: LRUCache | None = None,
    ):
        base = (url or SUPABASE_URL or "").rstrip("/")
        key = service_role_key or SUPABASE_SERVICE_ROLE_KEY or ""
        self._client = httpx.Client(
            base_url=f"{base}/rest/v1",
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._cache = cache or LRUCache(ttl_seconds=CATALOG_TTL_SECONDS)

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        retry: bool = True,
    ) -> Any:
        """Execute a request, retrying transient failures when *retry* is set."""
        attempts = MAX_RETRIES if retry else 1
        operation = f"{method} {path}"
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(
                    method, path, params=params, json=json_body, headers=headers,
                )
                elapsed = (time.perf_counter() - t0) * 1000
                if response.status_code >= 400:
                    metrics.record_failure(
                        "supabase", operation,
                        error_type=f"{response.status_code // 100}xx", latency_ms=elapsed,
                    )
                    raise SupabaseAPIError(
                        f"{operation} failed with {response.status_code}: {_error_message(response)}",
                        status_code=response.status_code,
                    )
                metrics.record_success("supabase", operation, latency_ms=elapsed)
                if response.status_code == 204 or not response.content:
                    return None
                try:
                    return response.json()
                except ValueError as exc:
                    raise SupabaseAPIError(
                        f"{operation} returned a malformed body: {exc}",
                        status_code=response.status_code,
                    ) from exc

            except httpx.TransportError as exc:
                metrics.record_failure("supabase", operation, error_type=type(exc).__name__)
                last_error = exc
                logger.warning(
                    "Supabase %s attempt %d/%d failed (%s)",
                    operation, attempt, attempts, type(exc).__name__,
                )
            except SupabaseAPIError as exc:
                if exc.status_code is not None and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Supabase %s server error on attempt %d/%d",
                        operation, attempt, attempts,
                    )
                else:
                    raise

            if attempt < attempts:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        if not retry and isinstance(last_error, SupabaseAPIError):
            raise last_error
        raise SupabaseAPIError(
            f"Supabase {operation} failed after {attempts} attempt(s): {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )

    # ── Services ─────────────────────────────────────────────────────

    def list_services(self) -> list[ServiceRef]:
        """Return the service catalog, newest first (cached for a few minutes)."""
        cached = self._cache.get(_CK_SERVICES)
        if cached is None:
            cached = self._request(
                "GET",
                "/services",
                params={"select": "id,name", "order": "created_at.desc"},
            ) or []
            self._cache.put(_CK_SERVICES, cached)
        return [ServiceRef(id=str(row["id"]), name=row["name"]) for row in cached]

    # ── Appointments ─────────────────────────────────────────────────

    def create_appointments(self, records: list[AppointmentRecord]) -> list[dict[str, Any]]:
        """Insert *records* in one request and return the stored rows."""
        rows = self._request(
            "POST",
            "/appointments",
            json_body=[record.to_row() for record in records],
            headers={"Prefer": "return=representation"},
            retry=False,
        )
        logger.info("Inserted %d appointment(s)", len(rows or []))
        return rows or []

    def create_appointment(self, record: AppointmentRecord) -> dict[str, Any]:
        rows = self.create_appointments([record])
        return rows[0] if rows else {}

    # ── Chat logs ────────────────────────────────────────────────────

    def append_chat_log(self, row: dict[str, Any]) -> None:
        self._request(
            "POST",
            "/chat_logs",
            json_body=row,
            headers={"Prefer": "return=minimal"},
        )

    def close(self) -> None:
        self._client.close()

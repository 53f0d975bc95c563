"""HTTP client for the hosted table API, with retries and a circuit breaker.

This module implements ``TablePort`` over the hosted database's REST
interface (PostgREST dialect) using ``httpx``:

- Rows are addressed as ``{base}/rest/v1/{table}``; equality filters are
  sent as ``column=eq.value`` and ordering as ``order=column.desc``.
- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- A circuit breaker shared by all clients avoids hammering the table API
  while it is unhealthy, probing again (HALF_OPEN) after a timeout.
- Reads, updates and deletes are retried with exponential backoff on
  transport errors and 5xx. Inserts are never retried so an order cannot be
  written twice.
- The shopper's access token is forwarded so row-level security applies.
"""

import threading
import time
from typing import Any, List, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import RowNotFound, TableError, TablePort, TableUnavailable

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

SINGLE_ROW_ACCEPT = "application/vnd.pgrst.object+json"
NO_ROWS_CODE = "PGRST116"
RETRIABLE_METHODS = {"GET", "PATCH", "DELETE"}


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful probe; only one probe may be in
      flight; a failed probe opens the circuit again.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check the breaker before a protected call.

        Raises:
            TableUnavailable: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise TableUnavailable("Table API circuit is open", code="CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise TableUnavailable("Table API probe in flight", code="CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


tables_cb = CircuitBreaker(
    "tables",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers with ``X-Request-ID`` (when known) plus any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def _error_from(resp: httpx.Response) -> TableError:
    """Map an error response body (``{code, message, details}``) to a TableError."""
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    code = body.get("code")
    message = body.get("message") or body.get("msg") or f"HTTP {resp.status_code}"
    if code == NO_ROWS_CODE:
        return RowNotFound(message, code=code, status=resp.status_code)
    if resp.status_code >= 500:
        return TableUnavailable(message, code=code, status=resp.status_code)
    return TableError(message, code=code, status=resp.status_code)


# ---------------- Table client ---------------- #

class HttpTableClient(TablePort):
    """``TablePort`` over the hosted REST table API.

    Args:
        base_url: Project URL; the REST root is ``{base_url}/rest/v1``.
        api_key: Project API key sent as ``apikey``.
        access_token: Shopper's bearer token; the API key is used when absent.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.HOSTED_DB_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else getattr(settings, "HOSTED_DB_ANON_KEY", "")
        self.access_token = access_token
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _auth_headers(self) -> dict:
        headers = {"apikey": self.api_key}
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict] = None,
        body: Any = None,
        extra_headers: Optional[dict] = None,
    ) -> httpx.Response:
        """Send one call through the breaker, retrying where the verb allows it.

        Returns:
            The 2xx response.

        Raises:
            TableUnavailable: Transport error, 5xx after retries, or open circuit.
            RowNotFound: Single-row select that matched nothing.
            TableError: Any other non-2xx answer.
        """
        max_retries, backoff = _retry_policy()
        if method not in RETRIABLE_METHODS:
            max_retries = 0
        tries = 0

        state = tables_cb.before_call()
        headers = _request_headers({**self._auth_headers(), **(extra_headers or {})})
        headers["X-Circuit-State"] = state
        headers["X-Retry-Count"] = "0"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, self._url(table), params=params, json=body, headers=headers)
                        if resp.status_code < 400:
                            tables_cb.on_success()
                            return resp
                        if resp.status_code < 500:
                            # answered by the API: a business outcome, not a circuit failure
                            tables_cb.on_success()
                            raise _error_from(resp)
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries > max_retries:
                        tables_cb.on_failure()
                        if exc is not None:
                            raise TableUnavailable(str(exc) or exc.__class__.__name__) from exc
                        raise _error_from(resp)

                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    time.sleep(min(sleep_s, cap))
        finally:
            tables_cb.on_finish()

    # ---- TablePort ----
    def select(self, table: str, *, filters: Optional[dict] = None, order: Optional[str] = None, single: bool = False) -> Any:
        params = {"select": "*"}
        for column, value in (filters or {}).items():
            params[column] = _filter_value(value)
        if order:
            params["order"] = order
        extra = {"Accept": SINGLE_ROW_ACCEPT} if single else None
        return self._request("GET", table, params=params, extra_headers=extra).json()

    def insert(self, table: str, rows: "dict | List[dict]") -> List[dict]:
        resp = self._request("POST", table, body=rows, extra_headers={"Prefer": "return=representation"})
        data = resp.json()
        return data if isinstance(data, list) else [data]

    def update(self, table: str, values: dict, *, filters: dict) -> List[dict]:
        params = {column: _filter_value(value) for column, value in filters.items()}
        resp = self._request("PATCH", table, params=params, body=values, extra_headers={"Prefer": "return=representation"})
        data = resp.json()
        return data if isinstance(data, list) else [data]

    def delete(self, table: str, *, filters: dict) -> None:
        params = {column: _filter_value(value) for column, value in filters.items()}
        self._request("DELETE", table, params=params)

    def ping(self) -> bool:
        """Whether the REST root answers at all (used by the health check)."""
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.request("GET", f"{self.base_url}/rest/v1/", headers=_request_headers(self._auth_headers()))
        except httpx.RequestError:
            return False
        return resp.status_code < 500

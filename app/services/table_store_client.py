"""
Table store client: talks to a PostgREST-style HTTP API.

Used by the remote backup engine to delete and insert rows table by
table.  The API is addressed as ``{TABLE_STORE_URL}/rest/v1/{table}``
and authenticated with the service key in both the ``apikey`` and
``Authorization: Bearer`` headers.

Configuration is read from Flask ``current_app.config``:
    - ``TABLE_STORE_URL``:         Base URL of the table store.
    - ``TABLE_STORE_SERVICE_KEY``: Service-role key.
    - ``TABLE_STORE_TIMEOUT``:     Per-request timeout in seconds.
"""

import json
import logging
from typing import Any

import urllib3
from flask import current_app

logger = logging.getLogger(__name__)


class TableStoreError(Exception):
    """
    A failed table store request.

    ``code`` carries the API's error code (``PGRST205``, ``42P01``...)
    when the response body provides one.
    """

    def __init__(self, message: str, code: str | None = None,
                 status: int | None = None, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details


def is_configured(config=None) -> bool:
    """True when both the URL and the service key are set."""
    config = config if config is not None else current_app.config
    return bool(config.get("TABLE_STORE_URL")) and bool(
        config.get("TABLE_STORE_SERVICE_KEY")
    )


class TableStoreClient:
    """
    Client for the table store's REST endpoints.

    Usage inside a Flask request or app context::

        client = TableStoreClient()
        client.delete_all("assets")
        client.insert("assets", rows)
    """

    def __init__(self, base_url: str | None = None, service_key: str | None = None,
                 timeout: float | None = None) -> None:
        config = current_app.config
        self.base_url: str = (base_url or config.get("TABLE_STORE_URL", "")).rstrip("/")
        self.service_key: str = service_key or config.get("TABLE_STORE_SERVICE_KEY", "")
        self.timeout = urllib3.Timeout(
            total=timeout or config.get("TABLE_STORE_TIMEOUT", 30)
        )
        if not self.base_url or not self.service_key:
            raise TableStoreError("Table store URL and service key are not configured")

        self.headers: dict[str, str] = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        self._http = urllib3.PoolManager(timeout=self.timeout)

        logger.debug("TableStoreClient initialized: base_url=%s", self.base_url)

    # =================================================================
    # Public API
    # =================================================================

    def delete_all(self, table: str) -> None:
        """Delete every row of ``table`` (rows with a non-null id)."""
        self._request(
            "DELETE",
            table,
            query="id=not.is.null",
            extra_headers={"Prefer": "return=minimal"},
        )

    def insert(self, table: str, rows: list[dict[str, Any]]) -> int:
        """Insert ``rows`` in one request and return how many were sent."""
        if not rows:
            return 0
        self._request(
            "POST",
            table,
            body=json.dumps(rows, default=str),
            extra_headers={"Prefer": "return=minimal"},
        )
        return len(rows)

    def select_all(self, table: str) -> list[dict[str, Any]]:
        """Return every row of ``table``."""
        data = self._request("GET", table, query="select=*")
        return data if isinstance(data, list) else []

    def close(self) -> None:
        self._http.clear()

    # =================================================================
    # HTTP transport
    # =================================================================

    def _request(self, method: str, table: str, query: str | None = None,
                 body: str | None = None,
                 extra_headers: dict[str, str] | None = None):
        """
        Send one request and return the decoded JSON body (or None).

        Raises:
            TableStoreError: Transport failure or a non-2xx response.
        """
        url = f"{self.base_url}/rest/v1/{table}"
        if query:
            url = f"{url}?{query}"
        headers = dict(self.headers)
        if extra_headers:
            headers.update(extra_headers)

        try:
            response = self._http.request(method, url, headers=headers, body=body)
        except urllib3.exceptions.HTTPError as exc:
            logger.error("Table store %s %s failed: %s", method, table, exc)
            raise TableStoreError(f"{method} {table} failed: {exc}") from exc

        if 200 <= response.status < 300:
            if not response.data:
                return None
            try:
                return json.loads(response.data)
            except json.JSONDecodeError:
                return None

        code = message = details = None
        try:
            payload = json.loads(response.data or b"{}")
        except json.JSONDecodeError:
            payload = {}
        if isinstance(payload, dict):
            code = payload.get("code")
            message = payload.get("message")
            details = payload.get("details")
        message = message or f"HTTP {response.status}"

        logger.error(
            "Table store %s %s returned status %d: %s",
            method,
            table,
            response.status,
            message,
        )
        raise TableStoreError(
            message,
            code=str(code) if code is not None else None,
            status=response.status,
            details=details if isinstance(details, str) else None,
        )

"""HTTP transport for the InfluxDB 1.x line-protocol API.

The batching engine only needs ``Transport.write``. ``ping`` and ``query``
back the client's administrative helpers.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

from tsbatch.base import (
    ConsistencyLevel,
    TransportConnectionError,
    TransportError,
)
from tsbatch.log import LogLevel

logger = logging.getLogger(__name__)

VERSION_HEADER = "X-Influxdb-Version"


@dataclass(frozen=True)
class Credentials:
    """Username and password sent with every request."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class Pong:
    """Result of a ping."""

    version: str
    response_time_ms: float


@runtime_checkable
class Transport(Protocol):
    """What the client needs from the wire."""

    def write(
        self,
        database: str,
        retention_policy: str,
        precision: str,
        consistency: ConsistencyLevel,
        body: str,
    ) -> None: ...

    def ping(self) -> Pong: ...

    def query(
        self,
        command: str,
        database: str | None = None,
        epoch: str | None = None,
        method: str = "GET",
    ) -> dict[str, Any]: ...


@dataclass
class _Response:
    status: int
    headers: dict[str, str]
    body: bytes


class HttpTransport:
    """Transport speaking HTTP via ``urllib.request``.

    Example:
        >>> transport = HttpTransport("http://localhost:8086", Credentials("root", "root"))
        >>> transport.ping().version
        '1.8.10'
    """

    def __init__(
        self,
        url: str,
        credentials: Credentials,
        *,
        timeout: float = 30.0,
        log_level: LogLevel = LogLevel.NONE,
    ) -> None:
        """Initialize transport.

        Args:
            url: Base URL of the server.
            credentials: Credentials for every request.
            timeout: Socket timeout in seconds.
            log_level: How much of each exchange to log.
        """
        self._url = url.rstrip("/")
        self._credentials = credentials
        self._timeout = timeout
        self.log_level = log_level

    @property
    def url(self) -> str:
        """Get base URL."""
        return self._url

    def write(
        self,
        database: str,
        retention_policy: str,
        precision: str,
        consistency: ConsistencyLevel,
        body: str,
    ) -> None:
        """Send a line-protocol body."""
        params = {
            "db": database,
            "rp": retention_policy,
            "precision": precision,
            "consistency": ConsistencyLevel.coerce(consistency).value,
        }
        self._request(
            "POST",
            "/write",
            params,
            body=body.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )

    def ping(self) -> Pong:
        """Check the server and read its version."""
        start = time.monotonic()
        response = self._request("GET", "/ping", {}, authenticate=False)
        elapsed_ms = (time.monotonic() - start) * 1000

        version = "unknown"
        for name, value in response.headers.items():
            if name.lower() == VERSION_HEADER.lower():
                version = value
        return Pong(version=version, response_time_ms=elapsed_ms)

    def query(
        self,
        command: str,
        database: str | None = None,
        epoch: str | None = None,
        method: str = "GET",
    ) -> dict[str, Any]:
        """Run an InfluxQL command and return the decoded JSON response."""
        params = {"q": command}
        if database:
            params["db"] = database
        if epoch:
            params["epoch"] = epoch

        response = self._request(method, "/query", params)
        if not response.body:
            return {}
        try:
            return json.loads(response.body.decode("utf-8"))
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON in query response: {e}") from e

    def _request(
        self,
        method: str,
        path: str,
        params: Mapping[str, str],
        *,
        body: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        authenticate: bool = True,
    ) -> _Response:
        query = dict(params)
        if authenticate:
            query = {
                "u": self._credentials.username,
                "p": self._credentials.password,
                **query,
            }
        url = f"{self._url}{path}"
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"

        request = urllib.request.Request(
            url, data=body, headers=dict(headers or {}), method=method
        )
        self._log_request(request, path, params, body)

        start = time.monotonic()
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as raw:
                response = _Response(
                    status=raw.status,
                    headers=dict(raw.headers.items()),
                    body=raw.read(),
                )
        except urllib.error.HTTPError as e:
            error_body = e.read() if e.fp is not None else b""
            self._log_response(method, path, e.code, dict(e.headers or {}), error_body, start)
            raise TransportError(_error_message(error_body, e.reason), e.code) from e
        except (urllib.error.URLError, OSError) as e:
            reason = getattr(e, "reason", e)
            raise TransportConnectionError(self._url, str(reason)) from e

        self._log_response(
            method, path, response.status, response.headers, response.body, start
        )
        return response

    def _log_request(
        self,
        request: urllib.request.Request,
        path: str,
        params: Mapping[str, str],
        body: bytes | None,
    ) -> None:
        # credentials never reach the log
        if not self.log_level.includes(LogLevel.BASIC):
            return
        shown = f"{self._url}{path}"
        if params:
            shown = f"{shown}?{urllib.parse.urlencode(params)}"
        logger.info("---> %s %s", request.get_method(), shown)
        if self.log_level.includes(LogLevel.HEADERS):
            for name, value in request.header_items():
                logger.info("%s: %s", name, value)
        if self.log_level.includes(LogLevel.FULL) and body:
            logger.info("%s", body.decode("utf-8", errors="replace"))

    def _log_response(
        self,
        method: str,
        path: str,
        status: int,
        headers: Mapping[str, str],
        body: bytes,
        start: float,
    ) -> None:
        if not self.log_level.includes(LogLevel.BASIC):
            return
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info("<--- %s %s %d (%.1fms)", method, path, status, elapsed_ms)
        if self.log_level.includes(LogLevel.HEADERS):
            for name, value in headers.items():
                logger.info("%s: %s", name, value)
        if self.log_level.includes(LogLevel.FULL) and body:
            logger.info("%s", body.decode("utf-8", errors="replace"))

    def __repr__(self) -> str:
        return f"HttpTransport({self._url!r}, {self._credentials!r})"


def _error_message(body: bytes, fallback: Any) -> str:
    """Extract the server's error message from a failed response."""
    text = body.decode("utf-8", errors="replace").strip()
    if text:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict) and payload.get("error"):
            return str(payload["error"])
        return text
    return str(fallback)

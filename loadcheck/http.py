"""
HTTP request primitive.

Adapts :mod:`requests` to the shape the harness needs: every call
returns an :class:`HttpResponse` carrying status, body, headers and
duration, and every call records the built-in HTTP metrics into the
run's collector.

Transport failures (connection refused, DNS errors, timeouts) are *not*
raised.  They come back as an ``HttpResponse`` with ``status == 0`` and
``error`` set, so the iteration function decides what a failed request
means for its checks.

Each VU owns one :class:`HttpClient` wrapping one ``requests.Session``,
so connections are pooled per virtual user the way a browser or mobile
client would reuse its own keep-alive sockets.

Key Concepts Demonstrated:
- Error values instead of exceptions for expected network failures
- Per-VU connection reuse through ``requests.Session``
- Request timing with a monotonic high-resolution clock
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.structures import CaseInsensitiveDict

from loadcheck import runtime
from loadcheck.metrics import HTTP_REQ_DURATION, HTTP_REQ_FAILED, HTTP_REQS, SampleCollector

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class HttpResponse:
    """
    Outcome of one request.

    Attributes:
        status: HTTP status code, or ``0`` when no response arrived.
        body: Raw response body.
        headers: Response headers; lookups ignore case.
        duration: Time from sending the request to reading the full body,
            in milliseconds.
        url: The requested URL.
        error: Description of the transport failure, or ``None``.
    """

    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    duration: float = 0.0
    url: str = ""
    error: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, CaseInsensitiveDict):
            object.__setattr__(self, "headers", CaseInsensitiveDict(self.headers))

    @property
    def failed(self) -> bool:
        """``True`` when the request never produced an HTTP response."""
        return self.error is not None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """
        Parse the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body)


def is_failed_status(status: int) -> bool:
    """Statuses counted in ``http_req_failed``: no response, 4xx and 5xx."""
    return status == 0 or status >= 400


class HttpClient:
    """
    Issue requests and record their metrics.

    Args:
        collector: Collector receiving ``http_reqs``,
            ``http_req_duration`` and ``http_req_failed`` samples.
        session: Session to send requests through; a new one is created
            when omitted.
        timeout: Default per-request timeout in seconds.
        tags: Tags added to every sample this client records.
    """

    def __init__(
        self,
        collector: SampleCollector,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        tags: Mapping[str, str] | None = None,
    ):
        self._collector = collector
        self._session = session or requests.Session()
        self._timeout = timeout
        self._tags = dict(tags or {})

    def request(
        self,
        method: str,
        url: str,
        body: bytes | str | None = None,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        name: str | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """
        Send one request and return its outcome.

        Args:
            method: HTTP verb.
            url: Absolute URL.
            body: Raw request body.
            headers: Request headers.
            json: JSON-serialisable body; sets ``Content-Type``.
            name: Tag value used to group URLs with varying parts
                (e.g. ``/api/users/[id]``).  Defaults to *url*.
            timeout: Override of the client's default timeout.

        Returns:
            The response, or an error response with ``status == 0``.
        """
        method = method.upper()
        started = time.perf_counter()
        try:
            raw = self._session.request(
                method=method,
                url=url,
                data=body,
                json=json,
                headers=dict(headers or {}),
                timeout=timeout if timeout is not None else self._timeout,
            )
            response = HttpResponse(
                status=raw.status_code,
                body=raw.content,
                headers=CaseInsensitiveDict(raw.headers),
                duration=(time.perf_counter() - started) * 1000.0,
                url=url,
            )
        except requests.Timeout as exc:
            response = self._error_response(url, started, f"request timed out: {exc}")
        except requests.RequestException as exc:
            response = self._error_response(url, started, f"request failed: {exc}")

        self._record(method, name or url, response)
        return response

    def _error_response(self, url: str, started: float, message: str) -> HttpResponse:
        logger.debug("%s", message)
        return HttpResponse(
            status=0,
            duration=(time.perf_counter() - started) * 1000.0,
            url=url,
            error=message,
        )

    def _record(self, method: str, name: str, response: HttpResponse) -> None:
        tags = {**self._tags, "method": method, "name": name, "status": str(response.status)}
        self._collector.add(HTTP_REQS, 1, tags)
        self._collector.add(HTTP_REQ_DURATION, response.duration, tags)
        self._collector.add(HTTP_REQ_FAILED, 1 if is_failed_status(response.status) else 0, tags)

    def get(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("PUT", url, **kwargs)

    def patch(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("DELETE", url, **kwargs)

    def close(self) -> None:
        self._session.close()


# Module-level helpers resolve the client of the run bound to this thread.


def request(method: str, url: str, **kwargs: Any) -> HttpResponse:
    return runtime.current().http.request(method, url, **kwargs)


def get(url: str, **kwargs: Any) -> HttpResponse:
    return request("GET", url, **kwargs)


def post(url: str, **kwargs: Any) -> HttpResponse:
    return request("POST", url, **kwargs)


def put(url: str, **kwargs: Any) -> HttpResponse:
    return request("PUT", url, **kwargs)


def patch(url: str, **kwargs: Any) -> HttpResponse:
    return request("PATCH", url, **kwargs)


def delete(url: str, **kwargs: Any) -> HttpResponse:
    return request("DELETE", url, **kwargs)

"""Asynchronous HTTP client for the Zenodo REST API.

This module wraps an ``httpx.AsyncClient`` bound to one Zenodo base URL.  It
centralises authentication, content negotiation, JSON marshaling, client-side
rate limiting and the conversion of error responses into
:class:`~zenodo_cli.core.errors.APIError`.  The client never retries; each
call is exactly one attempt.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

import httpx

from zenodo_cli import __version__
from zenodo_cli.core.errors import DecodeError, TransportError, parse_api_error
from zenodo_cli.core.rate_limiter import RateLimiter

T = TypeVar("T")

JSON_MEDIA_TYPE = "application/json"
DEFAULT_TIMEOUT = 30.0


class ZenodoClient:
    """Rate-limited async HTTP client for one Zenodo instance."""

    DEFAULT_USER_AGENT = f"zenodo-cli/{__version__}"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Parameters
        ----------
        base_url : str
            API root, e.g. ``https://zenodo.org/api``. Request paths are
            appended to it verbatim.
        token : str
            Personal access token. No ``Authorization`` header is sent when
            empty.
        timeout : float
            Per-request timeout in seconds.
        rate_limiter : RateLimiter, optional
            Limiter shared by every request of this client. A fresh one with
            Zenodo's quotas is created when omitted.
        transport : httpx.AsyncBaseTransport, optional
            Custom transport, mainly for tests.
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logging.getLogger(self.__class__.__name__)
        self._request_count = 0
        self._total_request_time = 0.0

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "ZenodoClient":
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers={"User-Agent": self.DEFAULT_USER_AGENT},
            follow_redirects=True,
            transport=self._transport,
        )
        self.logger.debug(
            "HTTP client initialized (base_url=%s, timeout=%.1fs)",
            self._base_url,
            self._timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            if self._request_count > 0:
                avg_time = self._total_request_time / self._request_count
                self.logger.debug(
                    "HTTP client closed (requests=%d, avg_time=%.2fms)",
                    self._request_count,
                    avg_time * 1000,
                )

    def _headers(self, accept: str, has_body: bool) -> Dict[str, str]:
        headers = {"Accept": accept}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if has_body:
            headers["Content-Type"] = JSON_MEDIA_TYPE
        return headers

    @staticmethod
    def _clean_params(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        if not params:
            return None
        return {k: v for k, v in params.items() if v is not None and v != ""}

    async def _send(
        self,
        method: str,
        path: str,
        *,
        accept: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> httpx.Response:
        """Send one request and return the response with its body read.

        Raises
        ------
        RuntimeError
            If the client is not used as an async context manager.
        TransportError
            If the request cannot be built, sent, or its body read.
        APIError
            If the response status is 400 or above.
        """
        if self._client is None:
            raise RuntimeError("ZenodoClient must be used as an async context manager")

        content: Optional[bytes] = None
        if body is not None:
            try:
                content = json.dumps(body).encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise TransportError(f"marshaling request body: {exc}") from exc

        url = self._base_url + path
        headers = self._headers(accept, content is not None)
        query = self._clean_params(params)

        await self.rate_limiter.wait(path)

        self.logger.debug("%s %s params=%s", method, url, query)
        start_time = time.monotonic()
        try:
            response = await self._client.request(
                method,
                url,
                params=query,
                content=content,
                headers=headers,
            )
        except httpx.RequestError as exc:
            raise TransportError(f"request failed: {exc}") from exc

        self.rate_limiter.update_from_headers(response.headers, path)

        elapsed = time.monotonic() - start_time
        self._request_count += 1
        self._total_request_time += elapsed
        self.logger.debug(
            "%s %s -> %d (%.2fms)",
            method,
            url,
            response.status_code,
            elapsed * 1000,
        )

        if response.status_code >= 400:
            raise parse_api_error(response.status_code, response.content)

        return response

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """Make a JSON request.

        Parameters
        ----------
        method : str
            HTTP method (GET, POST, PUT, DELETE).
        path : str
            Path appended to the base URL.
        params : dict, optional
            Query parameters. Empty values are dropped.
        body : Any, optional
            JSON-serialisable request body.
        decode : callable, optional
            Converts the decoded JSON payload into the caller's type, e.g.
            ``Record.from_dict``.

        Returns
        -------
        Any
            ``None`` for 204 or an empty body, otherwise the decoded payload
            (passed through ``decode`` when given).

        Raises
        ------
        DecodeError
            If the body is not valid JSON or ``decode`` rejects it.
        """
        response = await self._send(method, path, accept=JSON_MEDIA_TYPE, params=params, body=body)

        if response.status_code == 204 or not response.content:
            return None

        try:
            payload = json.loads(response.content)
        except ValueError as exc:
            raise DecodeError(f"decoding response: {exc}") from exc

        if decode is None:
            return payload
        try:
            return decode(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"decoding response: {exc!r}") from exc

    async def get(
        self,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """Make a GET request."""
        return await self.request("GET", path, params=params, decode=decode)

    async def post(
        self,
        path: str,
        body: Any = None,
        *,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """Make a POST request with an optional JSON body."""
        return await self.request("POST", path, body=body, decode=decode)

    async def put(
        self,
        path: str,
        body: Any = None,
        *,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """Make a PUT request with a JSON body."""
        return await self.request("PUT", path, body=body, decode=decode)

    async def delete(
        self,
        path: str,
        *,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """Make a DELETE request."""
        return await self.request("DELETE", path, decode=decode)

    async def get_raw(
        self,
        path: str,
        accept: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
    ) -> bytes:
        """GET ``path`` with a custom ``Accept`` header and return the raw body.

        Used for non-JSON representations such as BibTeX or DataCite XML.
        """
        response = await self._send("GET", path, accept=accept, params=params)
        return response.content

    @property
    def stats(self) -> Dict[str, Any]:
        """Get request statistics."""
        return {
            "request_count": self._request_count,
            "total_time_ms": self._total_request_time * 1000,
            "avg_time_ms": (
                (self._total_request_time / self._request_count * 1000)
                if self._request_count > 0
                else 0
            ),
            "rate_limiter": self.rate_limiter.get_stats(),
        }

"""HTTP client for the tracker API.

Every request carries the authentication headers supplied by the
authentication provider and ``Accept: application/json``, and bypasses any
response cache: conditional GETs are driven by the sync engine's stored
etags, never by the transport.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

import httpx

from vip_dashboard.config import Config
from vip_dashboard.utils.formatters import parse_http_date, utcnow

from .endpoints import Endpoint
from .errors import (
    APIError,
    DecodingError,
    ForbiddenError,
    NetworkError,
    RateLimitedError,
    ServerError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


class AuthenticationProvider(Protocol):
    def authentication_headers(self) -> dict[str, str]: ...

    def handle_unauthorized(self) -> None: ...


@dataclass
class Response:
    """A 2xx or 304 answer. ``value`` is None for 304 and empty bodies."""

    value: Any
    etag: Optional[str]
    last_modified: Optional[datetime]
    status_code: int
    headers: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if value is None:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    when = parse_http_date(value)
    if when is None:
        return None
    return max((when - utcnow()).total_seconds(), 0.0)


class APIClient:
    """Sends ``Endpoint`` requests and classifies the outcome."""

    def __init__(self, base_url: Optional[str] = None,
                 auth_provider: Optional[AuthenticationProvider] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or Config.API_BASE_URL).rstrip("/")
        self.auth_provider = auth_provider
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else Config.API_TIMEOUT,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Cache-Control": "no-cache",
            },
        )

    def set_authentication_provider(self, provider: Optional[AuthenticationProvider]):
        self.auth_provider = provider

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def send(self, endpoint: Endpoint) -> Response:
        """Perform the request.

        Returns a ``Response`` for 2xx and 304. Raises ``UnauthorizedError``
        (after notifying the authentication provider), ``ForbiddenError``,
        ``RateLimitedError``, ``ServerError``, ``DecodingError`` or
        ``NetworkError`` otherwise.
        """
        request = self._build_request(endpoint)
        logger.debug(f"-> {request.method} {request.url}")

        try:
            http_response = self._http.send(request)
        except httpx.HTTPError as e:
            logger.error(f"Network error for {request.method} {request.url}: {e}")
            raise NetworkError(e) from e

        status = http_response.status_code
        logger.debug(
            f"<- {status} {request.method} {request.url} "
            f"bytes={len(http_response.content)}"
        )

        if 200 <= status < 300:
            return Response(
                value=self._decode(endpoint, http_response),
                etag=http_response.headers.get("ETag"),
                last_modified=self._last_modified(http_response),
                status_code=status,
                headers=dict(http_response.headers),
            )
        if status == 304:
            return Response(
                value=None,
                etag=http_response.headers.get("ETag"),
                last_modified=self._last_modified(http_response),
                status_code=status,
                headers=dict(http_response.headers),
            )
        if status == 401:
            logger.warning(f"401 Unauthorized for {request.url}")
            if self.auth_provider is not None:
                self.auth_provider.handle_unauthorized()
            raise UnauthorizedError()
        if status == 403:
            raise ForbiddenError()
        if status == 429:
            retry_after = parse_retry_after(
                http_response.headers.get("Retry-After")
            )
            raise RateLimitedError(retry_after)

        logger.error(
            f"HTTP {status} {request.method} {request.url} "
            f"body={http_response.text[:2048]}"
        )
        raise ServerError(status)

    def _build_request(self, endpoint: Endpoint) -> httpx.Request:
        headers = {}
        if self.auth_provider is not None:
            headers.update(self.auth_provider.authentication_headers())
        headers.update(endpoint.headers)

        content = endpoint.body_bytes
        if content is not None:
            headers["Content-Type"] = "application/json"

        return self._http.build_request(
            endpoint.method,
            endpoint.path,
            params=endpoint.query or None,
            headers=headers,
            content=content,
        )

    @staticmethod
    def _decode(endpoint: Endpoint, http_response: httpx.Response):
        if not http_response.content.strip():
            return None
        try:
            payload = http_response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Body is not JSON: {http_response.text[:2048]}")
            raise DecodingError(e) from e
        try:
            return endpoint.decode(payload)
        except APIError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(
                f"Decoding {endpoint.path} failed: {e!r}\n"
                f"Body: {http_response.text[:2048]}"
            )
            raise DecodingError(e) from e

    @staticmethod
    def _last_modified(http_response: httpx.Response) -> Optional[datetime]:
        value = http_response.headers.get("Last-Modified")
        return parse_http_date(value) if value else None

"""
Low-level HTTP request library for the shop API.
This module handles all HTTP requests with automatic retry logic and maps
every non-success outcome onto a typed ApiError carrying the HTTP status.
"""
from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import Any

import aiohttp

from .const import API_BASE_URL, REQUEST_ATTEMPTS, REQUEST_TIMEOUT
from .errors import ApiError
from .models import ANONYMOUS, Session

_LOGGER = logging.getLogger(__name__)

# Status reported when no HTTP response was received at all
NO_RESPONSE_STATUS = 0


@dataclasses.dataclass(frozen=True)
class ApiResponse:
    """Unwrapped `{data, message}` envelope."""

    data: Any = None
    message: str | None = None


async def make_request(
    method: str,
    url: str,
    headers: dict,
    payload: dict | None = None,
    params: dict | None = None,
    timeout: int = REQUEST_TIMEOUT,
    max_attempts: int = REQUEST_ATTEMPTS,
) -> ApiResponse:
    """
    Make an HTTP request with automatic retry on timeout.

    Args:
        method: HTTP method (GET, POST, PUT, DELETE)
        url: Target URL for the request
        headers: HTTP headers dictionary
        payload: JSON payload for POST/PUT requests (optional)
        params: URL query parameters (optional)
        timeout: Base timeout in seconds (multiplied by attempt number for each retry)
        max_attempts: Maximum number of attempts

    Returns:
        The unwrapped ApiResponse

    Raises:
        ApiError: For non-success responses, unparseable bodies, exhausted
            timeouts and connection errors (the latter two with status 0)
    """
    method = method.upper()
    if method not in ("GET", "POST", "PUT", "DELETE"):
        raise ValueError(f"Unsupported HTTP method: {method}")

    for attempt in range(max_attempts):
        # Timeout grows with each attempt
        timeout_config = aiohttp.ClientTimeout(total=timeout * (attempt + 1))
        try:
            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.request(
                    method, url, headers=headers, json=payload, params=params
                ) as response:
                    return await _process_response(response, url)

        except (asyncio.TimeoutError, TimeoutError) as e:
            if attempt < max_attempts - 1:
                _LOGGER.debug("Timeout on %s %s (attempt %s), retrying", method, url, attempt + 1)
                continue
            _LOGGER.warning(
                "Timeout on %s request to %s after %s attempts",
                method, url, max_attempts
            )
            raise ApiError("Request timed out", NO_RESPONSE_STATUS) from e

        except aiohttp.ClientError as e:
            # Connection-level errors are not retried
            _LOGGER.warning("Connection error on %s request to %s: %s", method, url, e)
            raise ApiError("Unable to reach the server", NO_RESPONSE_STATUS, str(e)) from e

    raise ApiError("Request failed", NO_RESPONSE_STATUS)


async def _process_response(response, url: str) -> ApiResponse:
    """
    Parse the response body and unwrap the envelope.

    A body may be empty. A body that is present must be JSON. A response is a
    failure when the status is not 2xx or the envelope says `success: false`.
    """
    try:
        text = await response.text()
    except UnicodeDecodeError as e:
        _LOGGER.error("Undecodable response from %s (status %s)", url, response.status)
        raise ApiError("Unexpected response from server", response.status) from e
    payload: Any = None
    if text:
        try:
            payload = json.loads(text)
        except ValueError as e:
            _LOGGER.error(
                "Unparseable response from %s (status %s): %s",
                url, response.status, text[:200]
            )
            raise ApiError("Unexpected response from server", response.status) from e

    envelope = payload if isinstance(payload, dict) else {}
    ok = 200 <= response.status < 300
    if not ok or envelope.get("success") is False:
        message = (
            envelope.get("error")
            or envelope.get("message")
            or response.reason
            or "Request failed"
        )
        raise ApiError(message, response.status, envelope.get("error"))

    return ApiResponse(data=envelope.get("data"), message=envelope.get("message"))


def get_standard_headers(session: Session) -> dict:
    """
    Build the HTTP headers used by all shop API requests.

    :param session: Session whose token (if any) is sent as a bearer token.
    :return: Dictionary of HTTP headers.
    """
    headers = {"accept": "application/json"}
    if session.token:
        headers["Authorization"] = f"Bearer {session.token}"
    return headers


class ApiClient:
    """Binds the base URL, timeouts and session credentials to make_request()."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        session: Session = ANONYMOUS,
        timeout: int = REQUEST_TIMEOUT,
        max_attempts: int = REQUEST_ATTEMPTS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = timeout
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, config: dict, session: Session = ANONYMOUS) -> "ApiClient":
        return cls(
            config["api_base_url"],
            session,
            timeout=config["request_timeout"],
            max_attempts=config["request_attempts"],
        )

    def with_session(self, session: Session) -> "ApiClient":
        """Return a client with the same settings bound to another session."""
        if session == self.session:
            return self
        return ApiClient(self.base_url, session, self.timeout, self.max_attempts)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: dict | None = None,
        params: dict | None = None,
    ) -> ApiResponse:
        """Send one request relative to base_url; raises ApiError on failure."""
        return await make_request(
            method,
            self.url_for(path),
            get_standard_headers(self.session),
            payload=body,
            params=params,
            timeout=self.timeout,
            max_attempts=self.max_attempts,
        )

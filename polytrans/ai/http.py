"""
HTTP transport for AI vendor calls.

Every outbound call goes through HttpClient, which makes at most two attempts:
the second only after a timeout, a connection-level failure or a 5xx response.
Client errors (4xx) are never retried.
"""

from typing import Any, Dict, Optional

import httpx

from polytrans.logger import get_logger
from polytrans.ai.exceptions import ErrorKind, TranslationError

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', DEFAULT_TIMEOUT),
            pool=timeout_config.get('pool', 10.0),
        )
    timeout_value = float(timeout_config) if timeout_config else DEFAULT_TIMEOUT
    return httpx.Timeout(
        connect=min(10.0, timeout_value),
        write=60.0,
        read=timeout_value,
        pool=10.0,
    )


def describe_http_error(response: httpx.Response, provider: str) -> str:
    """Build a readable message from a vendor's non-2xx response."""
    status_code = response.status_code
    error_text = "Unknown error"

    try:
        error_json = response.json()
        if isinstance(error_json, dict) and "error" in error_json:
            error_detail = error_json["error"]
            if isinstance(error_detail, dict):
                error_text = error_detail.get("message", str(error_detail))
            else:
                error_text = str(error_detail)
        else:
            error_text = response.text[:500]
    except ValueError:
        error_text = response.text[:500] if response.text else "No details"

    return f"{provider} API error ({status_code}): {error_text}"


class HttpClient:
    """Thin httpx wrapper with a single retry on transient failures."""

    MAX_ATTEMPTS = 2

    def __init__(self, timeout: Any = DEFAULT_TIMEOUT, transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    def request(
        self,
        method: str,
        url: str,
        provider: str,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Send a request and return the successful response.

        Raises:
            TranslationError: with code "transport_error" once the attempts are used up
                or immediately for a 4xx response.
        """
        last_error = None
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                with httpx.Client(timeout=get_httpx_timeout(self.timeout), transport=self._transport) as client:
                    response = client.request(method, url, headers=headers, json=json, params=params)
            except httpx.TimeoutException as e:
                last_error = f"request timed out ({e.__class__.__name__})"
                logger.warning(f"{provider} request timed out (attempt {attempt}/{self.MAX_ATTEMPTS})")
                continue
            except httpx.TransportError as e:
                last_error = f"network error: {e}"
                logger.warning(f"{provider} network error (attempt {attempt}/{self.MAX_ATTEMPTS}): {e}")
                continue

            if response.status_code >= 500:
                last_error = describe_http_error(response, provider)
                logger.warning(f"{last_error} (attempt {attempt}/{self.MAX_ATTEMPTS})")
                continue

            if response.status_code >= 400:
                message = describe_http_error(response, provider)
                logger.error(message)
                raise TranslationError(
                    message,
                    code="transport_error",
                    details={"provider": provider, "status_code": response.status_code},
                    kind=ErrorKind.TRANSPORT,
                )

            return response

        raise TranslationError(
            f"{provider} request failed after {self.MAX_ATTEMPTS} attempts: {last_error}",
            code="transport_error",
            details={"provider": provider, "attempts": self.MAX_ATTEMPTS},
            kind=ErrorKind.TRANSPORT,
        )

    def post_json(self, url: str, provider: str, payload: Any,
                  headers: Optional[Dict[str, str]] = None,
                  params: Optional[Dict[str, Any]] = None) -> Any:
        return self._decode(self.request("POST", url, provider, headers=headers, json=payload, params=params), provider)

    def get_json(self, url: str, provider: str,
                 headers: Optional[Dict[str, str]] = None,
                 params: Optional[Dict[str, Any]] = None) -> Any:
        return self._decode(self.request("GET", url, provider, headers=headers, params=params), provider)

    @staticmethod
    def _decode(response: httpx.Response, provider: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TranslationError(
                f"{provider} returned a response that is not JSON",
                code="invalid_output_format",
                details={"provider": provider, "body": response.text[:200]},
                kind=ErrorKind.FORMAT,
            ) from e

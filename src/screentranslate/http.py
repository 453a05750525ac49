"""Outbound HTTP shared by all network providers.

requests is blocking, so each call runs on a worker thread with its own
Session. The call races a sleep of the configured timeout; the Session is
closed on every exit path, including cancellation.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import requests
from requests.structures import CaseInsensitiveDict

from . import log
from .asyncutils import race_with_timeout
from .errors import TranslationProviderError, VLMProviderError

logger = log.get_logger()


class TransportError(Exception):
    """The request never produced an HTTP response."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


@dataclass(frozen=True)
class HTTPResponse:
    status_code: int
    content: bytes = b""
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.content)


async def request(
    method: str,
    url: str,
    *,
    headers: dict | None = None,
    json_body: dict | None = None,
    params: dict | None = None,
    timeout: float = 30.0,
) -> HTTPResponse:
    """Send one HTTP request.

    Raises:
        TransportError: On timeout or connection failure.
    """
    session = requests.Session()
    try:
        response = await race_with_timeout(
            asyncio.to_thread(
                session.request,
                method,
                url,
                headers=headers,
                json=json_body,
                params=params,
                timeout=timeout,
            ),
            timeout,
        )
    except (TimeoutError, requests.Timeout) as e:
        raise TransportError(f"Request to {url} timed out after {timeout:g}s", timed_out=True) from e
    except requests.ConnectionError as e:
        raise TransportError(f"Cannot connect to {url}") from e
    except requests.RequestException as e:
        raise TransportError(str(e)) from e
    finally:
        session.close()

    logger.debug("http response", method=method, url=url, status=response.status_code, bytes=len(response.content))
    return HTTPResponse(response.status_code, response.content, CaseInsensitiveDict(response.headers))


def _lookup(data, path: tuple[str, ...]):
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def parse_retry_after(response: HTTPResponse, body_path: tuple[str, ...] = ("error", "retry_after")) -> float | None:
    """Seconds to wait before retrying.

    The Retry-After header wins (delta-seconds or HTTP-date); otherwise a
    provider-specific field of the JSON error body is used.
    """
    value = response.headers.get("Retry-After")
    if value:
        try:
            return float(value)
        except ValueError:
            try:
                when = parsedate_to_datetime(value)
            except (TypeError, ValueError):
                when = None
            if when is not None:
                if when.tzinfo is None:
                    when = when.replace(tzinfo=timezone.utc)
                return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())

    try:
        body = response.json()
    except ValueError:
        return None
    found = _lookup(body, body_path)
    if isinstance(found, bool):
        return None
    if isinstance(found, (int, float)):
        return float(found)
    if isinstance(found, str):
        try:
            return float(found)
        except ValueError:
            return None
    return None


def error_message(response: HTTPResponse) -> str:
    """Best human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    for path in (("error", "message"), ("message",), ("error",), ("detail",)):
        found = _lookup(body, path)
        if isinstance(found, str) and found:
            return found
    text = response.text.strip()
    return text[:200] if text else f"HTTP {response.status_code}"


def vlm_error_for_status(
    response: HTTPResponse,
    model_name: str,
    retry_after_path: tuple[str, ...] = ("error", "retry_after"),
    not_found_hint: str | None = None,
) -> VLMProviderError:
    """Map a non-2xx response from a vision provider to an error."""
    status = response.status_code
    if status == 401:
        return VLMProviderError.authentication_failed()
    if status == 429:
        return VLMProviderError.rate_limited(parse_retry_after(response, retry_after_path), error_message(response))
    if status == 404:
        return VLMProviderError.model_unavailable(model_name, not_found_hint)
    if status == 400:
        return VLMProviderError.invalid_configuration(error_message(response))
    if 500 <= status < 600:
        return VLMProviderError.network_error(f"Server error {status}: {error_message(response)}")
    return VLMProviderError.invalid_response(f"Unexpected status {status}: {error_message(response)}")


def translation_error_for_status(response: HTTPResponse) -> TranslationProviderError:
    """Map a non-2xx response from a translation provider to an error."""
    status = response.status_code
    if status in (401, 403):
        return TranslationProviderError.authentication_failed()
    if status == 429:
        return TranslationProviderError.rate_limited(parse_retry_after(response))
    if 500 <= status < 600:
        return TranslationProviderError.network_error(f"Server error {status}: {error_message(response)}")
    return TranslationProviderError.http_error(status)


def translation_error_for_transport(error: TransportError, timeout: float) -> TranslationProviderError:
    if error.timed_out:
        return TranslationProviderError.timeout(timeout)
    return TranslationProviderError.network_error(str(error))


def vlm_error_for_transport(error: TransportError, timeout: float | None = None) -> VLMProviderError:
    if error.timed_out and timeout:
        return VLMProviderError.timed_out(timeout)
    return VLMProviderError.network_error(str(error))

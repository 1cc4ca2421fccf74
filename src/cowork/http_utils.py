#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from typing import Any

import requests
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from cowork.exceptions import TransientHTTPError, UpstreamUnavailable

logger = logging.getLogger(__name__)

MAX_RETRY_AFTER_SECONDS = 60.0
_TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

_backoff = wait_random_exponential(multiplier=1, max=40)


def _parse_retry_after(response: requests.Response) -> float | None:
    header = response.headers.get("Retry-After")
    if header is not None:
        try:
            return float(header)
        except ValueError:
            return None
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("retry_after"), (int, float)):
        return float(body["retry_after"])
    return None


def wait_retry_after(retry_state: RetryCallState) -> float:
    """Honour the delay requested by a rate limited server, otherwise back off
    exponentially."""
    error = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(error, TransientHTTPError) and error.retry_after is not None:
        return min(error.retry_after, MAX_RETRY_AFTER_SECONDS)
    return _backoff(retry_state)


retry_transient = retry(
    wait=wait_retry_after,
    stop=stop_after_attempt(5),
    retry=retry_if_exception_type(TransientHTTPError),
    reraise=True,
)


def send_request(
    session: requests.Session,
    method: str,
    url: str,
    timeout: float,
    **kwargs: Any,
) -> requests.Response:
    """Send a request and sort failures into transient ones, which callers
    retry, and permanent ones.

    Raises
    ------
    TransientHTTPError
        On connection errors, timeouts, rate limiting and server errors.
    UpstreamUnavailable
        On any other unsuccessful response, except 404 which is returned to
        the caller.
    """
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        logger.warning(f"{method} {url} failed: {e!r}")
        raise TransientHTTPError(f"{method} {url} failed: {e!r}") from e
    if response.status_code in _TRANSIENT_STATUS_CODES:
        logger.warning(f"{method} {url} returned {response.status_code}")
        raise TransientHTTPError(
            f"{method} {url} returned {response.status_code}",
            retry_after=_parse_retry_after(response),
        )
    if response.status_code == 404:
        return response
    if not response.ok:
        raise UpstreamUnavailable(
            f"{method} {url} returned {response.status_code}: {response.text[:200]}"
        )
    return response

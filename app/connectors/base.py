"""
app/connectors/base.py

Shared HTTP mechanics for Google Analytics connectors.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import requests

from app.config import ExternalHTTPSettings
from reporting.base import CancelToken

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class ConnectorRequestError(RuntimeError):
    """
    Raised when a connector cannot fetch data after retries.

    Attributes:
        status_code: Last HTTP status seen, or ``None`` for transport failures.
        timed_out: ``True`` when the last attempt hit a read timeout or the
            caller's deadline passed. Connection failures, including connect
            timeouts, leave this ``False``.
        cancelled: ``True`` when the caller stopped the request.
        detail: Upstream error message when the response carried one.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        timed_out: bool = False,
        cancelled: bool = False,
        detail: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.timed_out = timed_out
        self.cancelled = cancelled
        self.detail = detail
        super().__init__(message)


class BaseConnector:
    """
    Base class holding one ``requests.Session`` with retry, backoff, and a
    process-wide request rate limit.

    Instances are shared by report worker threads; the rate limiter is
    guarded by a lock.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = http_settings.max_retries
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier
        self._min_request_interval_seconds = (
            1.0 / http_settings.rate_limit_per_second if http_settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_request_monotonic: float = 0.0
        self._rate_lock = threading.Lock()

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        """
        Execute an HTTP request and return parsed JSON with retry support.
        """

        response = self._request(
            method=method,
            url=url,
            params=params,
            headers=headers,
            json_body=json_body,
            cancel=cancel,
        )
        try:
            return response.json()
        except ValueError as exc:
            raise ConnectorRequestError(
                f"{self.source}: response was not valid JSON.",
                status_code=response.status_code,
            ) from exc

    def _request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> requests.Response:
        """
        Execute an HTTP request with rate limiting and exponential backoff.

        When *cancel* is given, every attempt's timeout is capped by its
        remaining time, and no attempt or backoff sleep starts once it is
        cancelled or past its deadline.
        """

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            self._raise_if_cancelled(cancel, url, last_error)
            self._apply_rate_limit()
            effective_timeout = self._timeout_seconds
            remaining = cancel.remaining() if cancel is not None else None
            if remaining is not None:
                effective_timeout = min(effective_timeout, remaining)
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=headers,
                    json=json_body,
                    timeout=effective_timeout,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable HTTP status code: {response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                last_error = exc
                status_code = exc.response.status_code if exc.response is not None else None
                is_retryable = status_code in RETRYABLE_STATUS_CODES
                if not is_retryable:
                    logger.error(
                        "Connector request failed source=%s status=%s url=%s error=%s",
                        self.source,
                        status_code,
                        url,
                        exc,
                    )
                    raise ConnectorRequestError(
                        f"{self.source}: non-retryable request failure.",
                        status_code=status_code,
                        detail=_error_detail(exc.response),
                    ) from exc
            except requests.ConnectionError as exc:
                # Includes ConnectTimeout: the host was never reached.
                last_error = exc
            except requests.Timeout as exc:
                last_error = exc

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Connector request retry source=%s attempt=%s/%s wait_seconds=%.2f url=%s",
                self.source,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                url,
            )
            if cancel is None:
                time.sleep(backoff_seconds)
            elif cancel.wait(backoff_seconds):
                self._raise_if_cancelled(cancel, url, last_error)

        logger.error(
            "Connector request exhausted retries source=%s url=%s error=%s",
            self.source,
            url,
            last_error,
        )
        raise ConnectorRequestError(
            f"{self.source}: request failed after retries.",
            status_code=_status_code(last_error),
            timed_out=_is_read_timeout(last_error),
            detail=_http_error_detail(last_error),
        ) from last_error

    def _raise_if_cancelled(self, cancel: CancelToken | None, url: str, last_error: Exception | None) -> None:
        if cancel is None or not cancel.cancelled:
            return
        if cancel.stopped:
            logger.info("Connector request cancelled source=%s url=%s", self.source, url)
            raise ConnectorRequestError(f"{self.source}: request cancelled.", cancelled=True) from last_error
        logger.warning("Connector request deadline passed source=%s url=%s", self.source, url)
        raise ConnectorRequestError(
            f"{self.source}: request deadline passed.",
            status_code=_status_code(last_error),
            timed_out=True,
            detail=_http_error_detail(last_error),
        ) from last_error

    def _apply_rate_limit(self) -> None:
        """
        Enforce minimum interval between outbound requests.
        """

        if self._min_request_interval_seconds <= 0:
            return

        with self._rate_lock:
            now = time.monotonic()
            elapsed = now - self._last_request_monotonic
            remaining = self._min_request_interval_seconds - elapsed
            if remaining > 0:
                time.sleep(remaining)
            self._last_request_monotonic = time.monotonic()

    @staticmethod
    def bearer_headers(credential: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}


def _is_read_timeout(error: Exception | None) -> bool:
    return isinstance(error, requests.Timeout) and not isinstance(error, requests.ConnectionError)


def _status_code(error: Exception | None) -> int | None:
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code
    return None


def _http_error_detail(error: Exception | None) -> str | None:
    if isinstance(error, requests.HTTPError):
        return _error_detail(error.response)
    return None


def _error_detail(response: requests.Response | None) -> str | None:
    """
    Pull ``error.message`` out of a Google API error body, if present.
    """

    if response is None:
        return None
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        message = payload["error"].get("message")
        return str(message) if message else None
    return None

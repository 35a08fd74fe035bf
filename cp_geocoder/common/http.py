"""HTTP client with retries, timeouts, and request spacing."""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable

import requests
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt

from cp_geocoder.common.constants import DEFAULT_USER_AGENT
from cp_geocoder.common.errors import StageError
from cp_geocoder.common.logging import log_event

THROTTLE_STATUS_CODES = {403, 429}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 5.0
    read: float = 10.0


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 5
    throttle_base: float = 1.0
    throttle_max_wait: float = 30.0
    throttle_jitter: float = 0.5
    error_base: float = 0.5
    error_max_wait: float = 20.0
    error_jitter: float = 0.3


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"


class RetryableHttpError(HttpRequestError):
    error_code = "HTTP_RETRYABLE"

    def __init__(self, message: str, *, status: int | None = None, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after

    @property
    def throttled(self) -> bool:
        return self.status in THROTTLE_STATUS_CODES


class MinIntervalLimiter:
    """Keeps the start of consecutive calls at least ``min_interval`` seconds apart."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.clock = clock
        self.sleep = sleep
        self.last_call_at: float | None = None
        self.lock = threading.Lock()

    def acquire(self) -> float:
        """Block until a call may start; returns the seconds spent waiting."""
        with self.lock:
            waited = 0.0
            if self.last_call_at is not None:
                wait_for = self.last_call_at + self.min_interval - self.clock()
                if wait_for > 0:
                    self.sleep(wait_for)
                    waited = wait_for
            self.last_call_at = self.clock()
            return waited


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a delta-seconds ``Retry-After`` header; anything else is ignored."""
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return float(seconds) if seconds > 0 else None


def compute_backoff(
    error: BaseException | None,
    attempt: int,
    retry_cfg: RetryConfig,
    rng: random.Random,
) -> float:
    """Sleep before the next attempt; ``attempt`` is the 1-based attempt that failed."""
    if isinstance(error, RetryableHttpError) and error.throttled:
        if error.retry_after is not None:
            return error.retry_after
        base = min(retry_cfg.throttle_max_wait, (2**attempt) * retry_cfg.throttle_base)
        return base + rng.uniform(0, retry_cfg.throttle_jitter)
    base = min(retry_cfg.error_max_wait, (2**attempt) * retry_cfg.error_base)
    return base + rng.uniform(0, retry_cfg.error_jitter)


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        min_interval: float = 1.0,
        user_agent: str = DEFAULT_USER_AGENT,
        accept_language: str | None = None,
        limiter: MinIntervalLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.user_agent = user_agent
        self.accept_language = accept_language
        self.sleep = sleep
        self.limiter = limiter or MinIntervalLimiter(min_interval, sleep=sleep)
        self.rng = rng or random.Random()
        self.logger = logger or logging.getLogger(__name__)
        self.session = requests.Session()
        self.requests_sent = 0

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if self.accept_language:
            out["Accept-Language"] = self.accept_language
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        retry_after = None
        if status in THROTTLE_STATUS_CODES:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
        raise RetryableHttpError(f"HTTP status: {status}", status=status, retry_after=retry_after)

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return compute_backoff(error, retry_state.attempt_number, self.retry, self.rng)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        next_sleep = retry_state.next_action.sleep if retry_state.next_action else None
        log_event(
            self.logger,
            f"{error}; retrying in {next_sleep:.3f}s" if next_sleep is not None else f"{error}; retrying",
            level=logging.WARNING,
            event="HTTP_RETRY",
            status="retry",
            attempt=retry_state.attempt_number,
            error_code=getattr(error, "error_code", None),
        )

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        req_timeout = timeout or self.timeout
        self.limiter.acquire()
        self.requests_sent += 1

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise RetryableHttpError(f"Transport failure: {exc}") from exc
        self._raise_for_status_or_retry(response)

        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}") from exc

    def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        @retry(
            stop=stop_after_attempt(self.retry.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception_type(RetryableHttpError),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        def _wrapped() -> Any:
            return self._request_json(method, url, params=params, headers=headers, timeout=timeout)

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        return self.request_json("GET", url, params=params, headers=headers, timeout=timeout)

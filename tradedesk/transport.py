"""Fetch-with-retry transport.

One logical request runs through a small state machine:

    IDLE -> ATTEMPTING(n) -> SUCCEEDED
                          -> RETRY_WAIT(n) -> ATTEMPTING(n+1)
                          -> EXHAUSTED

Only transport failures (connection errors, timeouts) move to
RETRY_WAIT. A response with any HTTP status is a success at this layer;
interpreting the status belongs to the caller.
"""
import time
from enum import Enum, auto
from typing import Callable, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter

from .envelope import HttpResponse
from .errors import TransportError
from .logging_setup import logger

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_ATTEMPTS = 3


class TransportState(Enum):
    IDLE = auto()
    ATTEMPTING = auto()
    RETRY_WAIT = auto()
    SUCCEEDED = auto()
    EXHAUSTED = auto()


class RetryStateMachine:
    """Tracks one request's attempts and decides backoff delays.

    Delay before attempt ``n + 1`` is ``backoff_base * 2 ** (n - 1)``,
    i.e. 1s then 2s with the default base.
    """

    TERMINAL = (TransportState.SUCCEEDED, TransportState.EXHAUSTED)

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, backoff_base: float = 1.0):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.state = TransportState.IDLE
        self.attempt = 0

    def _expect(self, *states: TransportState) -> None:
        if self.state not in states:
            raise RuntimeError(f"invalid transition from {self.state.name}")

    def begin_attempt(self) -> int:
        self._expect(TransportState.IDLE, TransportState.RETRY_WAIT)
        self.attempt += 1
        self.state = TransportState.ATTEMPTING
        return self.attempt

    def succeed(self) -> None:
        self._expect(TransportState.ATTEMPTING)
        self.state = TransportState.SUCCEEDED

    def fail(self) -> Optional[float]:
        """Record a failed attempt. Returns the backoff delay, or None when exhausted."""
        self._expect(TransportState.ATTEMPTING)
        if self.attempt >= self.max_attempts:
            self.state = TransportState.EXHAUSTED
            return None
        self.state = TransportState.RETRY_WAIT
        return self.backoff_delay(self.attempt)

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** (attempt - 1))

    @property
    def done(self) -> bool:
        return self.state in self.TERMINAL


class RetryingTransport:
    """Blocking transport on a requests.Session.

    Each attempt has a total deadline of ``timeout`` seconds covering
    connect, headers and body. The body is read in single-byte steps so
    the deadline is checked while a slow server trickles data; the timeout
    handed to requests only bounds each single socket read.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if session is None:
            session = requests.Session()
            # retries are ours; urllib3 must not retry underneath
            session.mount("https://", HTTPAdapter(max_retries=0))
            session.mount("http://", HTTPAdapter(max_retries=0))
        self.session = session
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep

    def _attempt(self, method: str, url: str, headers, data, params, timeout: float) -> HttpResponse:
        deadline = time.monotonic() + timeout
        resp = self.session.request(
            method, url, headers=headers, data=data, params=params, timeout=timeout, stream=True
        )
        try:
            body = bytearray()
            for chunk in resp.iter_content(chunk_size=1):
                body += chunk
                if time.monotonic() > deadline:
                    raise requests.exceptions.Timeout(f"attempt exceeded {timeout}s deadline")
        finally:
            resp.close()
        text = bytes(body).decode(resp.encoding or "utf-8", errors="replace")
        return HttpResponse(status=resp.status_code, text=text, headers=dict(resp.headers))

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[bytes] = None,
        params: Optional[Mapping[str, object]] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> HttpResponse:
        machine = RetryStateMachine(max_attempts or self.max_attempts, self.backoff_base)
        timeout = timeout if timeout is not None else self.timeout
        last_error: Optional[BaseException] = None

        while not machine.done:
            attempt = machine.begin_attempt()
            logger.debug(f"Request attempt | attempt={attempt}/{machine.max_attempts} method={method} url={url}")
            try:
                resp = self._attempt(method, url, dict(headers or {}), data, params, timeout)
            except requests.exceptions.RequestException as e:
                last_error = e
                delay = machine.fail()
                if delay is None:
                    break
                logger.warning(f"Request attempt failed | attempt={attempt} url={url} error={e!r} retry_in={delay}s")
                self._sleep(delay)
                continue
            machine.succeed()
            logger.debug(f"Request completed | status={resp.status} url={url}")
            return resp

        logger.error(f"Request failed after {machine.attempt} attempt(s) | url={url} error={last_error!r}")
        raise TransportError(url, machine.attempt, repr(last_error)) from last_error

    def close(self) -> None:
        self.session.close()

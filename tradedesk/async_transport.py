import asyncio
from typing import Awaitable, Callable, Mapping, Optional

import aiohttp

from .envelope import HttpResponse
from .errors import TransportError
from .logging_setup import logger
from .transport import DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT, RetryStateMachine


class AsyncRetryingTransport:
    """Async fetch-with-retry on an aiohttp.ClientSession.

    Each attempt, body read included, runs under ``asyncio.wait_for`` so
    an attempt that overruns ``timeout`` is cancelled and counted as a
    failure. Backoff waits are not cancellable by the caller.

    Usage:
        async with AsyncRetryingTransport() as transport:
            resp = await transport.send("POST", url, headers=..., data=...)

    A session passed in by the caller is not closed on exit.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self._owns_session = session is None
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    async def _attempt(self, method: str, url: str, headers, data, params) -> HttpResponse:
        async with self.session.request(method, url, headers=headers, data=data, params=params) as resp:
            text = await resp.text()
            return HttpResponse(status=resp.status, text=text, headers=dict(resp.headers))

    async def send(
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
        if self.session is None:
            raise RuntimeError("Session not initialized; use 'async with' context manager")

        machine = RetryStateMachine(max_attempts or self.max_attempts, self.backoff_base)
        timeout = timeout if timeout is not None else self.timeout
        last_error: Optional[BaseException] = None

        while not machine.done:
            attempt = machine.begin_attempt()
            logger.debug(f"Request attempt | attempt={attempt}/{machine.max_attempts} method={method} url={url}")
            try:
                resp = await asyncio.wait_for(
                    self._attempt(method, url, dict(headers or {}), data, params), timeout=timeout
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                delay = machine.fail()
                if delay is None:
                    break
                logger.warning(f"Request attempt failed | attempt={attempt} url={url} error={e!r} retry_in={delay}s")
                await self._sleep(delay)
                continue
            machine.succeed()
            logger.debug(f"Request completed | status={resp.status} url={url}")
            return resp

        logger.error(f"Request failed after {machine.attempt} attempt(s) | url={url} error={last_error!r}")
        raise TransportError(url, machine.attempt, repr(last_error)) from last_error

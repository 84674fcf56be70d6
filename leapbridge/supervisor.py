"""Restart-on-failure supervision for long-running daemon tasks."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import tenacity

from .config.const import (
    SUPERVISOR_DEFAULT_MAX_BACKOFF,
    SUPERVISOR_DEFAULT_MIN_BACKOFF,
    SUPERVISOR_HEALTHY_WINDOW,
)
from .state.context import GatewayState

logger = logging.getLogger("leapbridge.supervisor")


class _RetryHooks:
    __slots__ = ("name", "state", "max_attempts")

    def __init__(self, name: str, state: GatewayState | None, max_restarts: int | None) -> None:
        self.name = name
        self.state = state
        self.max_attempts = None if max_restarts is None else max_restarts + 1

    def before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.error("%s failed (%s); restarting in %.1fs", self.name, exc, delay)

    def after(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if self.state is not None and exc is not None:
            self.state.record_supervisor_failure(self.name, exc, fatal=self.is_last(retry_state))

    def is_last(self, retry_state: tenacity.RetryCallState) -> bool:
        return self.max_attempts is not None and retry_state.attempt_number >= self.max_attempts


async def supervise_task(
    name: str,
    coro_factory: Callable[[], Awaitable[None]],
    *,
    state: GatewayState | None = None,
    max_restarts: int | None = None,
    min_backoff: float = SUPERVISOR_DEFAULT_MIN_BACKOFF,
    max_backoff: float = SUPERVISOR_DEFAULT_MAX_BACKOFF,
    healthy_window: float = SUPERVISOR_HEALTHY_WINDOW,
) -> None:
    """Run *coro_factory* and restart it with exponential backoff when it fails.

    A run that lasted longer than *healthy_window* resets the backoff. A clean
    return ends supervision.
    """
    hooks = _RetryHooks(name, state, max_restarts)

    def build_retryer() -> tenacity.AsyncRetrying:
        return tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=min_backoff, max=max_backoff),
            retry=tenacity.retry_if_not_exception_type(
                (asyncio.CancelledError, SystemExit, KeyboardInterrupt, GeneratorExit)
            ),
            stop=tenacity.stop_after_attempt(max_restarts + 1) if max_restarts is not None else tenacity.stop_never,
            before_sleep=hooks.before_sleep,
            after=hooks.after,
            reraise=True,
        )

    started = 0.0
    try:
        while True:
            try:
                async for attempt in build_retryer():
                    with attempt:
                        started = time.monotonic()
                        await coro_factory()
                logger.warning("%s task exited cleanly; supervisor exiting", name)
                if state is not None:
                    state.mark_supervisor_healthy(name)
                return
            except (asyncio.CancelledError, SystemExit, KeyboardInterrupt, GeneratorExit):
                raise
            except Exception:
                if started > 0 and time.monotonic() - started > healthy_window:
                    logger.info("%s was healthy long enough; resetting backoff", name)
                    if state is not None:
                        state.mark_supervisor_healthy(name)
                    continue
                logger.error("%s exceeded max restarts (%s); giving up", name, max_restarts)
                raise
    except asyncio.CancelledError:
        logger.debug("%s supervisor cancelled", name)
        raise

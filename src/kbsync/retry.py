"""Retry with exponential backoff for embedding and store calls.

Only errors flagged ``transient`` are retried. Exhaustion re-raises the last
error unchanged so the caller sees the real cause. A set cancellation event
stops retrying immediately and interrupts the backoff sleep.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import tenacity

from kbsync.config import RetryCfg
from kbsync.errors import KbsyncError, OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff settings.

    Attributes:
        max_attempts: Total attempts including the first call.
        initial_delay_ms: Delay before the second attempt.
        max_delay_ms: Upper bound on any single delay.
        multiplier: Growth factor between consecutive delays.
        jitter: Add up to half of ``initial_delay_ms`` of random delay.
    """

    max_attempts: int = 3
    initial_delay_ms: int = 200
    max_delay_ms: int = 5_000
    multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def from_config(cls, cfg: RetryCfg) -> RetryPolicy:
        return cls(
            max_attempts=cfg.max_attempts,
            initial_delay_ms=cfg.initial_delay_ms,
            max_delay_ms=cfg.max_delay_ms,
            multiplier=cfg.multiplier,
            jitter=cfg.jitter,
        )

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_attempts=1, initial_delay_ms=0, max_delay_ms=0, jitter=False)

    def _wait(self) -> tenacity.wait.wait_base:
        wait: tenacity.wait.wait_base = tenacity.wait_exponential(
            multiplier=self.initial_delay_ms / 1000,
            exp_base=self.multiplier,
            max=self.max_delay_ms / 1000,
        )
        if self.jitter and self.initial_delay_ms > 0:
            wait = wait + tenacity.wait_random(0, self.initial_delay_ms / 2000)
        return wait

    def retrying(
        self,
        operation: str,
        cancel: threading.Event | None = None,
    ) -> tenacity.Retrying:
        """Build a ``tenacity.Retrying`` for *operation* (used in log lines)."""
        stop: tenacity.stop.stop_base = tenacity.stop_after_attempt(self.max_attempts)
        sleep: Callable[[float], None] = time.sleep
        if cancel is not None:
            stop = stop | tenacity.stop_when_event_set(cancel)
            sleep = cancel.wait

        return tenacity.Retrying(
            retry=tenacity.retry_if_exception(is_transient),
            stop=stop,
            wait=self._wait(),
            sleep=sleep,
            reraise=True,
            before_sleep=_log_retry(operation),
        )

    def call(
        self,
        operation: str,
        fn: Callable[[], T],
        cancel: threading.Event | None = None,
    ) -> T:
        """Run *fn* under this policy; raise OperationCancelled if *cancel* is set."""

        def _attempt() -> T:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"{operation} cancelled")
            return fn()

        return self.retrying(operation, cancel)(_attempt)


def is_transient(exc: BaseException) -> bool:
    """True for lifecycle errors that are worth another attempt."""
    return isinstance(exc, KbsyncError) and exc.transient


def _log_retry(operation: str) -> Callable[[tenacity.RetryCallState], None]:
    def _log(retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is None:
            return
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "[RETRY] %s attempt %d failed: %s: %s (next in %.2fs)",
            operation,
            retry_state.attempt_number,
            type(exc).__name__,
            exc,
            delay,
        )

    return _log

# ================================================================
# File     : poller.py
# Purpose  : Watch a submitted PIM request until it takes effect
# Notes    : Sequential ticks, bounded wait, cooperative cancellation.
#            Stopping the watch never cancels the request in Entra.
# ================================================================

import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Type

from core.errors import TransportError
from core.models import PimTarget


class PollState(Enum):
    REQUESTED = "Requested"
    POLLING = "Polling"
    CONFIRMED = "Confirmed"
    TIMED_OUT = "TimedOut"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (PollState.CONFIRMED, PollState.TIMED_OUT, PollState.CANCELLED, PollState.FAILED)


@dataclass(frozen=True)
class PollProgress:
    state: PollState
    attempt: int
    elapsed_seconds: float
    last_error: Optional[BaseException] = None


@dataclass(frozen=True)
class PollOutcome:
    state: PollState
    target: PimTarget
    attempts: int
    elapsed_seconds: float
    last_error: Optional[BaseException] = None

    @property
    def confirmed(self) -> bool:
        return self.state is PollState.CONFIRMED

    @property
    def may_still_be_in_progress(self) -> bool:
        return self.state in (PollState.TIMED_OUT, PollState.CANCELLED)

    @property
    def message(self) -> str:
        label = self.target.label()
        if self.state is PollState.CONFIRMED:
            return f"'{label}' confirmed after {self.attempts} check(s) ({self.elapsed_seconds:.0f}s)."
        if self.state is PollState.TIMED_OUT:
            return (f"Stopped waiting for '{label}' after {self.elapsed_seconds:.0f}s. "
                    "The request may still be in progress; run 'status' to re-check.")
        if self.state is PollState.CANCELLED:
            return (f"Stopped watching '{label}'. The request was not cancelled and may still be "
                    "in progress; run 'status' to re-check.")
        return f"Polling '{label}' failed: {self.last_error}"


class CancellationToken:
    """Thread-safe flag the caller sets to stop a poll at the next tick boundary."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True early if cancelled."""
        return self._event.wait(max(0.0, seconds))


ProgressObserver = Callable[[PollProgress], None]


# ================================================================
# Function: fncStartPoll
# Purpose : Re-run check_fn until True, timeout, cancel or hard failure
# Notes   : max_wait_seconds is mandatory (no hidden default).
#           Exceptions in retry_on count as "not yet"; anything else
#           ends the poll as FAILED.
# ================================================================
def fncStartPoll(
    target: PimTarget,
    check_fn: Callable[[], bool],
    max_wait_seconds: float,
    tick_interval_ms: int,
    cancel_token: Optional[CancellationToken] = None,
    observer: Optional[ProgressObserver] = None,
    retry_on: Tuple[Type[BaseException], ...] = (TransportError,),
) -> PollOutcome:
    if max_wait_seconds is None or not math.isfinite(max_wait_seconds) or max_wait_seconds <= 0:
        raise ValueError("max_wait_seconds must be a finite number greater than zero")
    if tick_interval_ms is None or tick_interval_ms <= 0:
        raise ValueError("tick_interval_ms must be greater than zero")

    token = cancel_token or CancellationToken()
    interval = tick_interval_ms / 1000.0
    started = time.monotonic()
    attempt = 0
    last_error: Optional[BaseException] = None

    def _elapsed() -> float:
        return time.monotonic() - started

    def _done(state: PollState) -> PollOutcome:
        return PollOutcome(state, target, attempt, _elapsed(), last_error)

    def _notify(state: PollState) -> None:
        if observer is not None:
            observer(PollProgress(state, attempt, _elapsed(), last_error))

    _notify(PollState.REQUESTED)

    try:
        while True:
            if token.cancelled:
                return _done(PollState.CANCELLED)

            attempt += 1
            try:
                ok = bool(check_fn())
            except retry_on as ex:
                last_error = ex
                ok = False
            except Exception as ex:
                last_error = ex
                return _done(PollState.FAILED)

            if ok:
                return _done(PollState.CONFIRMED)

            _notify(PollState.POLLING)

            if token.cancelled:
                return _done(PollState.CANCELLED)

            remaining = max_wait_seconds - _elapsed()
            if remaining <= 0:
                return _done(PollState.TIMED_OUT)

            if token.wait(min(interval, remaining)):
                return _done(PollState.CANCELLED)
    except KeyboardInterrupt:
        token.cancel()
        return _done(PollState.CANCELLED)

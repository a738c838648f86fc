"""Emergency (SOS) confirm-then-dispatch workflow.

``idle`` → ``confirming`` on trigger; the countdown ticks down once per
interval and reaching zero dispatches. Cancelling during the countdown
returns to ``idle`` without dispatching. ``dispatching`` is never held open:
the machine returns to ``idle`` as soon as the dispatch call finishes,
whether it succeeded or not.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Protocol

from fleetsync import _constants as c
from fleetsync._scheduler import PeriodicTask
from fleetsync.exceptions import DispatchError

_logger = logging.getLogger(__name__)

DispatchAction = Callable[[str], Awaitable[None] | None]


class EscalationPhase(StrEnum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    DISPATCHING = "dispatching"


def log_emergency_call(reason: str) -> None:
    """Default dispatch action: record the call that would be placed."""
    _logger.warning("EMERGENCY: calling %s and notifying emergency contacts reason=%r", c.EMERGENCY_NUMBER, reason)


class EmergencyEscalation:
    """Countdown state machine ending in a dispatch side effect.

    Parameters
    ----------
    dispatch : callable
        Called with the trigger reason when the countdown completes. May be
        sync or async. Exceptions are logged, never propagated.
    countdown_start : int
        Ticks between trigger and dispatch.
    tick_interval : float
        Seconds per tick when ``auto_tick`` is enabled.
    auto_tick : bool
        Drive the countdown from an asyncio timer. Disable to call
        :meth:`advance` yourself.
    """

    def __init__(
        self,
        dispatch: DispatchAction = log_emergency_call,
        *,
        countdown_start: int = c.DEFAULT_SOS_COUNTDOWN,
        tick_interval: float = c.DEFAULT_SOS_TICK_INTERVAL,
        auto_tick: bool = True,
    ) -> None:
        if countdown_start < 1:
            raise ValueError("countdown_start must be at least 1")
        self._dispatch_action = dispatch
        self._countdown_start = countdown_start
        self._auto_tick = auto_tick
        self._timer = PeriodicTask(tick_interval, self.advance, name="sos-countdown")
        self._phase = EscalationPhase.IDLE
        self._countdown = countdown_start
        self._reason = ""
        self._dispatch_count = 0
        self._listeners: list[Callable[[EscalationPhase, int], None]] = []

    @property
    def phase(self) -> EscalationPhase:
        return self._phase

    @property
    def countdown(self) -> int:
        return self._countdown

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def dispatch_count(self) -> int:
        return self._dispatch_count

    @property
    def progress(self) -> float:
        """Fraction of the countdown elapsed, ``0.0`` to ``1.0``."""
        if self._phase == EscalationPhase.IDLE:
            return 0.0
        return 1.0 - self._countdown / self._countdown_start

    def on_change(self, callback: Callable[[EscalationPhase, int], None]) -> None:
        self._listeners.append(callback)

    def _set(self, phase: EscalationPhase, countdown: int) -> None:
        self._phase = phase
        self._countdown = countdown
        for listener in list(self._listeners):
            listener(phase, countdown)

    def trigger(self, reason: str = "") -> None:
        """Start (or restart) the confirmation countdown."""
        if self._phase == EscalationPhase.DISPATCHING:
            _logger.debug("Trigger ignored while dispatching")
            return
        restarting = self._phase == EscalationPhase.CONFIRMING
        self._reason = reason
        self._set(EscalationPhase.CONFIRMING, self._countdown_start)
        if self._auto_tick:
            # start() replaces the running timer, so a re-trigger never stacks.
            self._timer.start()
        _logger.info(
            "Emergency %s countdown=%d reason=%r",
            "re-triggered" if restarting else "triggered",
            self._countdown,
            reason,
        )

    def cancel(self) -> bool:
        """Abort the countdown; only meaningful while confirming."""
        if self._phase != EscalationPhase.CONFIRMING:
            return False
        self._timer.cancel()
        self._reason = ""
        self._set(EscalationPhase.IDLE, self._countdown_start)
        _logger.info("Emergency cancelled")
        return True

    async def advance(self) -> None:
        """One countdown tick."""
        if self._phase != EscalationPhase.CONFIRMING:
            return
        if self._countdown > 0:
            self._set(EscalationPhase.CONFIRMING, self._countdown - 1)
        if self._countdown == 0:
            await self._dispatch()

    async def _dispatch(self) -> None:
        self._timer.cancel()
        reason = self._reason
        self._set(EscalationPhase.DISPATCHING, 0)
        self._dispatch_count += 1
        _logger.info("Emergency dispatching reason=%r", reason)
        try:
            result = self._dispatch_action(reason)
            if inspect.isawaitable(result):
                await result
        except DispatchError as exc:
            _logger.warning("Emergency dispatch failed: %s", exc)
        except Exception:
            _logger.error("Emergency dispatch failed", exc_info=True)
        finally:
            self._reason = ""
            self._set(EscalationPhase.IDLE, self._countdown_start)

    def close(self) -> None:
        """Stop the timer and return to idle without dispatching."""
        self._timer.cancel()
        if self._phase == EscalationPhase.CONFIRMING:
            self._reason = ""
            self._set(EscalationPhase.IDLE, self._countdown_start)


class EmergencyConsumer(Protocol):
    def trigger(self, reason: str = "") -> None: ...


class EmergencySignal:
    """Process-wide "trigger emergency" event.

    Fire-and-forget; exactly one consumer is attached at a time, and
    attaching a new consumer replaces the previous one.
    """

    def __init__(self) -> None:
        self._consumer: EmergencyConsumer | None = None

    @property
    def consumer(self) -> EmergencyConsumer | None:
        return self._consumer

    def attach(self, consumer: EmergencyConsumer) -> Callable[[], None]:
        if self._consumer is not None and self._consumer is not consumer:
            _logger.debug("Emergency signal consumer replaced")
        self._consumer = consumer

        def _detach() -> None:
            self.detach(consumer)

        return _detach

    def detach(self, consumer: EmergencyConsumer) -> None:
        if self._consumer is consumer:
            self._consumer = None

    def fire(self, reason: str = "") -> bool:
        consumer = self._consumer
        if consumer is None:
            _logger.warning("Emergency signal fired with no consumer attached; dropped")
            return False
        consumer.trigger(reason)
        return True

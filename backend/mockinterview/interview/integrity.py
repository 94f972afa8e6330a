from __future__ import annotations

import logging
from collections import defaultdict
from typing import Awaitable, Callable, Protocol

from core.logger import log_event
from .models import IntegrityViolation, ViolationKind

logger = logging.getLogger("interview.integrity")

SIGNAL_VISIBILITY_HIDDEN = "visibility_hidden"
SIGNAL_WINDOW_BLUR = "window_blur"

SignalHandler = Callable[[], Awaitable[None]]


class ViolationSink(Protocol):
    async def record_violation(self, kind: ViolationKind) -> IntegrityViolation | None:
        ...


class EnvironmentSignals:
    """
    Fan-out point for platform focus signals. The UI shell emits into it;
    monitors subscribe and get an unsubscribe callable back.
    """

    def __init__(self):
        self._handlers: dict[str, list[SignalHandler]] = defaultdict(list)

    def subscribe(self, signal: str, handler: SignalHandler) -> Callable[[], None]:
        name = str(signal or "").strip()
        self._handlers[name].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(name) or []
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    async def emit(self, signal: str) -> int:
        handlers = list(self._handlers.get(str(signal or "").strip()) or [])
        for handler in handlers:
            await handler()
        return len(handlers)


class IntegrityMonitor:
    """
    Audit-only focus watcher. It forwards every focus-loss signal to the
    sequencer, which keeps it only while an answer is being recorded.
    It never pauses the timer or blocks advancement.
    """

    def __init__(self, signals: EnvironmentSignals, sink: ViolationSink, *, session_id: str = ""):
        self._signals = signals
        self._sink = sink
        self.session_id = str(session_id or "")
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def attached(self) -> bool:
        return bool(self._unsubscribers)

    def attach(self) -> None:
        if self.attached:
            return
        self._unsubscribers = [
            self._signals.subscribe(SIGNAL_VISIBILITY_HIDDEN, self.on_visibility_hidden),
            self._signals.subscribe(SIGNAL_WINDOW_BLUR, self.on_window_blur),
        ]
        log_event("integrity", "attached", self.session_id)

    def detach(self) -> None:
        if not self._unsubscribers:
            return
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        log_event("integrity", "detached", self.session_id)

    def __enter__(self) -> "IntegrityMonitor":
        self.attach()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.detach()

    async def on_visibility_hidden(self) -> None:
        await self._observe(ViolationKind.TAB_HIDDEN)

    async def on_window_blur(self) -> None:
        await self._observe(ViolationKind.WINDOW_BLUR)

    async def _observe(self, kind: ViolationKind) -> None:
        violation = await self._sink.record_violation(kind)
        if violation is None:
            logger.debug("Focus signal ignored (not recording) | session_id=%s kind=%s", self.session_id, kind.value)

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from core.config import QUESTION_TICK_INTERVAL_SEC
from core.logger import log_event
from core.state import SessionPhase
from mockinterview.system_metrics import increment_metric, observe_answer
from .errors import InvalidTransition
from .models import ANSWER_STOPPED, ANSWER_TIME_UP, AnswerRecord, IntegrityViolation, ViolationKind
from .questions import Question, validate_questions
from .state import SessionState

logger = logging.getLogger("interview.sequencer")

EventFn = Callable[[dict], None]
EndedFn = Callable[[SessionState, str], None]

END_COMPLETED = "completed"
END_BY_CANDIDATE = "ended_by_candidate"
END_ABANDONED = "abandoned"


class QuestionSequencer:
    """
    Drives one candidate through the ordered questions.

    Every public operation runs under a single asyncio.Lock, so timer
    ticks, focus signals and user actions are applied one at a time in
    arrival order. Callbacks are synchronous and run inside the lock.
    """

    def __init__(
        self,
        questions: tuple[Question, ...],
        *,
        session_id: str = "",
        tick_interval_sec: float | None = None,
        clock: Callable[[], float] | None = None,
        on_event: EventFn | None = None,
        on_ended: EndedFn | None = None,
    ):
        self.state = SessionState(validate_questions(questions))
        self.session_id = str(session_id or "")
        self.tick_interval_sec = max(
            0.001,
            float(QUESTION_TICK_INTERVAL_SEC if tick_interval_sec is None else tick_interval_sec),
        )
        self._clock = clock or time.monotonic
        self._on_event = on_event
        self._on_ended = on_ended

        self._lock = asyncio.Lock()
        self._timer_task: asyncio.Task | None = None
        self._timer_generation = 0
        self._next_tick_at: float | None = None
        self._ended_fired = False
        self.end_reason: str | None = None

    # -------------------------
    # READ SIDE
    # -------------------------

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    @property
    def ended(self) -> bool:
        return self.state.phase == SessionPhase.ENDED

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def snapshot(self) -> dict:
        return self.state.snapshot()

    # -------------------------
    # ACTIONS
    # -------------------------

    async def initialize(self) -> None:
        async with self._lock:
            self._require("initialize", SessionPhase.IDLE)
            self.state.current_question_index = 0
            self.state.time_left_seconds = self.state.current_question.time_limit_seconds
            self.state.phase = SessionPhase.AWAITING_START
            log_event("sequencer", "initialized", self.session_id, total_questions=self.state.total_questions)
            self._emit_state()

    async def start_answer(self) -> None:
        async with self._lock:
            self._require("start_answer", SessionPhase.AWAITING_START)
            question = self.state.current_question
            self.state.time_left_seconds = question.time_limit_seconds
            self.state.recording = True
            self.state.phase = SessionPhase.RECORDING
            self._start_timer_locked()

            index = self.state.current_question_index
            log_event("sequencer", "recording_started", self.session_id, question_index=index)
            self._notice(
                "Recording Started",
                f"Question {index + 1} of {self.state.total_questions}",
            )
            self._emit_state()

    async def stop_answer(self) -> None:
        async with self._lock:
            self._require("stop_answer", SessionPhase.RECORDING)
            if self._expiry_due():
                # the question's time already ran out; time-up wins and advances
                self.state.time_left_seconds = 0
                self._time_up_locked()
            else:
                self._stop_locked(ANSWER_STOPPED)
            self._emit_state()

    async def next_question(self) -> None:
        async with self._lock:
            self._require("next_question", SessionPhase.AWAITING_NEXT)
            if not self.state.has_answer_for_current():
                raise InvalidTransition(
                    "next_question",
                    self.state.phase.value,
                    "Answer the current question before moving on",
                )
            self._advance_locked()
            self._emit_state()

    async def end_interview(self, reason: str = END_BY_CANDIDATE) -> None:
        async with self._lock:
            if self.ended:
                raise InvalidTransition("end_interview", self.state.phase.value)
            self._end_locked(reason)
            self._emit_state()

    async def tick(self) -> bool:
        """Apply one elapsed second. Returns False when nothing was recording."""
        async with self._lock:
            if not self.state.recording or self.ended:
                return False
            self._apply_tick_locked()
            self._emit_state()
            return True

    async def record_violation(self, kind: ViolationKind) -> IntegrityViolation | None:
        async with self._lock:
            if not self.state.recording or self.ended:
                return None

            violation = IntegrityViolation(
                kind=ViolationKind(kind),
                question_index=self.state.current_question_index,
                sequence=len(self.state.violations),
            )
            self.state.violations.append(violation)
            increment_metric("violations_recorded")
            log_event(
                "sequencer",
                "violation_recorded",
                self.session_id,
                kind=violation.kind.value,
                question_index=violation.question_index,
                total=len(self.state.violations),
            )
            if violation.kind == ViolationKind.TAB_HIDDEN:
                self._notice("Warning", "Tab switching detected during interview", variant="destructive")
            self._emit_state()
            return violation

    async def set_media_enabled(self, video: bool | None = None, audio: bool | None = None) -> None:
        async with self._lock:
            if self.ended:
                return
            if video is not None:
                self.state.media_enabled.video = bool(video)
            if audio is not None:
                self.state.media_enabled.audio = bool(audio)
            self._emit_state()

    async def shutdown(self) -> None:
        """Cancel the timer and wait for it; used on connection teardown."""
        task = self._timer_task
        async with self._lock:
            self._cancel_timer_locked()
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    # -------------------------
    # TRANSITIONS (lock held)
    # -------------------------

    def _require(self, action: str, *phases: SessionPhase) -> None:
        if self.state.phase not in phases:
            raise InvalidTransition(action, self.state.phase.value)

    def _apply_tick_locked(self) -> None:
        self.state.time_left_seconds = max(0, self.state.time_left_seconds - 1)
        self._next_tick_at = self._clock() + self.tick_interval_sec
        if self.state.time_left_seconds == 0:
            self._time_up_locked()

    def _expiry_due(self) -> bool:
        if self.state.time_left_seconds <= 0:
            return True
        if self.state.time_left_seconds > 1 or self._next_tick_at is None:
            return False
        return self._clock() >= self._next_tick_at

    def _stop_locked(self, reason: str) -> AnswerRecord:
        question = self.state.current_question
        record = AnswerRecord(
            question_id=question.id,
            question_index=self.state.current_question_index,
            reason=reason,
            elapsed_seconds=question.time_limit_seconds - self.state.time_left_seconds,
        )
        self.state.answers.append(record)
        self.state.recording = False
        self.state.phase = SessionPhase.AWAITING_NEXT
        self._cancel_timer_locked()

        observe_answer(record.elapsed_seconds, timed_out=reason == ANSWER_TIME_UP)
        log_event(
            "sequencer",
            "answer_recorded",
            self.session_id,
            question_index=record.question_index,
            reason=reason,
            elapsed_seconds=record.elapsed_seconds,
        )
        return record

    def _time_up_locked(self) -> None:
        self._stop_locked(ANSWER_TIME_UP)
        self._notice("Time's Up!", "Moving to next question", variant="destructive")
        self._advance_locked()

    def _advance_locked(self) -> None:
        if self.state.is_last_question:
            self._end_locked(END_COMPLETED)
            return

        self.state.current_question_index += 1
        self.state.time_left_seconds = self.state.current_question.time_limit_seconds
        self.state.phase = SessionPhase.AWAITING_START
        log_event("sequencer", "advanced", self.session_id, question_index=self.state.current_question_index)

    def _end_locked(self, reason: str) -> None:
        self.state.recording = False
        self.state.phase = SessionPhase.ENDED
        self._cancel_timer_locked()
        self.end_reason = str(reason or END_BY_CANDIDATE)

        if self._ended_fired:
            return
        self._ended_fired = True
        log_event(
            "sequencer",
            "ended",
            self.session_id,
            reason=self.end_reason,
            answers=len(self.state.answers),
            violations=len(self.state.violations),
        )
        if self._on_ended is not None:
            self._on_ended(self.state, self.end_reason)

    # -------------------------
    # TIMER
    # -------------------------

    def _start_timer_locked(self) -> None:
        self._cancel_timer_locked()
        generation = self._timer_generation
        self._next_tick_at = self._clock() + self.tick_interval_sec
        self._timer_task = asyncio.create_task(self._run_timer(generation))

    def _cancel_timer_locked(self) -> None:
        # bumping the generation turns any in-flight tick into a no-op
        self._timer_generation += 1
        self._next_tick_at = None
        task = self._timer_task
        self._timer_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run_timer(self, generation: int) -> None:
        while generation == self._timer_generation:
            await asyncio.sleep(self.tick_interval_sec)
            async with self._lock:
                if generation != self._timer_generation or not self.state.recording:
                    return
                self._apply_tick_locked()
                self._emit_state()

    # -------------------------
    # OUTPUT
    # -------------------------

    def _emit(self, payload: dict) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(payload)
        except Exception:
            logger.exception("Event listener failed | session_id=%s", self.session_id)

    def _emit_state(self) -> None:
        payload = {"type": "state", "session_id": self.session_id}
        payload.update(self.state.snapshot())
        self._emit(payload)

    def _notice(self, title: str, description: str, variant: str = "default") -> None:
        self._emit({
            "type": "notice",
            "title": title,
            "description": description,
            "variant": variant,
        })

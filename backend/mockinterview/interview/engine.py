from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from core.logger import log_event
from mockinterview.results.store import ResultsStore
from mockinterview.session.context import SessionContext
from mockinterview.system_metrics import increment_metric, record_session_ended
from .errors import InvalidTransition, PermissionDenied
from .integrity import EnvironmentSignals, IntegrityMonitor
from .media import CaptureDevice, MediaCaptureManager
from .models import ScoreReport, SessionSummary, TrackKind
from .questions import Question, load_questions
from .scorer import ScoreCalculator
from .sequencer import END_ABANDONED, END_BY_CANDIDATE, QuestionSequencer
from .state import SessionState
from .summary import build_session_summary

logger = logging.getLogger("interview.engine")

EventFn = Callable[[dict], None]


class InterviewSessionEngine:
    """
    One candidate, one session.

    Wires the sequencer to media capture, the integrity monitor, the
    summary builder and the results store. On end: snapshot, release the
    stream, unsubscribe from focus signals, hand the summary to storage
    in the background.
    """

    def __init__(
        self,
        context: SessionContext,
        device: CaptureDevice,
        *,
        questions: tuple[Question, ...] | None = None,
        signals: EnvironmentSignals | None = None,
        results_store: ResultsStore | None = None,
        score_calculator: ScoreCalculator | None = None,
        tick_interval_sec: float | None = None,
        clock: Callable[[], float] | None = None,
        on_event: EventFn | None = None,
    ):
        self.context = context
        self.session_id = context.session_id
        self._on_event = on_event

        self.signals = signals or EnvironmentSignals()
        self.sequencer = QuestionSequencer(
            questions or load_questions(context.job_role),
            session_id=self.session_id,
            tick_interval_sec=tick_interval_sec,
            clock=clock,
            on_event=self._emit,
            on_ended=self._handle_ended,
        )
        self.media = MediaCaptureManager(device, session_id=self.session_id)
        self.monitor = IntegrityMonitor(self.signals, self.sequencer, session_id=self.session_id)
        self.results_store = results_store
        self.score_calculator = score_calculator or ScoreCalculator()

        self.summary: SessionSummary | None = None
        self.report: ScoreReport | None = None
        self.started = False
        self._acquire_task: asyncio.Task | None = None
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def ended(self) -> bool:
        return self.sequencer.ended

    def snapshot(self) -> dict:
        payload = {"session_id": self.session_id, "job_role": self.context.job_role}
        payload.update(self.sequencer.snapshot())
        return payload

    # -------------------------
    # LIFECYCLE
    # -------------------------

    async def start(self) -> None:
        if self.started:
            raise InvalidTransition("start", self.sequencer.phase.value)
        self.started = True
        increment_metric("sessions_started")
        log_event(
            "engine",
            "started",
            self.session_id,
            candidate_name=self.context.candidate_name,
            job_role=self.context.job_role,
        )

        self.monitor.attach()
        await self.sequencer.initialize()
        # capture negotiation must never hold up the timer
        self._acquire_task = asyncio.create_task(self._acquire_media())

    async def close(self) -> None:
        """Navigation-away path: end if still live, then tear everything down."""
        if self.started and not self.ended:
            await self.sequencer.end_interview(END_ABANDONED)

        self.media.release()
        self.monitor.detach()

        if self._acquire_task is not None and not self._acquire_task.done():
            self._acquire_task.cancel()
        await self.sequencer.shutdown()

        pending = [task for task in (self._acquire_task, *self._background_tasks) if task is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------
    # CANDIDATE ACTIONS
    # -------------------------

    async def start_answer(self) -> None:
        await self.sequencer.start_answer()

    async def stop_answer(self) -> None:
        await self.sequencer.stop_answer()

    async def next_question(self) -> None:
        await self.sequencer.next_question()

    async def end_interview(self) -> None:
        await self.sequencer.end_interview(END_BY_CANDIDATE)

    async def set_track_enabled(self, kind: TrackKind, enabled: bool) -> bool:
        kind = TrackKind(kind)
        if self.ended:
            raise InvalidTransition("set_track", self.sequencer.phase.value)
        if not self.media.set_track_enabled(kind, enabled):
            raise InvalidTransition(
                "set_track",
                self.sequencer.phase.value,
                "Camera and microphone are not available",
            )
        state_now = self.media.track_enabled(kind)
        await self.sequencer.set_media_enabled(**{kind.value: state_now})
        return state_now

    async def report_track_ended(self, kind: TrackKind) -> None:
        error = self.media.report_track_ended(TrackKind(kind))
        if error is None:
            return
        await self.sequencer.set_media_enabled(**{error.kind: False})
        self._emit(error.to_payload())
        self._emit({
            "type": "notice",
            "title": "Device Disconnected",
            "description": error.message,
            "variant": "destructive",
        })

    # -------------------------
    # RESULTS
    # -------------------------

    def results_payload(self) -> dict | None:
        if self.summary is None or self.report is None:
            return None
        return {
            "type": "results",
            "session_id": self.session_id,
            "candidate": self.context.to_dict(),
            "end_reason": self.sequencer.end_reason,
            "summary": self.summary.to_dict(),
            "report": self.report.to_dict(),
        }

    # -------------------------
    # INTERNALS
    # -------------------------

    async def _acquire_media(self) -> None:
        try:
            handle = await self.media.acquire()
        except PermissionDenied as exc:
            if self.ended:
                return
            await self.sequencer.set_media_enabled(video=False, audio=False)
            self._emit(exc.to_payload())
            self._emit({
                "type": "notice",
                "title": "Camera Access Required",
                "description": exc.message,
                "variant": "destructive",
            })
            return

        if handle is None or self.ended:
            return
        await self.sequencer.set_media_enabled(
            video=self.media.track_enabled(TrackKind.VIDEO),
            audio=self.media.track_enabled(TrackKind.AUDIO),
        )

    def _handle_ended(self, state: SessionState, reason: str) -> None:
        self.summary = build_session_summary(state)
        self.media.release()
        self.monitor.detach()
        record_session_ended(reason)

        self.report = self.score_calculator.calculate(self.summary)
        log_event(
            "engine",
            "summary_built",
            self.session_id,
            reason=reason,
            completed_questions=self.summary.completed_questions,
            total_questions=self.summary.total_questions,
            violations=self.summary.violation_count,
            overall_score=self.report.overall_score,
        )

        self._persist_in_background()
        self._emit(self.results_payload())

    def _persist_in_background(self) -> None:
        if self.results_store is None or self.summary is None or self.report is None:
            return
        record = {
            "candidate": self.context.to_dict(),
            "end_reason": self.sequencer.end_reason,
            "summary": self.summary.to_dict(),
            "technical_score": self.report.technical_score,
            "saved_at": time.time(),
        }
        task = asyncio.create_task(self._persist(record))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _persist(self, record: dict) -> None:
        try:
            await asyncio.to_thread(self.results_store.save_result, self.session_id, record)
        except Exception as exc:
            # storage trouble never reopens the session
            increment_metric("results_persist_failures")
            logger.warning("Result persistence failed | session_id=%s error=%s", self.session_id, exc)
            return
        increment_metric("results_persisted")
        log_event("engine", "result_persisted", self.session_id)

    def _emit(self, payload: dict | None) -> None:
        if payload is None or self._on_event is None:
            return
        try:
            self._on_event(payload)
        except Exception:
            logger.exception("Event listener failed | session_id=%s", self.session_id)

import asyncio

import pytest

from core.state import SessionPhase
from mockinterview.interview.engine import InterviewSessionEngine
from mockinterview.interview.errors import InvalidTransition, PermissionDenied
from mockinterview.interview.integrity import SIGNAL_VISIBILITY_HIDDEN, SIGNAL_WINDOW_BLUR
from mockinterview.interview.media import MediaHandle, VirtualCaptureDevice
from mockinterview.interview.models import TrackKind
from mockinterview.interview.questions import DEFAULT_QUESTIONS, Question
from mockinterview.interview.scorer import FixedTechnicalScorer, ScoreCalculator
from mockinterview.interview.sequencer import END_ABANDONED, END_BY_CANDIDATE, END_COMPLETED
from mockinterview.results.store import InMemoryResultsStore
from mockinterview.session.context import SessionContext
from mockinterview.system_metrics import get_metric

from conftest import PendingCaptureDevice


class DenyingDevice:
    async def request(self, video: bool, audio: bool) -> MediaHandle:
        raise PermissionDenied()


class FailingStore:
    def save_result(self, session_id, payload):
        raise OSError("disk full")

    def get_result(self, session_id):
        return None

    def list_results(self, limit=50):
        return []


def _engine(device=None, questions=None, **kwargs) -> InterviewSessionEngine:
    kwargs.setdefault("tick_interval_sec", 3600)
    kwargs.setdefault("score_calculator", ScoreCalculator(technical_scorer=FixedTechnicalScorer(80)))
    return InterviewSessionEngine(
        SessionContext(candidate_name="Ada Lovelace", job_role="Backend Engineer", email="ada@example.com"),
        device or VirtualCaptureDevice(),
        questions=questions,
        **kwargs,
    )


async def _started(engine: InterviewSessionEngine) -> InterviewSessionEngine:
    await engine.start()
    await engine._acquire_task
    return engine


async def _answer(engine: InterviewSessionEngine) -> None:
    await engine.start_answer()
    await engine.stop_answer()


@pytest.mark.asyncio
async def test_scenario_all_questions_answered_cleanly():
    store = InMemoryResultsStore()
    engine = await _started(_engine(results_store=store))
    assert engine.sequencer.state.media_enabled.to_dict() == {"video": True, "audio": True}

    for _ in range(4):
        await _answer(engine)
        await engine.next_question()

    assert engine.ended
    assert engine.sequencer.end_reason == END_COMPLETED
    assert engine.summary.completed_questions == 4
    assert engine.summary.total_questions == 4
    assert engine.report.completion_rate == 100
    assert engine.report.communication_score == 75
    assert not engine.media.active

    await engine.close()
    stored = store.get_result(engine.session_id)
    assert stored["summary"]["completed_questions"] == 4
    assert stored["candidate"]["job_role"] == "Backend Engineer"
    assert stored["technical_score"] == 80


@pytest.mark.asyncio
async def test_scenario_two_tab_switches_on_question_two():
    engine = await _started(_engine())

    await _answer(engine)
    await engine.next_question()

    await engine.start_answer()
    await engine.signals.emit(SIGNAL_VISIBILITY_HIDDEN)
    await engine.signals.emit(SIGNAL_VISIBILITY_HIDDEN)
    await engine.stop_answer()
    await engine.next_question()

    for _ in range(2):
        await _answer(engine)
        await engine.next_question()

    assert engine.ended
    assert len(engine.summary.violations) == 2
    assert all(v.question_index == 1 for v in engine.summary.violations)
    assert engine.report.communication_score == 55
    assert engine.report.completion_rate == 100
    await engine.close()


@pytest.mark.asyncio
async def test_scenario_end_after_first_answer():
    engine = await _started(_engine())

    await _answer(engine)
    await engine.end_interview()

    assert engine.sequencer.end_reason == END_BY_CANDIDATE
    assert engine.summary.completed_questions == 1
    assert engine.summary.total_questions == 4
    assert engine.report.completion_rate == 25
    await engine.close()


@pytest.mark.asyncio
async def test_end_after_moving_on_counts_only_recorded_answers():
    engine = await _started(_engine())

    await _answer(engine)
    await engine.next_question()
    assert engine.sequencer.state.current_question_index == 1
    await engine.end_interview()

    assert engine.summary.completed_questions == 1
    assert engine.summary.completed_questions <= engine.sequencer.state.current_question_index + 1
    await engine.close()


@pytest.mark.asyncio
async def test_scenario_timer_expiry_on_question_three_advances():
    engine = await _started(_engine(questions=DEFAULT_QUESTIONS))

    for _ in range(2):
        await _answer(engine)
        await engine.next_question()

    await engine.start_answer()
    for _ in range(DEFAULT_QUESTIONS[2].time_limit_seconds):
        await engine.sequencer.tick()

    state = engine.sequencer.state
    assert state.phase == SessionPhase.AWAITING_START
    assert state.current_question_index == 3
    assert state.time_left_seconds == DEFAULT_QUESTIONS[3].time_limit_seconds
    assert [a.question_id for a in state.answers] == [1, 2, 3]
    assert state.answers[-1].reason == "time_up"
    await engine.close()


@pytest.mark.asyncio
async def test_timer_expiry_on_last_question_ends_session():
    questions = (
        Question(id=1, text="One", time_limit_seconds=5),
        Question(id=2, text="Two", time_limit_seconds=5),
        Question(id=3, text="Three", time_limit_seconds=2),
    )
    engine = await _started(_engine(questions=questions))

    for _ in range(2):
        await _answer(engine)
        await engine.next_question()

    await engine.start_answer()
    await engine.sequencer.tick()
    await engine.sequencer.tick()

    assert engine.ended
    assert engine.summary.completed_questions == 3
    assert engine.summary.answers[-1].question_id == 3
    await engine.close()


@pytest.mark.asyncio
async def test_focus_loss_before_start_never_reaches_summary():
    engine = await _started(_engine())

    await engine.signals.emit(SIGNAL_VISIBILITY_HIDDEN)
    await engine.signals.emit(SIGNAL_WINDOW_BLUR)
    await _answer(engine)
    await engine.signals.emit(SIGNAL_WINDOW_BLUR)
    await engine.end_interview()

    assert engine.summary.violations == ()
    assert engine.report.communication_score == 75
    await engine.close()


@pytest.mark.asyncio
async def test_end_releases_media_and_unsubscribes():
    engine = await _started(_engine())
    handle = engine.media.handle

    await engine.end_interview()

    assert all(track.stopped for track in handle.tracks)
    assert not engine.monitor.attached
    assert await engine.signals.emit(SIGNAL_VISIBILITY_HIDDEN) == 0
    await engine.close()


@pytest.mark.asyncio
async def test_permission_denied_degrades_without_crashing(events):
    engine = await _started(_engine(device=DenyingDevice(), on_event=events))

    assert engine.sequencer.state.media_enabled.to_dict() == {"video": False, "audio": False}
    assert engine.sequencer.phase == SessionPhase.AWAITING_START
    assert "Camera Access Required" in events.notice_titles()
    assert events.of_type("error")[0]["code"] == "permission_denied"

    with pytest.raises(InvalidTransition):
        await engine.set_track_enabled(TrackKind.VIDEO, False)

    await _answer(engine)
    assert len(engine.sequencer.state.answers) == 1
    await engine.close()


@pytest.mark.asyncio
async def test_track_toggle_and_device_lost(events):
    engine = await _started(_engine(on_event=events))

    assert await engine.set_track_enabled(TrackKind.AUDIO, False) is False
    assert engine.sequencer.state.media_enabled.audio is False
    assert await engine.set_track_enabled(TrackKind.AUDIO, True) is True

    await engine.start_answer()
    await engine.report_track_ended(TrackKind.VIDEO)

    assert engine.sequencer.state.media_enabled.video is False
    assert engine.sequencer.phase == SessionPhase.RECORDING
    assert events.of_type("error")[-1]["code"] == "device_lost"
    await engine.close()


@pytest.mark.asyncio
async def test_pending_capture_resolved_after_end_is_dropped():
    device = PendingCaptureDevice()
    engine = _engine(device=device)
    await engine.start()
    await device.requested.wait()

    await engine.end_interview()
    handle = device.grant()
    await engine._acquire_task

    assert engine.media.handle is None
    assert all(track.stopped for track in handle.tracks)
    assert engine.sequencer.state.media_enabled.to_dict() == {"video": False, "audio": False}
    await engine.close()


@pytest.mark.asyncio
async def test_close_with_pending_capture_abandons_cleanly():
    device = PendingCaptureDevice()
    engine = _engine(device=device)
    await engine.start()
    await device.requested.wait()

    await engine.close()
    await engine.close()

    assert engine.ended
    assert engine.sequencer.end_reason == END_ABANDONED
    assert engine.summary.completed_questions == 0


@pytest.mark.asyncio
async def test_persistence_failure_does_not_reopen_session():
    failures_before = get_metric("results_persist_failures")
    engine = await _started(_engine(results_store=FailingStore()))

    await _answer(engine)
    await engine.end_interview()
    await asyncio.gather(*list(engine._background_tasks), return_exceptions=True)

    assert engine.ended
    assert engine.media.released
    assert get_metric("results_persist_failures") == failures_before + 1
    with pytest.raises(InvalidTransition):
        await engine.start_answer()
    await engine.close()


@pytest.mark.asyncio
async def test_results_payload_and_ended_fires_once(events):
    engine = await _started(_engine(on_event=events))
    assert engine.results_payload() is None

    await _answer(engine)
    await engine.end_interview()
    await engine.close()

    results = events.of_type("results")
    assert len(results) == 1
    payload = results[0]
    assert payload["summary"]["completed_questions"] == 1
    assert payload["report"]["technical_score"] == 80
    assert payload["candidate"]["candidate_name"] == "Ada Lovelace"


@pytest.mark.asyncio
async def test_start_twice_is_rejected():
    engine = await _started(_engine())
    with pytest.raises(InvalidTransition):
        await engine.start()
    await engine.close()

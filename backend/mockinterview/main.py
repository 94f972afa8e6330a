from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import logging

from mockinterview.api import ws_interview
from mockinterview.api.ws_interview import router as interview_ws_router
from mockinterview.interview.questions import format_time, load_questions
from mockinterview.interview.scorer import FixedTechnicalScorer, calculate_score_report
from mockinterview.interview.models import SessionSummary
from mockinterview.schemas import (
    QuestionResponse,
    ResultListItem,
    ScoreReportResponse,
    ScoreRequest,
    SessionResultResponse,
    SessionSummaryPayload,
)
from mockinterview.session.registry import session_registry
from mockinterview.system_metrics import get_metrics_snapshot
from core.config import QA_MODE, SESSION_CLEANUP_INTERVAL_SEC, SESSION_CLEANUP_TTL_SEC, get_allowed_origins

app = FastAPI(title="Mock Interview Session Engine")
logger = logging.getLogger("mockinterview.main")

_allowed_origins = get_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(interview_ws_router)

_session_cleanup_task: asyncio.Task | None = None


def _summary_from_record(data: dict) -> SessionSummary:
    return SessionSummaryPayload.model_validate(data).to_summary()


@app.on_event("startup")
async def startup_banner():
    global _session_cleanup_task
    if QA_MODE:
        logger.info("[SYSTEM] QA_MODE ENABLED: virtual capture device active")
    logger.info("[SYSTEM] CORS allow_origins=%s", _allowed_origins)

    async def _session_cleanup_loop():
        while True:
            await asyncio.sleep(SESSION_CLEANUP_INTERVAL_SEC)
            removed = session_registry.cleanup_disconnected(SESSION_CLEANUP_TTL_SEC)
            if removed > 0:
                logger.info("[SYSTEM] cleaned inactive sessions=%s", removed)

    _session_cleanup_task = asyncio.create_task(_session_cleanup_loop())


@app.on_event("shutdown")
async def shutdown_handler():
    global _session_cleanup_task
    if _session_cleanup_task is not None:
        _session_cleanup_task.cancel()
        try:
            await _session_cleanup_task
        except asyncio.CancelledError:
            pass
        finally:
            _session_cleanup_task = None
    logger.info("[SYSTEM] shutdown complete")


@app.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "interview-engine"}


@app.get("/api/interview/questions", response_model=list[QuestionResponse])
def list_questions(job_role: str | None = None):
    return [
        QuestionResponse(
            id=question.id,
            text=question.text,
            time_limit_seconds=question.time_limit_seconds,
            time_limit_display=format_time(question.time_limit_seconds),
        )
        for question in load_questions(job_role)
    ]


@app.post("/api/interview/score", response_model=ScoreReportResponse)
def score_summary(req: ScoreRequest):
    if req.summary.completed_questions > req.summary.total_questions:
        raise HTTPException(status_code=400, detail="completed_questions cannot exceed total_questions")
    report = calculate_score_report(req.summary.to_summary())
    return report.to_dict()


@app.get("/api/interview/results", response_model=list[ResultListItem])
def list_results(limit: int = 50):
    rows = ws_interview.results_store.list_results(limit=limit)
    return [
        {
            "session_id": row["session_id"],
            "candidate_name": (row.get("candidate") or {}).get("candidate_name", ""),
            "job_role": (row.get("candidate") or {}).get("job_role", ""),
            "end_reason": row.get("end_reason"),
            "completed_questions": (row.get("summary") or {}).get("completed_questions", 0),
            "total_questions": (row.get("summary") or {}).get("total_questions", 0),
            "saved_at": row.get("saved_at"),
        }
        for row in reversed(rows)
    ]


@app.get("/api/interview/results/{session_id}", response_model=SessionResultResponse)
def get_result(session_id: str):
    live = session_registry.results_for(session_id)
    if live is not None:
        payload, connected = live
        return {
            "session_id": session_id,
            "live": connected,
            "candidate": payload["candidate"],
            "end_reason": payload["end_reason"],
            "summary": payload["summary"],
            "report": payload["report"],
        }

    stored = ws_interview.results_store.get_result(session_id)
    if not stored:
        raise HTTPException(status_code=404, detail="No results for this session")

    try:
        summary = _summary_from_record(stored.get("summary") or {})
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=f"Stored result is unreadable: {exc}")

    # the report is derived from the summary on every read; only the technical score is pinned
    technical_score = stored.get("technical_score")
    scorer = FixedTechnicalScorer(technical_score) if isinstance(technical_score, int) else None
    report = calculate_score_report(summary, scorer)
    return {
        "session_id": session_id,
        "live": False,
        "candidate": stored.get("candidate"),
        "end_reason": stored.get("end_reason"),
        "summary": summary.to_dict(),
        "report": report.to_dict(),
    }


@app.get("/api/metrics")
def metrics():
    return get_metrics_snapshot({"sessions_live": session_registry.connected_count()})

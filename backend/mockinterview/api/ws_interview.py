from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import asyncio
import json
import logging

from starlette.websockets import WebSocketState

from core.config import QA_MODE, QUESTION_TICK_INTERVAL_SEC, WS_MAX_TEXT_BYTES
from core.logger import log_event
from mockinterview.interview.engine import InterviewSessionEngine
from mockinterview.interview.errors import InterviewError, InvalidTransition
from mockinterview.interview.integrity import SIGNAL_VISIBILITY_HIDDEN, SIGNAL_WINDOW_BLUR
from mockinterview.interview.media import BrowserCaptureDevice, CaptureDevice, VirtualCaptureDevice
from mockinterview.interview.models import TrackKind
from mockinterview.results.store import InMemoryResultsStore, ResultsStore, build_results_store
from mockinterview.session.context import SessionContext
from mockinterview.session.registry import session_registry
from mockinterview.system_metrics import decrement_metric, increment_metric

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger("ws_interview")

SENDER_FLUSH_TIMEOUT_SEC = 2.0

router = APIRouter()

try:
    results_store: ResultsStore = build_results_store()
    logger.info("Results store initialized: %s", results_store.__class__.__name__)
except Exception as results_store_exc:
    results_store = InMemoryResultsStore()
    logger.warning(
        "Results store fallback to InMemoryResultsStore due to init error: %s",
        results_store_exc,
    )


class InterviewDependencyProvider:
    def create_capture_device(self, send_fn) -> CaptureDevice:
        if QA_MODE:
            return VirtualCaptureDevice()
        return BrowserCaptureDevice(send_fn)

    def create_engine(self, context: SessionContext, device: CaptureDevice, send_fn) -> InterviewSessionEngine:
        return InterviewSessionEngine(
            context,
            device,
            results_store=results_store,
            tick_interval_sec=QUESTION_TICK_INTERVAL_SEC,
            on_event=send_fn,
        )


dependency_provider = InterviewDependencyProvider()


async def _drain_outbox(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    # single writer per socket keeps frames in emit order
    while True:
        payload = await outbox.get()
        if payload is None:
            return
        if websocket.client_state != WebSocketState.CONNECTED:
            continue
        try:
            await websocket.send_text(json.dumps(payload, ensure_ascii=False, default=str))
        except Exception as exc:
            logger.debug("Send failed, stopping sender: %s", exc)
            return


def _parse_message(raw: str) -> dict:
    if len(raw.encode("utf-8")) > WS_MAX_TEXT_BYTES:
        raise ValueError("Message too large")
    message = json.loads(raw)
    if not isinstance(message, dict):
        raise ValueError("Message must be a JSON object")
    return message


async def _dispatch(engine: InterviewSessionEngine, device: CaptureDevice, message: dict, send_fn) -> None:
    message_type = str(message.get("type") or "").strip().lower()

    if message_type == "start_answer":
        await engine.start_answer()
    elif message_type == "stop_answer":
        await engine.stop_answer()
    elif message_type == "next_question":
        await engine.next_question()
    elif message_type == "end_interview":
        await engine.end_interview()
    elif message_type == SIGNAL_VISIBILITY_HIDDEN:
        await engine.signals.emit(SIGNAL_VISIBILITY_HIDDEN)
    elif message_type == SIGNAL_WINDOW_BLUR:
        await engine.signals.emit(SIGNAL_WINDOW_BLUR)
    elif message_type == "media_granted":
        if isinstance(device, BrowserCaptureDevice):
            device.resolve_granted(message.get("tracks"))
    elif message_type == "media_denied":
        if isinstance(device, BrowserCaptureDevice):
            device.resolve_denied(str(message.get("reason") or "") or None)
    elif message_type == "track_ended":
        await engine.report_track_ended(TrackKind(str(message.get("kind") or "")))
    elif message_type == "set_track":
        await engine.set_track_enabled(TrackKind(str(message.get("kind") or "")), bool(message.get("enabled")))
    elif message_type == "state":
        payload = {"type": "state"}
        payload.update(engine.snapshot())
        send_fn(payload)
    elif message_type == "ping":
        send_fn({"type": "pong"})
    else:
        raise ValueError(f"Unknown message type: {message_type or '<empty>'}")


@router.websocket("/ws/interview")
async def interview_socket(websocket: WebSocket):
    await websocket.accept()

    context = SessionContext.from_mapping(dict(websocket.query_params))
    if not context.candidate_name:
        await websocket.send_text(json.dumps({
            "type": "error",
            "code": "missing_candidate",
            "message": "Candidate details are required before starting the interview",
        }))
        await websocket.close(code=4400)
        return

    outbox: asyncio.Queue = asyncio.Queue()
    send_fn = outbox.put_nowait
    device = dependency_provider.create_capture_device(send_fn)
    engine = dependency_provider.create_engine(context, device, send_fn)
    session_id = engine.session_id

    if not session_registry.register(session_id, engine):
        await websocket.send_text(json.dumps({
            "type": "error",
            "code": "session_in_use",
            "message": "This interview session is already open elsewhere",
        }))
        await websocket.close(code=4409)
        return

    increment_metric("ws_connections_active")
    sender_task = asyncio.create_task(_drain_outbox(websocket, outbox))
    log_event("ws_interview", "connected", session_id, job_role=context.job_role)

    try:
        await engine.start()
        while True:
            msg = await websocket.receive()
            if msg["type"] == "websocket.disconnect":
                log_event("ws_interview", "client_disconnected", session_id)
                break
            session_registry.touch(session_id)

            try:
                if msg.get("text") is None:
                    raise ValueError("Binary frames are not supported")
                message = _parse_message(msg["text"])
                await _dispatch(engine, device, message, send_fn)
            except InterviewError as exc:
                if isinstance(exc, InvalidTransition):
                    increment_metric("invalid_transitions")
                send_fn(exc.to_payload())
            except ValueError as exc:
                send_fn({"type": "error", "code": "bad_message", "message": str(exc)})
            except Exception:
                logger.exception("Unhandled interview error | session_id=%s", session_id)
                send_fn({
                    "type": "error",
                    "code": "internal_error",
                    "message": "Something went wrong. Your progress is safe.",
                })
    except WebSocketDisconnect:
        log_event("ws_interview", "client_disconnected", session_id)
    finally:
        await engine.close()
        session_registry.mark_disconnected(session_id, engine)
        decrement_metric("ws_connections_active")
        increment_metric("ws_disconnects_total")

        outbox.put_nowait(None)
        try:
            await asyncio.wait_for(sender_task, timeout=SENDER_FLUSH_TIMEOUT_SEC)
        except asyncio.TimeoutError:
            sender_task.cancel()
        log_event("ws_interview", "closed", session_id, end_reason=engine.sequencer.end_reason)

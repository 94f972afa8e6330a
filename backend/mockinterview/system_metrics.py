import threading
import time
from typing import Any


_lock = threading.Lock()
_metrics: dict[str, float] = {
    "ws_connections_active": 0.0,
    "ws_disconnects_total": 0.0,
    "sessions_started": 0.0,
    "sessions_completed": 0.0,
    "sessions_ended_early": 0.0,
    "sessions_abandoned": 0.0,
    "answers_recorded": 0.0,
    "answers_timed_out": 0.0,
    "answer_duration_total_sec": 0.0,
    "violations_recorded": 0.0,
    "media_permission_denied": 0.0,
    "media_devices_lost": 0.0,
    "results_persisted": 0.0,
    "results_persist_failures": 0.0,
    "invalid_transitions": 0.0,
}

_SESSION_END_KEYS = {
    "completed": "sessions_completed",
    "ended_by_candidate": "sessions_ended_early",
    "abandoned": "sessions_abandoned",
}


def increment_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = float(_metrics.get(key, 0.0)) + float(amount)


def decrement_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = max(0.0, float(_metrics.get(key, 0.0)) - float(amount))


def get_metric(name: str) -> float:
    with _lock:
        return float(_metrics.get(str(name or "").strip(), 0.0))


def observe_answer(elapsed_seconds: float, timed_out: bool = False) -> None:
    elapsed = max(0.0, float(elapsed_seconds or 0.0))
    with _lock:
        _metrics["answers_recorded"] = float(_metrics.get("answers_recorded", 0.0)) + 1.0
        _metrics["answer_duration_total_sec"] = float(_metrics.get("answer_duration_total_sec", 0.0)) + elapsed
        if timed_out:
            _metrics["answers_timed_out"] = float(_metrics.get("answers_timed_out", 0.0)) + 1.0


def record_session_ended(reason: str) -> None:
    normalized = str(reason or "").strip().lower()
    metric_key = _SESSION_END_KEYS.get(normalized, "sessions_ended_early")
    with _lock:
        _metrics[metric_key] = float(_metrics.get(metric_key, 0.0)) + 1.0


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        data = dict(_metrics)

    answer_samples = max(1.0, float(data.get("answers_recorded") or 0.0))
    started = max(1.0, float(data.get("sessions_started") or 0.0))

    payload: dict[str, Any] = {"generated_at": time.time()}
    payload.update({
        key: int(value)
        for key, value in data.items()
        if key != "answer_duration_total_sec"
    })
    payload["answer_duration_total_sec"] = float(data.get("answer_duration_total_sec") or 0.0)
    payload["avg_answer_duration_sec"] = round(float(data.get("answer_duration_total_sec") or 0.0) / answer_samples, 4)
    payload["completion_ratio"] = round(float(data.get("sessions_completed") or 0.0) / started, 4)
    if extra:
        payload.update(extra)
    return payload

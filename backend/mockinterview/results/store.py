from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from core.config import RESULTS_STORE_ENABLED, RESULTS_STORE_PATH

logger = logging.getLogger("results.store")


class ResultsStore(Protocol):
    def save_result(self, session_id: str, payload: dict[str, Any]) -> None:
        ...

    def get_result(self, session_id: str) -> dict[str, Any] | None:
        ...

    def list_results(self, limit: int = 50) -> list[dict[str, Any]]:
        ...


class InMemoryResultsStore:
    def __init__(self):
        self._lock = Lock()
        self._results_by_session_id: dict[str, dict[str, Any]] = {}

    def save_result(self, session_id: str, payload: dict[str, Any]) -> None:
        sid = str(session_id or "").strip()
        if not sid:
            return
        with self._lock:
            self._results_by_session_id[sid] = dict(payload or {})

    def get_result(self, session_id: str) -> dict[str, Any] | None:
        sid = str(session_id or "").strip()
        if not sid:
            return None
        with self._lock:
            data = self._results_by_session_id.get(sid)
            return dict(data) if isinstance(data, dict) else None

    def list_results(self, limit: int = 50) -> list[dict[str, Any]]:
        capped = max(1, min(int(limit or 50), 200))
        with self._lock:
            rows = [dict(item, session_id=sid) for sid, item in self._results_by_session_id.items()]
        rows.sort(key=lambda item: float(item.get("saved_at") or 0.0))
        return rows[-capped:]


class JsonResultsStore(InMemoryResultsStore):
    """
    Best-effort JSON file keyed by session id. Writes go through a temp
    file and an atomic replace.
    """

    def __init__(self, path: Path):
        super().__init__()
        self._path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as exc:
            logger.warning("Results store unreadable, starting empty | path=%s error=%s", self._path, exc)
            return
        if isinstance(payload, dict):
            self._results_by_session_id = {
                str(key): value
                for key, value in payload.items()
                if isinstance(key, str) and isinstance(value, dict)
            }

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(self._results_by_session_id, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(self._path)

    def save_result(self, session_id: str, payload: dict[str, Any]) -> None:
        sid = str(session_id or "").strip()
        if not sid:
            return
        with self._lock:
            self._results_by_session_id[sid] = dict(payload or {})
            self._persist()


def build_results_store() -> ResultsStore:
    if not RESULTS_STORE_ENABLED:
        return InMemoryResultsStore()
    return JsonResultsStore(RESULTS_STORE_PATH)

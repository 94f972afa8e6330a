import json
import logging
from enum import Enum
from typing import Any

logger = logging.getLogger("interview.events")

# candidate PII and anything the candidate or UI typed
_REDACTED_KEYS = {"candidate_name", "name", "email", "text", "question_text", "description"}
_MAX_VALUE_CHARS = 200


def _sanitize_value(key: str, value: Any) -> Any:
	normalized_key = str(key or "").lower()
	if normalized_key in _REDACTED_KEYS:
		return {"redacted": True, "length": len(str(value or ""))}
	if isinstance(value, Enum):
		return value.value
	if isinstance(value, (int, float, bool)) or value is None:
		return value
	if isinstance(value, dict):
		return {str(k): _sanitize_value(str(k), v) for k, v in value.items()}
	if isinstance(value, (list, tuple, set)):
		return [_sanitize_value(normalized_key, item) for item in value]
	text = str(value)
	if len(text) > _MAX_VALUE_CHARS:
		return text[:_MAX_VALUE_CHARS] + "..."
	return text


def log_event(component: str, event: str, session_id: str, level: int = logging.INFO, **kwargs) -> None:
	payload = {
		"component": str(component or "interview"),
		"event": str(event or "unknown"),
		"session_id": str(session_id or ""),
	}
	payload.update({str(k): _sanitize_value(str(k), v) for k, v in kwargs.items()})
	logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))

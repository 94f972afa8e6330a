import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)


def _env_flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).strip().lower() in {"1", "true", "yes", "on"}


QA_MODE = _env_flag("QA_MODE")

QUESTION_TICK_INTERVAL_SEC = max(0.01, float(os.getenv("QUESTION_TICK_INTERVAL_SEC", "1.0")))
MEDIA_ACQUIRE_TIMEOUT_SEC = max(1.0, float(os.getenv("MEDIA_ACQUIRE_TIMEOUT_SEC", "30")))

RESULTS_STORE_ENABLED = _env_flag("RESULTS_STORE_ENABLED", "true")
RESULTS_STORE_PATH = Path(
    str(os.getenv("RESULTS_STORE_PATH") or "").strip()
    or (_BACKEND_ROOT / "data" / "interview_results.json")
)

SESSION_CLEANUP_TTL_SEC = max(60, int(os.getenv("SESSION_CLEANUP_TTL_SEC", "1800")))
SESSION_CLEANUP_INTERVAL_SEC = max(30, int(os.getenv("SESSION_CLEANUP_INTERVAL_SEC", "120")))

WS_MAX_TEXT_BYTES = max(1024, int(os.getenv("WS_MAX_TEXT_BYTES", "16384")))


def get_allowed_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    return [item.strip() for item in raw.split(",") if item.strip()]

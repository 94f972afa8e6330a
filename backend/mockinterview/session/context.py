from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SessionContext:
    """
    Who the session is for. Supplied by the identity/profile store and
    passed into the engine explicitly; values are opaque display strings.
    """
    candidate_name: str
    job_role: str = ""
    email: str = ""
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: float = field(default_factory=time.time)

    @classmethod
    def from_mapping(cls, data: dict | None) -> "SessionContext":
        raw = dict(data or {})
        kwargs = {
            "candidate_name": str(raw.get("candidate_name") or raw.get("name") or "").strip(),
            "job_role": str(raw.get("job_role") or raw.get("jobRole") or "").strip(),
            "email": str(raw.get("email") or "").strip(),
        }
        # session ids are always minted here, never taken from the client
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "candidate_name": self.candidate_name,
            "job_role": self.job_role,
            "email": self.email,
            "started_at": self.started_at,
        }

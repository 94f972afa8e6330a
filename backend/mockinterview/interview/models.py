from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from mockinterview.interview.rules import round_half_up, score_tone


class ViolationKind(str, Enum):
    TAB_HIDDEN = "tab_hidden"
    WINDOW_BLUR = "window_blur"


class TrackKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


class ScoreBand(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    NEEDS_IMPROVEMENT = "Needs Improvement"


ANSWER_STOPPED = "stopped"
ANSWER_TIME_UP = "time_up"


@dataclass(frozen=True)
class IntegrityViolation:
    """
    One recorded focus-loss signal. `sequence` is the append order and
    stands in for a timestamp.
    """
    kind: ViolationKind
    question_index: int
    sequence: int

    @property
    def label(self) -> str:
        number = self.question_index + 1
        if self.kind == ViolationKind.TAB_HIDDEN:
            return f"Tab switched at question {number}"
        return f"Window lost focus at question {number}"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "question_index": self.question_index,
            "sequence": self.sequence,
            "label": self.label,
        }


@dataclass(frozen=True)
class AnswerRecord:
    question_id: int
    question_index: int
    reason: str
    elapsed_seconds: int

    @property
    def label(self) -> str:
        return f"Answer to question {self.question_index + 1}"

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "question_index": self.question_index,
            "reason": self.reason,
            "elapsed_seconds": self.elapsed_seconds,
            "label": self.label,
        }


@dataclass
class MediaEnabled:
    video: bool = False
    audio: bool = False

    def to_dict(self) -> dict:
        return {"video": self.video, "audio": self.audio}


@dataclass(frozen=True)
class SessionSummary:
    answers: tuple[AnswerRecord, ...] = field(default_factory=tuple)
    violations: tuple[IntegrityViolation, ...] = field(default_factory=tuple)
    completed_questions: int = 0
    total_questions: int = 0

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    def to_dict(self) -> dict:
        return {
            "answers": [item.to_dict() for item in self.answers],
            "violations": [item.to_dict() for item in self.violations],
            "completed_questions": self.completed_questions,
            "total_questions": self.total_questions,
        }


@dataclass(frozen=True)
class ScoreReport:
    completion_rate: float
    communication_score: int
    technical_score: int
    overall_score: int
    band: ScoreBand

    @property
    def completion_display(self) -> int:
        return round_half_up(self.completion_rate)

    def to_dict(self) -> dict:
        return {
            "completion_rate": self.completion_rate,
            "completion_display": self.completion_display,
            "communication_score": self.communication_score,
            "technical_score": self.technical_score,
            "overall_score": self.overall_score,
            "band": self.band.value,
            "tones": {
                "completion": score_tone(self.completion_rate),
                "communication": score_tone(self.communication_score),
                "technical": score_tone(self.technical_score),
                "overall": score_tone(self.overall_score),
            },
        }

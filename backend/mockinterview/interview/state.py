from typing import List

from core.state import SessionPhase
from .models import AnswerRecord, IntegrityViolation, MediaEnabled
from .questions import Question


class SessionState:
    """
    Mutable state for ONE candidate's session.
    Only the sequencer writes to it.
    """

    def __init__(self, questions: tuple[Question, ...]):
        self.questions: tuple[Question, ...] = tuple(questions)

        self.phase: SessionPhase = SessionPhase.IDLE
        self.current_question_index: int = 0
        self.recording: bool = False
        self.time_left_seconds: int = self.questions[0].time_limit_seconds if self.questions else 0

        self.answers: List[AnswerRecord] = []
        self.violations: List[IntegrityViolation] = []
        self.media_enabled: MediaEnabled = MediaEnabled()

    # -------------------------
    # READ HELPERS
    # -------------------------

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_question_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_question_index >= self.total_questions - 1

    def has_answer_for_current(self) -> bool:
        return any(item.question_index == self.current_question_index for item in self.answers)

    def progress_percent(self) -> float:
        if not self.total_questions:
            return 0.0
        done = self.current_question_index + (1 if self.recording else 0)
        return (done / self.total_questions) * 100

    def snapshot(self) -> dict:
        question = self.current_question
        return {
            "phase": self.phase.value,
            "current_question_index": self.current_question_index,
            "question": question.to_dict(),
            "total_questions": self.total_questions,
            "recording": self.recording,
            "time_left_seconds": self.time_left_seconds,
            "answers": len(self.answers),
            "can_advance": self.phase == SessionPhase.AWAITING_NEXT and self.has_answer_for_current(),
            "is_last_question": self.is_last_question,
            "violations": [item.label for item in self.violations],
            "media_enabled": self.media_enabled.to_dict(),
            "progress_percent": round(self.progress_percent(), 2),
        }

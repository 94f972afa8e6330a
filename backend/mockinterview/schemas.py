from pydantic import BaseModel, Field

from mockinterview.interview.models import AnswerRecord, IntegrityViolation, SessionSummary, ViolationKind


class QuestionResponse(BaseModel):
    id: int
    text: str
    time_limit_seconds: int
    time_limit_display: str


class AnswerRecordPayload(BaseModel):
    question_id: int = Field(ge=1)
    question_index: int = Field(ge=0)
    reason: str = "stopped"
    elapsed_seconds: int = Field(default=0, ge=0)


class ViolationPayload(BaseModel):
    kind: ViolationKind
    question_index: int = Field(ge=0)
    sequence: int = Field(default=0, ge=0)


class SessionSummaryPayload(BaseModel):
    answers: list[AnswerRecordPayload] = []
    violations: list[ViolationPayload] = []
    completed_questions: int = Field(ge=0)
    total_questions: int = Field(ge=1)

    def to_summary(self) -> SessionSummary:
        return SessionSummary(
            answers=tuple(
                AnswerRecord(
                    question_id=item.question_id,
                    question_index=item.question_index,
                    reason=item.reason,
                    elapsed_seconds=item.elapsed_seconds,
                )
                for item in self.answers
            ),
            violations=tuple(
                IntegrityViolation(
                    kind=item.kind,
                    question_index=item.question_index,
                    sequence=item.sequence,
                )
                for item in self.violations
            ),
            completed_questions=self.completed_questions,
            total_questions=self.total_questions,
        )


class ScoreRequest(BaseModel):
    summary: SessionSummaryPayload


class ScoreReportResponse(BaseModel):
    completion_rate: float
    completion_display: int
    communication_score: int
    technical_score: int
    overall_score: int
    band: str
    tones: dict[str, str]


class SessionResultResponse(BaseModel):
    session_id: str
    live: bool
    candidate: dict | None = None
    end_reason: str | None = None
    summary: dict
    report: ScoreReportResponse


class ResultListItem(BaseModel):
    session_id: str
    candidate_name: str = ""
    job_role: str = ""
    end_reason: str | None = None
    completed_questions: int = 0
    total_questions: int = 0
    saved_at: float | None = None

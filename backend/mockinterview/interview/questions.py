from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Question:
    id: int
    text: str
    time_limit_seconds: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "time_limit_seconds": self.time_limit_seconds,
        }


# Same set for every role for now; the job role only labels the session.
DEFAULT_QUESTIONS: tuple[Question, ...] = (
    Question(
        id=1,
        text="Tell me about yourself and why you're interested in this position.",
        time_limit_seconds=120,
    ),
    Question(
        id=2,
        text="Describe a challenging project you've worked on and how you overcame the obstacles.",
        time_limit_seconds=90,
    ),
    Question(
        id=3,
        text="How do you stay updated with the latest technologies in your field?",
        time_limit_seconds=60,
    ),
    Question(
        id=4,
        text="Where do you see yourself in 5 years?",
        time_limit_seconds=60,
    ),
)


def validate_questions(questions) -> tuple[Question, ...]:
    items = tuple(questions or ())
    if not items:
        raise ValueError("An interview needs at least one question")

    for position, question in enumerate(items, start=1):
        if not isinstance(question, Question):
            raise ValueError(f"Item {position} is not a Question")
        if question.id != position:
            raise ValueError(f"Question ids must be 1-based and in order (expected {position}, got {question.id})")
        if int(question.time_limit_seconds) <= 0:
            raise ValueError(f"Question {question.id} needs a positive time limit")

    return items


def load_questions(job_role: str | None = None) -> tuple[Question, ...]:
    return validate_questions(DEFAULT_QUESTIONS)


def format_time(seconds: int) -> str:
    value = max(0, int(seconds or 0))
    mins, secs = divmod(value, 60)
    return f"{mins}:{secs:02d}"

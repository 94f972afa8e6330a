from .models import SessionSummary
from .state import SessionState


def build_session_summary(state: SessionState) -> SessionSummary:
    """
    Freeze the end-of-session view. Only answers that were actually
    recorded count as completed.
    """
    total = state.total_questions
    reached = min(state.current_question_index + 1, total)
    completed = max(0, min(reached, len(state.answers)))

    return SessionSummary(
        answers=tuple(state.answers),
        violations=tuple(state.violations),
        completed_questions=completed,
        total_questions=total,
    )

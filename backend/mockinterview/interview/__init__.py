from mockinterview.interview.engine import InterviewSessionEngine
from mockinterview.interview.errors import DeviceLost, InterviewError, InvalidTransition, PermissionDenied
from mockinterview.interview.models import ScoreBand, ScoreReport, SessionSummary, TrackKind, ViolationKind
from mockinterview.interview.questions import DEFAULT_QUESTIONS, Question
from mockinterview.interview.scorer import FixedTechnicalScorer, RandomTechnicalScorer, ScoreCalculator, calculate_score_report

__all__ = [
    "DEFAULT_QUESTIONS",
    "DeviceLost",
    "FixedTechnicalScorer",
    "InterviewError",
    "InterviewSessionEngine",
    "InvalidTransition",
    "PermissionDenied",
    "Question",
    "RandomTechnicalScorer",
    "ScoreBand",
    "ScoreCalculator",
    "ScoreReport",
    "SessionSummary",
    "TrackKind",
    "ViolationKind",
    "calculate_score_report",
]

from __future__ import annotations

import random
from typing import Protocol

from .models import ScoreBand, ScoreReport, SessionSummary
from . import rules


class TechnicalScorer(Protocol):
    def score(self, summary: SessionSummary) -> int:
        ...


class RandomTechnicalScorer:
    """Placeholder for content grading: uniform integer in [75, 94]."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def score(self, summary: SessionSummary) -> int:
        return self._rng.randint(rules.TECHNICAL_MIN, rules.TECHNICAL_MAX)


class FixedTechnicalScorer:
    def __init__(self, value: int):
        self.value = int(value)

    def score(self, summary: SessionSummary) -> int:
        return self.value


def completion_rate(completed_questions: int, total_questions: int) -> float:
    total = int(total_questions or 0)
    if total <= 0:
        return 0.0
    completed = max(0, min(int(completed_questions or 0), total))
    return (completed / total) * 100


def communication_score(violation_count: int) -> int:
    penalty = rules.COMMUNICATION_PENALTY_PER_VIOLATION * max(0, int(violation_count or 0))
    return max(rules.COMMUNICATION_BASELINE - penalty, rules.COMMUNICATION_FLOOR)


def score_band(overall_score: float) -> ScoreBand:
    if overall_score >= rules.EXCELLENT_THRESHOLD:
        return ScoreBand.EXCELLENT
    if overall_score >= rules.GOOD_THRESHOLD:
        return ScoreBand.GOOD
    return ScoreBand.NEEDS_IMPROVEMENT


def calculate_score_report(summary: SessionSummary, technical_scorer: TechnicalScorer | None = None) -> ScoreReport:
    scorer = technical_scorer or RandomTechnicalScorer()

    completion = completion_rate(summary.completed_questions, summary.total_questions)
    communication = communication_score(summary.violation_count)
    technical = int(scorer.score(summary))
    overall = rules.round_half_up((completion + communication + technical) / 3)

    return ScoreReport(
        completion_rate=completion,
        communication_score=communication,
        technical_score=technical,
        overall_score=overall,
        band=score_band(overall),
    )


class ScoreCalculator:
    def __init__(self, technical_scorer: TechnicalScorer | None = None):
        self.technical_scorer = technical_scorer or RandomTechnicalScorer()

    def calculate(self, summary: SessionSummary) -> ScoreReport:
        return calculate_score_report(summary, technical_scorer=self.technical_scorer)

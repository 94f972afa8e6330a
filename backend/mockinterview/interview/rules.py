"""
Scoring constants for the simulated assessment.
The technical component is a placeholder, not a grader.
"""

import math

# Communication
COMMUNICATION_BASELINE = 75
COMMUNICATION_PENALTY_PER_VIOLATION = 10
COMMUNICATION_FLOOR = 20

# Technical placeholder (inclusive)
TECHNICAL_MIN = 75
TECHNICAL_MAX = 94

# Bands / tones
EXCELLENT_THRESHOLD = 80
GOOD_THRESHOLD = 60

TONE_SUCCESS = "success"
TONE_WARNING = "warning"
TONE_DESTRUCTIVE = "destructive"


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; the results page rounds .5 up.
    return int(math.floor(float(value) + 0.5))


def score_tone(score: float) -> str:
    if score >= EXCELLENT_THRESHOLD:
        return TONE_SUCCESS
    if score >= GOOD_THRESHOLD:
        return TONE_WARNING
    return TONE_DESTRUCTIVE

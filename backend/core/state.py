# backend/core/state.py

from enum import Enum

class SessionPhase(str, Enum):
    IDLE = "idle"
    AWAITING_START = "awaiting_start"
    RECORDING = "recording"
    AWAITING_NEXT = "awaiting_next"
    ENDED = "ended"

class InterviewError(Exception):
    """
    Base for failures the engine reports back to the UI shell.
    `message` is short and safe to show to the candidate.
    """

    code = "interview_error"
    default_message = "Something went wrong with the interview session."

    def __init__(self, message: str | None = None):
        self.message = str(message or self.default_message)
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {
            "type": "error",
            "code": self.code,
            "message": self.message,
        }


class PermissionDenied(InterviewError):
    code = "permission_denied"
    default_message = "Please enable camera and microphone to continue"


class DeviceLost(InterviewError):
    code = "device_lost"
    default_message = "A capture device stopped unexpectedly"

    def __init__(self, kind: str, message: str | None = None):
        self.kind = str(kind or "")
        super().__init__(message or f"The {self.kind or 'capture'} device stopped unexpectedly")

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["kind"] = self.kind
        return payload


class InvalidTransition(InterviewError):
    code = "invalid_transition"
    default_message = "That action is not available right now"

    def __init__(self, action: str, phase: str, message: str | None = None):
        self.action = str(action or "")
        self.phase = str(phase or "")
        super().__init__(message or f"Cannot {self.action.replace('_', ' ')} while {self.phase.replace('_', ' ')}")

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["action"] = self.action
        payload["phase"] = self.phase
        return payload

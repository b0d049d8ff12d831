"""
Bracket engine error taxonomy.

Every error carries the identifiers a caller needs to act on it
(match_id, bracket_id, participant_id, event_id). Nothing here is retried
inside the engine; retries belong to the caller.
"""
from typing import Any, Dict, Optional


class BracketEngineError(Exception):
    code = "BRACKET_ENGINE_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        match_id: Optional[int] = None,
        bracket_id: Optional[int] = None,
        participant_id: Optional[int] = None,
        event_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {
            key: value
            for key, value in (
                ("match_id", match_id),
                ("bracket_id", bracket_id),
                ("participant_id", participant_id),
                ("event_id", event_id),
            )
            if value is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": f"{self.code}: {self.message}", "code": self.code, "context": self.context}


class NotFound(BracketEngineError):
    code = "NOT_FOUND"
    status_code = 404


class MissingAttribute(BracketEngineError):
    """Age or weight cannot be computed; the participant must be excluded and reported."""

    code = "MISSING_ATTRIBUTE"
    status_code = 422

    def __init__(self, message: str, attribute: str, **context):
        super().__init__(message, **context)
        self.attribute = attribute
        self.context["attribute"] = attribute


class InvalidTransition(BracketEngineError):
    code = "INVALID_TRANSITION"
    status_code = 409


class InvalidWinner(BracketEngineError):
    code = "INVALID_WINNER"
    status_code = 422


class InsufficientParticipants(BracketEngineError):
    code = "INSUFFICIENT_PARTICIPANTS"
    status_code = 422


class DuplicateDerivation(BracketEngineError):
    """Results already exist for the bracket. Absorbed by every caller."""

    code = "DUPLICATE_DERIVATION"
    status_code = 409

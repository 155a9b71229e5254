"""
Ladder exception hierarchy.

Every error carries a technical message for logs and a short
user_message that can be shown to the member who triggered it.
"""

from typing import Optional


class LadderError(Exception):
    """Base exception for ladder domain errors"""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message


class LadderValidationError(LadderError):
    """Input was malformed or breaks a ladder rule"""
    pass


class StateConflictError(LadderError):
    """The record is not in a state that allows the action"""
    pass


class NotAuthorizedError(StateConflictError):
    """The acting member may not perform this action on this record"""
    pass


class LadderNotFoundError(LadderError):
    """The referenced record no longer exists"""

    entity = "record"

    def __init__(self, entity_id: Optional[int] = None):
        super().__init__(
            f"{self.entity} {entity_id} not found",
            f"This {self.entity} is no longer available."
        )
        self.entity_id = entity_id


class ChallengeNotFoundError(LadderNotFoundError):
    entity = "challenge"


class ResultNotFoundError(LadderNotFoundError):
    entity = "result"


class CorrectionNotFoundError(LadderNotFoundError):
    entity = "correction"

"""
Error taxonomy for ladder operations with user-facing messages.

Every business-rule violation raised by the operations layer is a LadderError;
the service facade turns these into ActionResult values. Anything else is an
unexpected fault.
"""

class LadderError(Exception):
    """Base exception for ladder business-rule violations."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class NotAuthenticatedError(LadderError):
    """Raised when an operation is attempted without a user."""
    def __init__(self):
        super().__init__("No authenticated user", "Not authenticated")

class NotAuthorizedError(LadderError):
    """Raised when a non-admin attempts an admin operation, or a non-participant a participant one."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message, user_message or "You are not authorized to perform this action")

class NotFoundError(LadderError):
    """Raised when a challenge, match, season, bracket or ladder entry is missing."""
    def __init__(self, entity: str, entity_id=None):
        if entity_id is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {entity_id} not found"
        super().__init__(message, f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id

class InvalidStateError(LadderError):
    """Raised when an entity is in the wrong state for the requested transition."""
    pass

class ValidationError(LadderError):
    """Raised when input fails a rule (challenge range, wildcard budget, malformed score)."""
    pass

class ConsistencyError(LadderError):
    """Raised when stored ladder rows contradict the ladder invariants."""
    def __init__(self, message: str):
        super().__init__(message, "The ladder is in an inconsistent state. Please contact an administrator.")

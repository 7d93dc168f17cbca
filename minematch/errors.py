"""Errors raised by the match engine."""


class MatchError(Exception):
    """Base class for rejected engine operations.

    ``code`` is a stable identifier that transport layers relay to clients.
    """
    code = "MatchError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotForming(MatchError):
    code = "NotForming"


class AlreadyFull(MatchError):
    code = "AlreadyFull"


class AlreadyJoined(MatchError):
    code = "AlreadyJoined"


class NotEnoughAgents(MatchError):
    code = "NotEnoughAgents"


class NotActive(MatchError):
    code = "NotActive"


class UnknownAgent(MatchError):
    code = "UnknownAgent"


class AgentEliminated(MatchError):
    code = "AgentEliminated"


class DuplicateSubmission(MatchError):
    code = "DuplicateSubmission"


class OutOfBounds(MatchError):
    code = "OutOfBounds"


class CellAlreadyRevealed(MatchError):
    code = "CellAlreadyRevealed"


class InvalidAction(MatchError):
    code = "InvalidAction"


class SeedWithheld(MatchError):
    code = "SeedWithheld"


class BoardConfigError(MatchError, ValueError):
    """Grid size or bomb count cannot produce a valid board."""
    code = "BoardConfigError"


# Codes the HTTP layer maps to something other than 400.
STATUS_BY_CODE = {
    SeedWithheld.code: 403,
}

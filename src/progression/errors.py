"""
Error taxonomy for the progression engine.

None of these carry transport status codes; the caller maps them.
"""


class TournamentError(Exception):
    """Base class for every error the engine raises on purpose."""


class ValidationError(TournamentError, ValueError):
    """Malformed or inconsistent input (missing field, self-pairing, ...)."""


class CountValidationError(ValidationError):
    """A draw received the wrong number of teams."""

    def __init__(self, message: str, expected: int = None, found: int = None):
        super().__init__(message)
        self.expected = expected
        self.found = found


class ConflictError(TournamentError):
    """Uniqueness violation at the persistence boundary."""


class StateError(TournamentError):
    """Illegal state transition (leg already played, match already finished, ...)."""


class ExhaustionError(TournamentError):
    """The constrained group draw found no valid distribution within its budget."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts

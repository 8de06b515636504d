# errors.py
# Failure taxonomy shared by the store, the match engine and the HTTP layer.


class MatchmakingError(Exception):
    """Base class for every error raised by the matchmaking core."""


class ValidationError(MatchmakingError):
    """Malformed or missing input, detected before any side effect."""


class NotFound(MatchmakingError):
    """The requested user identity is unknown."""


class StorageError(MatchmakingError):
    """The database was unavailable, timed out, or a write failed."""


class NoCandidates(MatchmakingError):
    """A valid user asked for a match but nobody else is registered.

    Not a failure: the HTTP layer reports it as a plain message.
    """

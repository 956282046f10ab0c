"""
Exceptions raised by the tournament engine.

Every error is recoverable: the operation that raised it has left the
tournament unchanged, and ``context`` carries the values needed to re-prompt
the caller (node coordinate, offending scores, tags, counts).
"""


class TournamentError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self):
        return {
            'error': type(self).__name__,
            'message': self.message,
            'context': self.context,
        }


class InvalidEntryCount(TournamentError):
    """Too few participants, duplicate entries, or (Swiss) an odd count."""


class InvalidRoundConfig(TournamentError):
    """Swiss round count outside the allowed bounds."""


class InvalidState(TournamentError):
    """Operation not allowed in the current state of a node or tournament."""


class NoPairingAvailable(InvalidState):
    """No rematch-free Swiss pairing exists for the next round."""


class InvalidResult(TournamentError):
    """Double forfeit, or equal scores without a forfeit."""


class UnsupportedFormat(TournamentError):
    """No format registered for the requested tag."""


class NotFound(TournamentError):
    """Referenced node, match, participant or tournament does not exist."""


class ConfigError(TournamentError):
    """Configuration file holds values the engine cannot use."""


class InvalidRequest(TournamentError):
    """API request body is missing a required field or is not a JSON object."""

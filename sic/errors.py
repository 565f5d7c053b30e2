class SicError(Exception):
    """Base class for everything this package raises on purpose."""


class InvalidRequest(SicError, ValueError):
    """A compression request (or UI action) whose preconditions do not hold."""


class CompressionError(SicError):
    """The encoder could not decode or re-encode the source image."""

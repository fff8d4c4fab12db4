"""Exceptions raised at the caller boundary"""


class DsenseError(Exception):
    """Base class for dsense errors."""


class UnknownProfileError(DsenseError, ValueError):
    """Raised when a detector profile name is not recognised."""

    def __init__(self, profile: str, known: list[str]):
        self.profile = profile
        self.known = known
        super().__init__(f"Unknown detector profile '{profile}'. Expected one of: {', '.join(known)}")


class InvalidRangeError(DsenseError, ValueError):
    """Raised when a changed-line range string cannot be parsed."""

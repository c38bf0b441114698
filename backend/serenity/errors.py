"""Error taxonomy shared by the core services.

Every public operation raises one of these instead of returning a
default value.  The HTTP layer maps them onto status codes in
`serenity.main`.
"""

from __future__ import annotations


class SerenityError(Exception):
    """Base class for all domain errors."""


class AuthError(SerenityError):
    """No authenticated identity was supplied."""


class NotFoundError(SerenityError):
    """The entity is absent or is not owned by the acting user.

    Both cases are reported the same way so callers cannot discover the
    existence of other users' data.
    """


class InvalidStateError(SerenityError):
    """Illegal lifecycle transition, e.g. closing a closed session."""


class InsufficientDataError(SerenityError):
    """Fusion was asked to combine zero observations."""


class PersistenceError(SerenityError):
    """The persistence gateway failed; `cause` holds the original error."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

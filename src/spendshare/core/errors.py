"""Error taxonomy shared by services, the HTTP layer and the CLI."""


class SpendShareError(Exception):
    """Base exception for spendshare."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(SpendShareError):
    """Raised when the caller fails an access predicate."""

    status_code = 403


class NotFound(SpendShareError):
    """Raised when a referenced group, category, invitation or row is absent."""

    status_code = 404


class Conflict(SpendShareError):
    """Raised for duplicate pending invitations and uniqueness violations."""

    status_code = 409


class InvalidInput(SpendShareError):
    """Raised for non-positive amounts and malformed or dangling references."""

    status_code = 422

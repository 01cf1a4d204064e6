"""Error taxonomy for gate pass operations.

Each error carries the HTTP status it is rendered with by ``main.py``.
"""


class GatePassError(Exception):
    """Base class for all gate pass errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BadRequestError(GatePassError):
    """Malformed or missing input."""

    status_code = 400


class UnauthorizedError(GatePassError):
    """Login credentials did not match a user."""

    status_code = 401


class NotFoundError(GatePassError):
    """No request with the given id."""

    status_code = 404


class ConflictError(GatePassError):
    """Invalid state transition: already reviewed or already used.

    Rendered as 400, which is what existing clients expect.
    """

    status_code = 400


class StorageError(GatePassError):
    """The dataset could not be persisted."""

    status_code = 500

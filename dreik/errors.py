"""Application error taxonomy rendered as {"message": ...} responses."""


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class InternalError(AppError):
    """Anything unexpected. The message never carries the underlying cause."""

    status_code = 500

    def __init__(self) -> None:
        super().__init__("internal server error")


INVALID_REQUEST_BODY = "invalid request body"

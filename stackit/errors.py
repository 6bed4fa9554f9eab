class StackItError(Exception):
    """Base error rendered as ``{"error": message}`` with ``status_code``."""

    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(StackItError):
    status_code = 400


class Unauthorized(StackItError):
    status_code = 401


class Forbidden(StackItError):
    # Ownership failures answer 401, same as the token checks
    status_code = 401

    def __init__(self, message='User not authorized'):
        super().__init__(message)


class NotFound(StackItError):
    status_code = 404


class Conflict(StackItError):
    status_code = 409

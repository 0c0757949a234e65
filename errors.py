class UparkError(Exception):
    """Base error carrying a flat message and the HTTP status to report it with."""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(UparkError):
    status_code = 400


class NotFound(UparkError):
    status_code = 404


class InvalidState(UparkError):
    status_code = 400


class AuthError(UparkError):
    status_code = 401


class Forbidden(UparkError):
    status_code = 403

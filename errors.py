"""
API error types

Each error carries the HTTP status it maps to and a message that is safe
to show to clients. main.py registers the handlers that render them.
"""


class ApiError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(ApiError):
    """Malformed or missing input"""
    status_code = 400
    message = "Invalid request"


class ConflictError(ApiError):
    """A unique field already exists"""
    status_code = 409
    message = "Conflict"


class NotFoundError(ApiError):
    status_code = 404
    message = "Not found"


class StoreError(ApiError):
    """Database or connection failure. The message never reaches the client."""
    status_code = 500
    message = "Database operation failed"

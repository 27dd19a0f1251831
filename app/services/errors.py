"""
Error taxonomy shared by the stores, the claim engine and the routers.

Every error carries the HTTP status it maps to and a stable ``code`` that
clients can branch on; ``app.main`` installs the handler that renders them.
"""


class ServiceError(Exception):
    status_code = 500
    code = "service_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"


class Conflict(ServiceError):
    """State changed underneath the caller. Reload and retry at most once."""

    status_code = 409
    code = "conflict"


class InvalidTransition(ServiceError):
    status_code = 400
    code = "invalid_transition"


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class Closed(ServiceError):
    status_code = 409
    code = "closed"


class Unauthorized(ServiceError):
    status_code = 403
    code = "unauthorized"

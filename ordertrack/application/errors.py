"""Service error taxonomy. Every error carries a stable ``code``."""


class ServiceError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(ServiceError):
    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthorizedError(ServiceError):
    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(ServiceError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ServiceError):
    code = "CONFLICT"
    status_code = 409


class SequenceExhaustedError(ConflictError):
    """All 9999 order numbers of a month are taken."""

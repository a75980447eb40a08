"""Application error taxonomy. Every error carries a caller-safe detail message."""


class AppError(Exception):
    status_code = 500
    detail = "An error occurred while processing your request."

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class Unauthorized(AppError):
    status_code = 401
    detail = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    detail = "Access denied"


class NotFound(AppError):
    status_code = 404
    detail = "Not found"


class ValidationError(AppError):
    status_code = 422
    detail = "Invalid input"


class ProcessingError(AppError):
    status_code = 500
    detail = "An error occurred while processing your request."


class PersistenceError(AppError):
    status_code = 500
    detail = "Failed to save changes"

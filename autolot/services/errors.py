"""Error taxonomy for the write pipeline.

Each error carries a machine-readable ``code`` and the HTTP status the API
layer renders it with.
"""


class AutoLotError(Exception):
    status_code = 500
    default_code = "SERVER_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(AutoLotError):
    """Missing/malformed field, bad enum value, unsafe URL, rejected file."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class ConflictError(AutoLotError):
    status_code = 409
    default_code = "CONFLICT"


class NotFoundError(AutoLotError):
    status_code = 404
    default_code = "NOT_FOUND"


class UploadError(AutoLotError):
    """Blob store rejected or failed an upload."""
    status_code = 500
    default_code = "IMAGE_UPLOAD_FAILED"


class ServerError(AutoLotError):
    status_code = 500
    default_code = "SERVER_ERROR"

"""
Error taxonomy for the photo lifecycle.
Every error carries the HTTP status the routers answer with.
"""


class PhotoError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


# Client input errors
class InvalidIdentifier(PhotoError):
    status_code = 400


class UnsupportedMediaType(PhotoError):
    status_code = 415


class PayloadTooLarge(PhotoError):
    status_code = 413


class TooManyFiles(PhotoError):
    status_code = 400


# Not-found errors
class NotFound(PhotoError):
    status_code = 404


class SourceNotFound(NotFound):
    """No temp file to promote."""


# Processing errors
class ImageProcessingError(PhotoError):
    status_code = 422


# Relational errors
class DuplicateRecord(PhotoError):
    status_code = 409


# Access errors
class Forbidden(PhotoError):
    status_code = 403

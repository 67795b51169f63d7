"""Exception types that map directly to HTTP responses.

Anything raised as an ``ImageShareError`` is rendered by a single exception
handler as ``{"success": false, "message": ...}`` with its ``status_code``.
"""


class ImageShareError(Exception):
    """Base class for errors with a client-facing message."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NoImageUploaded(ImageShareError):
    status_code = 400

    def __init__(self, message: str = "No image file uploaded") -> None:
        super().__init__(message)


class InvalidImageType(ImageShareError):
    status_code = 400

    def __init__(self, message: str = "Only image files are allowed!") -> None:
        super().__init__(message)


class ImageTooLarge(ImageShareError):
    status_code = 413

    def __init__(self, message: str = "File too large") -> None:
        super().__init__(message)


class ImageNotFound(ImageShareError):
    status_code = 404


class OriginNotAllowed(ImageShareError):
    status_code = 403

    def __init__(self, origin: str) -> None:
        self.origin = origin
        super().__init__(
            "The CORS policy for this site does not allow access "
            f"from the specified Origin: {origin}"
        )


class ImageSaveFailed(ImageShareError):
    """The insert completed but did not hand back a row id."""

    status_code = 500

    def __init__(self, message: str = "Failed to save image metadata") -> None:
        super().__init__(message)


class DatabaseUnavailable(Exception):
    """The datastore could not be reached or is not connected."""

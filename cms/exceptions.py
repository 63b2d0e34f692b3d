"""
Domain exceptions raised by the service layer.

The router layer maps these to HTTP responses through the exception
handlers registered in ``cms.main``; services never translate them into
status codes themselves.
"""


class ContentNotFoundError(LookupError):
    """The referenced content id does not resolve to a live (non-deleted) row."""

    def __init__(self, content_id: int) -> None:
        super().__init__(f"Content {content_id} not found")
        self.content_id = content_id


class MediaValidationError(ValueError):
    """An uploaded file was rejected by the file store (type, extension or size)."""

    def __init__(self, message: str, field: str = "file") -> None:
        super().__init__(message)
        self.field = field

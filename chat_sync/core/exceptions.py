class ChatSyncError(Exception):
    """Base class for every error raised by the sync engine."""

    default_detail = "Chat sync error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(ChatSyncError):
    """Exception raised when a resource is not found."""

    default_detail = "Resource not found"


class ForbiddenError(ChatSyncError):
    """Exception raised when access is forbidden."""

    default_detail = "Access forbidden"


class UnauthorizedError(ChatSyncError):
    """Exception raised when authentication fails."""

    default_detail = "Unauthorized"


class BadRequestError(ChatSyncError):
    """Exception raised for requests that cannot be served in the current state."""

    default_detail = "Bad request"


class ValidationError(ChatSyncError):
    """Exception raised for validation errors."""

    default_detail = "Validation error"


class StoreError(ChatSyncError):
    """Transport or permission failure reported by the document store."""

    default_detail = "Document store error"


class DocumentNotFoundError(StoreError):
    """Partial update targeted a document that does not exist."""

    default_detail = "Document does not exist"


class UploadError(ChatSyncError):
    """Blob upload did not produce a retrievable URL."""

    default_detail = "Upload failed"

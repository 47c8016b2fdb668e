"""
Error taxonomy for the task board.

Every error carries the HTTP status it maps to, so the API layer can
translate any TaskboardError into a JSON response without a lookup table.
"""


class TaskboardError(Exception):
    """Base class for all task board errors."""
    status_code = 500
    message = "Internal error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.message)
        self.detail = detail or self.message


class ValidationError(TaskboardError):
    """Raised when input fails shape or value validation."""
    status_code = 400
    message = "Invalid input"


class InvalidInputError(ValidationError):
    """Raised when text handed to the extractor is missing or blank."""
    message = "Text content is required"


class NotFoundError(TaskboardError):
    """Raised when an entity does not exist (or belongs to another user)."""
    status_code = 404
    message = "Not found"


class AuthError(TaskboardError):
    """Raised when the session is missing or credentials are wrong."""
    status_code = 401
    message = "Unauthorized"


class ConflictError(TaskboardError):
    """Raised when a unique value is already taken."""
    status_code = 409
    message = "Already exists"


class StorageError(TaskboardError):
    """Raised when the database fails underneath an operation."""
    status_code = 500
    message = "Storage failure"


class ExtractionServiceError(TaskboardError):
    """Raised when the model provider is unreachable or returns garbage."""
    status_code = 500
    message = "Failed to extract tasks"


class ExtractionFormatError(ExtractionServiceError):
    """Raised when the provider answered, but not with the expected JSON shape."""
    message = "Malformed response from model provider"

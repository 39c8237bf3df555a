class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class InvalidTimeFormat(AppError, ValueError):
    """Raised when a wall-clock time string cannot be parsed as HH:MM[:SS]."""
    def __init__(self, value: object):
        super().__init__(
            f"Invalid time format: {value!r} (expected HH:MM 24-hour)",
            status_code=400,
            details={"value": str(value)},
        )

class MissingSchoolContext(AppError):
    """Raised when a triggering record carries no school identifier."""
    def __init__(self, entity_type: str, entity_id: str | None):
        super().__init__(
            f"{entity_type} {entity_id or '<new>'} has no school_id; conflict scan skipped",
            status_code=422,
            details={"entity_type": entity_type, "entity_id": entity_id},
        )

class ContextLoadFailure(AppError):
    """Raised when the scheduling context for a school cannot be loaded."""
    def __init__(self, school_site: str, reason: str):
        super().__init__(
            f"Failed to load scheduling context for {school_site}: {reason}",
            status_code=503,
            details={"school_site": school_site},
        )

class PersistenceWriteFailure(AppError):
    """Raised when a write against the session store fails."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

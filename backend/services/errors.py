class PlanEngineError(Exception):
    """Base class for domain failures surfaced to callers."""


class InvalidInputError(PlanEngineError, ValueError):
    def __init__(self, message: str, errors: dict[str, str] | None = None):
        super().__init__(message)
        self.errors = dict(errors or {})


class RecordTooLargeError(InvalidInputError):
    pass


class NotFoundError(PlanEngineError, LookupError):
    pass


class ConflictError(PlanEngineError):
    pass


class PlanCapExceededError(ConflictError):
    pass


class SchemaMigrationRequiredError(ConflictError):
    pass


class UpstreamServiceError(PlanEngineError):
    pass


class PlanGenerationError(UpstreamServiceError):
    def __init__(self, message: str = "Failed to generate plan. Please try again.", details: str | None = None):
        super().__init__(message)
        self.details = details


class InvalidCredentialsError(PlanEngineError):
    pass

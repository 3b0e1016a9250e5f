"""Domain errors raised by the job orchestrator and translated by the API layer."""


class JobError(Exception):
    """Base class for job pipeline errors. ``message`` is safe to show callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class JobValidationError(JobError):
    pass


class JobNotFoundError(JobError):
    def __init__(self, message: str = "Job not found"):
        super().__init__(message)


class JobAccessDeniedError(JobError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class JobPersistenceError(JobError):
    def __init__(self, message: str = "Failed to create video job"):
        super().__init__(message)

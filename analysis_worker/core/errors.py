"""
Error taxonomy shared by the stores and services.

Every error carries a message that is safe to show to the user as-is and the
HTTP status the API layer should answer with.
"""


class AnalysisWorkerError(Exception):
    """Base class for domain errors with user-facing messages."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AnalysisWorkerError):
    """Malformed input, such as an update with no fields."""

    status_code = 400


class InvalidOperationError(AnalysisWorkerError):
    """Structural violation, such as moving a folder into itself."""

    status_code = 400


class NotFoundError(AnalysisWorkerError):
    status_code = 404


class VersionNotFoundError(NotFoundError):
    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(f"Version {version} not found")


class ConflictError(AnalysisWorkerError):
    status_code = 409


class UpstreamError(AnalysisWorkerError):
    """The external team-membership authority failed."""

    status_code = 502


class InitializationError(AnalysisWorkerError):
    """A service was used before it had a valid organization."""

    status_code = 503

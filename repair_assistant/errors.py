"""Exception hierarchy for the repair assistant.

Import errors are raised before the working case library is touched, so a
failed import always leaves the previous library in place. Service errors are
the final outcome of one analysis invocation, after any retries.
"""

from typing import Optional


class RepairAssistantError(Exception):
    """Base class for every error the assistant reports to the user."""


class ImportFormatError(RepairAssistantError):
    """Unsupported file type or content that cannot be parsed into rows."""


class NoValidRecordsError(RepairAssistantError):
    """The file parsed, but no row carried a usable fault description."""


class InvalidRequestError(RepairAssistantError):
    """A submission that cannot be sent (nothing to analyze, bad attachment)."""


class ServiceCallError(RepairAssistantError):
    """Raw failure of a single outbound call to the analysis service.

    Attributes:
        status_code: HTTP status code, when the service answered.
        status: RPC status name from the error body (e.g. ``UNAVAILABLE``).
        transport: True when the request never got an HTTP answer.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        status: Optional[str] = None,
        transport: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.status = status
        self.transport = transport


class ServiceError(RepairAssistantError):
    """Final failure of an analysis invocation.

    Attributes:
        attempts: Number of attempts made before giving up.
    """

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class AuthorizationError(ServiceError):
    """Missing or rejected API key. Never retried; the user must re-authorize."""


class TransientServiceError(ServiceError):
    """Network or server-side failure that may succeed on a later attempt."""


class MaxRetriesExceededError(TransientServiceError):
    """Every attempt failed with a transient error."""


class UnclassifiedServiceError(ServiceError):
    """Any other service failure. Surfaced immediately without retrying."""

"""Onboarding engine error classes.

Three error kinds cross the engine's seams:

- NetworkError: transport failure or unexpected backend status. Recovered
  locally by auto-save (the change stays dirty until the next edit or flush).
- ValidationError: required fields missing before a step is committed.
  Carries per-field messages and blocks only the "complete this step" action.
- StaleTokenError: authentication expired or missing. Always surfaced to the
  auth collaborator and fatal to the current session; never retried.

StepLockedError is raised by the progress tracker when the UI asks to open a
step that is not yet reachable.

ApplicationLockedError is raised by a step session when the candidate edits or
submits an application that is no longer editable.
"""


class OnboardingError(Exception):
    """Base class for onboarding engine errors.

    Attributes:
        code: Machine-readable error code (e.g., "NETWORK_ERROR").
        message: Human-readable error message.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class NetworkError(OnboardingError):
    """Backend unreachable or returned an unexpected status.

    Attributes:
        status_code: HTTP status when the backend answered, None for
            transport failures (DNS, connection refused, timeout).
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(code="NETWORK_ERROR", message=message)
        self.status_code = status_code


class ValidationError(OnboardingError):
    """Step data failed validation.

    details is a list of {"field": ..., "message": ...} dicts so the UI can
    show each message next to its input.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            details=details,
        )

    @property
    def field_errors(self) -> dict[str, str]:
        """Map of field name to message (first message wins per field)."""
        errors: dict[str, str] = {}
        for item in self.details or []:
            errors.setdefault(str(item.get("field", "")), str(item.get("message", "")))
        return errors


class StaleTokenError(OnboardingError):
    """Authentication token missing, expired, or rejected by the backend."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(code="STALE_TOKEN", message=message)


class StepLockedError(OnboardingError):
    """Navigation to a step that is neither completed nor current."""

    def __init__(self, step: str) -> None:
        super().__init__(
            code="STEP_LOCKED",
            message=f"Step '{step}' is locked until earlier steps are completed",
        )
        self.step = step


class ApplicationLockedError(OnboardingError):
    """Edit or commit attempted on an application that is no longer editable."""

    def __init__(self, status: str) -> None:
        super().__init__(
            code="APPLICATION_LOCKED",
            message=f"Application is {status} and can no longer be edited",
        )
        self.status = status

"""Candidate profile snapshot.

Parsed from GET profile, which wraps the record as {"profile": {...}}. The
record carries the completion flags (camelCase: prescreenCompleted,
identityVerified, ...), the application status, the job the candidate
applied for, and one data blob per step.

Step blobs are kept as plain dicts in the backend's own key spelling. Each
step session hands its blob to the auto-save coordinator unchanged and the
validators read the same keys.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from homecare_onboarding.schemas.prescreen import PrescreenAnswers
from homecare_onboarding.services.completion import CompletionVector
from homecare_onboarding.services.steps import OnboardingStep, parse_step

ApplicationStatus = Literal["draft", "submitted", "under_review", "approved", "rejected"]

_APPLICATION_STATUSES: frozenset[str] = frozenset(
    {"draft", "submitted", "under_review", "approved", "rejected"}
)

# Steps whose blob is stored nested under one profile key
_NESTED_BLOB_KEYS: dict[OnboardingStep, str] = {
    OnboardingStep.PRESCREEN: "prescreenData",
    OnboardingStep.HEALTH_ASSESSMENT: "healthAssessment",
}

# Steps whose blob is assembled from top-level profile keys: (key, empty value)
_FLAT_BLOB_KEYS: dict[OnboardingStep, tuple[tuple[str, Any], ...]] = {
    OnboardingStep.PERSONAL_INFO: (
        ("fullName", ""),
        ("phone", ""),
        ("dateOfBirth", ""),
        ("gender", ""),
        ("address", {}),
        ("emergencyContacts", []),
    ),
    OnboardingStep.IDENTITY_VERIFICATION: (("identityDocuments", []),),
    OnboardingStep.PROFESSIONAL_BACKGROUND: (
        ("experience", []),
        ("education", []),
        ("certifications", []),
    ),
    OnboardingStep.REFERENCES: (("references", []),),
    OnboardingStep.DOCUMENTS: (("documents", []),),
    OnboardingStep.PROFILE_SUBMISSION: (),
}


@dataclass(frozen=True)
class ProfileSnapshot:
    """Read-only view of the candidate's profile record.

    Attributes:
        completion: Completion flags read from the record.
        application_status: Review status; "draft" until submitted.
        job_title: Job the candidate applied for, if recorded.
        base_city: Candidate's base city, if recorded.
        prescreen_result: Stored verdict ("pass", "caution", "fail"), if any.
        raw: The unwrapped profile record.
    """

    completion: CompletionVector = field(default_factory=CompletionVector)
    application_status: ApplicationStatus = "draft"
    job_title: str | None = None
    base_city: str | None = None
    prescreen_result: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, body: Any) -> "ProfileSnapshot":
        """Parse a GET profile response body.

        Accepts the wrapped form ({"profile": {...}}) or a bare record. A
        missing or malformed record yields an empty snapshot.
        """
        if not isinstance(body, dict):
            return cls()
        record = body.get("profile", body)
        if not isinstance(record, dict):
            return cls()

        status = record.get("applicationStatus")
        return cls(
            completion=CompletionVector.from_progress(record),
            application_status=status if status in _APPLICATION_STATUSES else "draft",
            job_title=record.get("jobTitle") or None,
            base_city=record.get("baseCity") or None,
            prescreen_result=record.get("prescreenResult") or None,
            raw=record,
        )

    @property
    def is_editable(self) -> bool:
        """Whether the candidate can still change step data."""
        return self.application_status in ("draft", "rejected")

    def step_data(self, step: OnboardingStep) -> dict[str, Any]:
        """Return the step's stored blob, or an empty blob if none was saved.

        The returned dict is a fresh copy at the top level.
        """
        step = parse_step(step)
        if step in _NESTED_BLOB_KEYS:
            blob = self.raw.get(_NESTED_BLOB_KEYS[step])
            return dict(blob) if isinstance(blob, dict) else {}

        blob = {}
        for key, empty in _FLAT_BLOB_KEYS[step]:
            value = self.raw.get(key)
            blob[key] = value if value is not None else type(empty)()
        return blob

    def prescreen_answers(self) -> PrescreenAnswers:
        """Parse the stored prescreen blob (defaults fill missing answers)."""
        return PrescreenAnswers.model_validate(self.step_data(OnboardingStep.PRESCREEN))

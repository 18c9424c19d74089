"""Onboarding step catalog.

The single static table of onboarding steps. The progress tracker, the step
workflow, and any review-mode UI all read step metadata from here, so the
mapping from a step to its completion flag, its backend path, and its
auto-save quiet period exists exactly once.

Step order:
    prescreen → personal_info → identity_verification →
    professional_background → health_assessment → references →
    documents → profile_submission
"""

from dataclasses import dataclass
from enum import Enum

from homecare_onboarding.core.config import settings


class OnboardingStep(str, Enum):
    """Onboarding step identifiers (also the backend's onboarding-step ids)."""

    PRESCREEN = "prescreen"
    PERSONAL_INFO = "personal_info"
    IDENTITY_VERIFICATION = "identity_verification"
    PROFESSIONAL_BACKGROUND = "professional_background"
    HEALTH_ASSESSMENT = "health_assessment"
    REFERENCES = "references"
    DOCUMENTS = "documents"
    PROFILE_SUBMISSION = "profile_submission"


@dataclass(frozen=True)
class StepDescriptor:
    """Static metadata for one onboarding step.

    Attributes:
        step: Step identifier.
        ordinal: Zero-based position in the flow.
        title: Human title shown in the progress sidebar.
        description: One-line description shown while the step is open.
        completion_key: CompletionVector attribute this step reads.
        progress_field: Backend progress payload key for the flag.
        path_segment: Backend path segment for auto-save and commit calls.
        upload_heavy: True for steps dominated by file uploads, which use
            the longer auto-save quiet period.
    """

    step: OnboardingStep
    ordinal: int
    title: str
    description: str
    completion_key: str
    progress_field: str
    path_segment: str
    upload_heavy: bool = False

    @property
    def autosave_delay_ms(self) -> int:
        """Auto-save quiet period for this step, from settings."""
        if self.upload_heavy:
            return settings.autosave_upload_delay_ms
        return settings.autosave_delay_ms


STEP_DESCRIPTORS: tuple[StepDescriptor, ...] = (
    StepDescriptor(
        step=OnboardingStep.PRESCREEN,
        ordinal=0,
        title="Prescreen Assessment",
        description="Complete initial qualification assessment",
        completion_key="prescreen",
        progress_field="prescreen_completed",
        path_segment="prescreen",
    ),
    StepDescriptor(
        step=OnboardingStep.PERSONAL_INFO,
        ordinal=1,
        title="Personal Information",
        description="Provide your personal details and contact information",
        completion_key="personal_info",
        progress_field="personal_info_completed",
        path_segment="personal-info",
    ),
    StepDescriptor(
        step=OnboardingStep.IDENTITY_VERIFICATION,
        ordinal=2,
        title="Identity Verification",
        description="Verify your identity with official documents",
        completion_key="identity",
        progress_field="identity_verified",
        path_segment="identity-verification",
        upload_heavy=True,
    ),
    StepDescriptor(
        step=OnboardingStep.PROFESSIONAL_BACKGROUND,
        ordinal=3,
        title="Professional Background",
        description="Share your work experience and qualifications",
        completion_key="professional_background",
        progress_field="professional_background_completed",
        path_segment="professional-background",
    ),
    StepDescriptor(
        step=OnboardingStep.HEALTH_ASSESSMENT,
        ordinal=4,
        title="Health Assessment",
        description="Complete health screening and medical history",
        completion_key="health_assessment",
        progress_field="health_assessment_completed",
        path_segment="health-assessment",
    ),
    StepDescriptor(
        step=OnboardingStep.REFERENCES,
        ordinal=5,
        title="References",
        description="Provide professional and personal references",
        completion_key="references",
        progress_field="references_completed",
        path_segment="references",
    ),
    StepDescriptor(
        step=OnboardingStep.DOCUMENTS,
        ordinal=6,
        title="Document Upload",
        description="Upload required certificates and documents",
        completion_key="documents",
        progress_field="documents_uploaded",
        path_segment="documents",
        upload_heavy=True,
    ),
    StepDescriptor(
        step=OnboardingStep.PROFILE_SUBMISSION,
        ordinal=7,
        title="Profile Submission",
        description="Review and submit your complete profile",
        completion_key="submission",
        progress_field="profile_submitted",
        path_segment="submission",
    ),
)

_BY_STEP: dict[OnboardingStep, StepDescriptor] = {d.step: d for d in STEP_DESCRIPTORS}

# Import-time check: ordinals must match table position
for _index, _descriptor in enumerate(STEP_DESCRIPTORS):
    if _descriptor.ordinal != _index:
        raise RuntimeError(
            f"Step '{_descriptor.step.value}' has ordinal {_descriptor.ordinal}, "
            f"expected {_index}"
        )


FIRST_STEP = STEP_DESCRIPTORS[0].step
LAST_STEP = STEP_DESCRIPTORS[-1].step


def parse_step(value: "str | OnboardingStep") -> OnboardingStep:
    """Coerce a step id string to OnboardingStep.

    Raises:
        ValueError: If value is not a known step id.
    """
    if isinstance(value, OnboardingStep):
        return value
    try:
        return OnboardingStep(value)
    except ValueError:
        known = ", ".join(s.value for s in OnboardingStep)
        raise ValueError(f"Unknown onboarding step: '{value}'. Known steps: {known}") from None


def get_descriptor(step: "str | OnboardingStep") -> StepDescriptor:
    """Return the descriptor for a step."""
    return _BY_STEP[parse_step(step)]


def get_next_step(step: OnboardingStep) -> OnboardingStep | None:
    """Step after the given one, or None at the end of the flow."""
    ordinal = _BY_STEP[step].ordinal
    if ordinal < len(STEP_DESCRIPTORS) - 1:
        return STEP_DESCRIPTORS[ordinal + 1].step
    return None


def get_previous_step(step: OnboardingStep) -> OnboardingStep | None:
    """Step before the given one, or None at the start of the flow."""
    ordinal = _BY_STEP[step].ordinal
    if ordinal > 0:
        return STEP_DESCRIPTORS[ordinal - 1].step
    return None

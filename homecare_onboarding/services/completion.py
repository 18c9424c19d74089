"""Completion vector: one boolean flag per onboarding step.

The backend profile record owns these flags; the engine keeps a read-through
copy. Flags only ever move from False to True through the engine. Clearing a
flag is an administrative rejection handled outside the engine and reaches
us only as a fresh fetch.
"""

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

from pydantic.alias_generators import to_camel

from homecare_onboarding.services.steps import (
    STEP_DESCRIPTORS,
    OnboardingStep,
    get_descriptor,
)


@dataclass(frozen=True)
class CompletionVector:
    """Ordered completion flags, one per step (in step order)."""

    prescreen: bool = False
    personal_info: bool = False
    identity: bool = False
    professional_background: bool = False
    health_assessment: bool = False
    references: bool = False
    documents: bool = False
    submission: bool = False

    @classmethod
    def empty(cls) -> "CompletionVector":
        """All-false vector (nothing completed)."""
        return cls()

    @classmethod
    def from_progress(cls, progress: Mapping[str, object] | None) -> "CompletionVector":
        """Build from the backend progress payload.

        Accepts both the progress endpoint's snake_case keys and the profile
        record's camelCase flags. Missing keys and non-boolean values read as
        False; unknown keys are ignored. A truthy string like "false" is not
        treated as completion.

        Args:
            progress: Dict keyed by backend progress fields
                (e.g. {"prescreen_completed": True}).

        Returns:
            CompletionVector with the flags set.
        """
        if not progress:
            return cls()
        flags = {
            d.completion_key: (
                progress.get(d.progress_field, progress.get(to_camel(d.progress_field)))
                is True
            )
            for d in STEP_DESCRIPTORS
        }
        return cls(**flags)

    def to_progress(self) -> dict[str, bool]:
        """Serialize back to the backend progress payload."""
        return {
            d.progress_field: getattr(self, d.completion_key) for d in STEP_DESCRIPTORS
        }

    def is_complete(self, step: "str | OnboardingStep") -> bool:
        """Whether the flag for a step is set."""
        return bool(getattr(self, get_descriptor(step).completion_key))

    def with_completed(self, step: "str | OnboardingStep") -> "CompletionVector":
        """Return a copy with the step's flag set. Never clears a flag."""
        key = get_descriptor(step).completion_key
        if getattr(self, key):
            return self
        return replace(self, **{key: True})

    @property
    def completed_count(self) -> int:
        """Number of completed steps."""
        return sum(1 for f in fields(self) if getattr(self, f.name))

    @property
    def percent_complete(self) -> int:
        """Completed share of all steps, rounded to an integer percentage."""
        return round(self.completed_count / len(STEP_DESCRIPTORS) * 100)

    @property
    def all_complete(self) -> bool:
        """True once every step is completed."""
        return self.completed_count == len(STEP_DESCRIPTORS)

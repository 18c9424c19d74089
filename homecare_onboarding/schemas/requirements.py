"""Requirement matrix schema.

A requirement matrix is a backend-supplied rule set keyed by job title and
city. When one is available for the candidate's job, its rules replace the
default prescreen rubric (they are not blended).

Shape:
    criteria: weighted scoring rules. The matrix's maximum possible score is
        the sum of each criterion's maximum.
    requirements: hard requirements. Any unmet requirement fails the
        candidate regardless of score.

Criterion kinds:
    tiered  : numeric field, ordered (minimum, points) tiers
    flag    : boolean field, flat points when true
    per_item: list field, points per item up to a cap
    choice  : text field, points per accepted value
    includes: list field, flat points when every named item is present
"""

from typing import Annotated, Any, Literal

from pydantic import Field, field_validator

from homecare_onboarding.schemas.base import CamelModel

NumericField = Literal["experience_months", "travel_km", "salary_expectation"]
FlagField = Literal["icu_exposure", "ventilator_handling", "willing_to_relocate"]
ListField = Literal["languages", "certifications", "preferred_cities"]
ChoiceField = Literal[
    "education_level", "shift_preference", "availability", "current_location"
]


# =============================================================================
# Criteria
# =============================================================================


class Tier(CamelModel):
    """One step of a tiered criterion."""

    minimum: float
    points: int = Field(ge=0)


class TieredCriterion(CamelModel):
    """Points from the highest tier whose minimum the value reaches."""

    kind: Literal["tiered"]
    field: NumericField
    tiers: list[Tier] = Field(min_length=1)
    label: str | None = None

    @property
    def max_points(self) -> int:
        return max(t.points for t in self.tiers)


class FlagCriterion(CamelModel):
    """Flat points when a boolean answer is true."""

    kind: Literal["flag"]
    field: FlagField
    points: int = Field(ge=0)
    label: str | None = None

    @property
    def max_points(self) -> int:
        return self.points


class PerItemCriterion(CamelModel):
    """Points per list item, capped."""

    kind: Literal["per_item"]
    field: ListField
    points_per_item: int = Field(ge=0)
    cap: int = Field(ge=0)
    label: str | None = None

    @property
    def max_points(self) -> int:
        return self.cap


class ChoiceCriterion(CamelModel):
    """Points looked up by the answer's value (case-insensitive)."""

    kind: Literal["choice"]
    field: ChoiceField
    points: dict[str, int]
    label: str | None = None

    @field_validator("points")
    @classmethod
    def non_negative_points(cls, value: dict[str, int]) -> dict[str, int]:
        if any(p < 0 for p in value.values()):
            raise ValueError("choice points cannot be negative")
        return value

    @property
    def max_points(self) -> int:
        return max(self.points.values(), default=0)


class IncludesCriterion(CamelModel):
    """Flat points when a list answer contains every named item."""

    kind: Literal["includes"]
    field: ListField
    items: list[str] = Field(min_length=1)
    points: int = Field(ge=0)
    label: str | None = None

    @property
    def max_points(self) -> int:
        return self.points


Criterion = Annotated[
    TieredCriterion
    | FlagCriterion
    | PerItemCriterion
    | ChoiceCriterion
    | IncludesCriterion,
    Field(discriminator="kind"),
]


# =============================================================================
# Hard Requirements
# =============================================================================


class HardRequirements(CamelModel):
    """Pass/fail prerequisites checked before scoring."""

    min_experience_months: int | None = Field(default=None, ge=0)
    required_certifications: list[str] = Field(default_factory=list)
    required_languages: list[str] = Field(default_factory=list)
    icu_exposure_required: bool = False
    ventilator_handling_required: bool = False

    @property
    def is_empty(self) -> bool:
        return (
            self.min_experience_months is None
            and not self.required_certifications
            and not self.required_languages
            and not self.icu_exposure_required
            and not self.ventilator_handling_required
        )


# =============================================================================
# Matrix
# =============================================================================


class RequirementMatrix(CamelModel):
    """Job/city-specific prescreen rules.

    Attributes:
        job_title: Job title the matrix applies to.
        city: City the matrix applies to.
        criteria: Weighted scoring rules.
        requirements: Hard pass/fail prerequisites.
    """

    job_title: str | None = None
    city: str | None = None
    criteria: list[Criterion] = Field(default_factory=list)
    requirements: HardRequirements = Field(default_factory=HardRequirements)

    @property
    def is_empty(self) -> bool:
        """A matrix with no rules at all carries no information."""
        return not self.criteria and self.requirements.is_empty

    @property
    def max_possible(self) -> int:
        return sum(c.max_points for c in self.criteria)

    @classmethod
    def from_response(cls, body: Any) -> "RequirementMatrix | None":
        """Parse a GET requirements/matrix response body.

        The backend wraps the matrix as {"requirements": {...}}. A missing,
        null, or empty matrix returns None so the caller falls back to the
        default rubric.

        Raises:
            pydantic.ValidationError: If the matrix is present but malformed.
        """
        if not isinstance(body, dict):
            return None
        raw = body.get("requirements")
        if not raw or not isinstance(raw, dict):
            return None
        matrix = cls.model_validate(raw)
        if matrix.is_empty:
            return None
        return matrix

"""Prescreen eligibility scoring.

Turns a candidate's prescreen answers into a pass / caution / fail verdict.
Pure functions: no I/O, no clock, no randomness. Callers fetch the
requirement matrix themselves and pass it in (or None).

Default rubric (used when no matrix is supplied), 100 points:
- Experience:          30 pts, tiered by months (24+ → 30, 12+ → 20, 6+ → 10)
- ICU exposure:        20 pts, flat
- Languages:           15 pts, 5 per language, capped
- Education:           15 pts, 15 top tier, 10 mid, 5 entry, 0 none
- Certifications:      20 pts, 5 per certification, capped

Verdict thresholds (shared by the default rubric and matrices):
    percentage = score / max_possible * 100
    percentage >= 80        → pass
    60 <= percentage < 80   → caution
    percentage < 60         → fail

A supplied matrix replaces the default rubric entirely. Its hard requirements
fail the candidate when unmet, whatever the score.

Input is assumed to have passed step validation (see step_validation).
"""

import math
from dataclasses import dataclass, field
from enum import Enum

from homecare_onboarding.schemas.prescreen import PrescreenAnswers
from homecare_onboarding.schemas.requirements import (
    ChoiceCriterion,
    Criterion,
    FlagCriterion,
    HardRequirements,
    IncludesCriterion,
    PerItemCriterion,
    RequirementMatrix,
    TieredCriterion,
)


class Verdict(str, Enum):
    """Three-valued prescreen outcome."""

    PASS = "pass"
    CAUTION = "caution"
    FAIL = "fail"


# =============================================================================
# Verdict Thresholds
# =============================================================================

PASS_THRESHOLD = 80.0
CAUTION_THRESHOLD = 60.0


# =============================================================================
# Default Rubric
# =============================================================================

# (minimum months, points), highest tier first
EXPERIENCE_TIERS: tuple[tuple[int, int], ...] = ((24, 30), (12, 20), (6, 10))
EXPERIENCE_MAX_POINTS = 30

ICU_EXPOSURE_POINTS = 20

LANGUAGE_POINTS_EACH = 5
LANGUAGE_MAX_POINTS = 15

# Bachelor's and above share the top tier. Legacy scoring gave 15 only to
# "Bachelor's Degree" and 0 to Master's and PhD.
EDUCATION_POINTS: dict[str, int] = {
    "Bachelor's Degree": 15,
    "Master's Degree": 15,
    "PhD": 15,
    "Diploma": 10,
    "High School": 5,
}
EDUCATION_MAX_POINTS = 15

CERTIFICATION_POINTS_EACH = 5
CERTIFICATION_MAX_POINTS = 20

DEFAULT_MAX_POSSIBLE = (
    EXPERIENCE_MAX_POINTS
    + ICU_EXPOSURE_POINTS
    + LANGUAGE_MAX_POINTS
    + EDUCATION_MAX_POINTS
    + CERTIFICATION_MAX_POINTS
)

# Sanity check at import time (RuntimeError survives python -O, unlike assert)
if DEFAULT_MAX_POSSIBLE != 100:
    raise RuntimeError(
        f"Default rubric must total 100 points, got {DEFAULT_MAX_POSSIBLE}"
    )


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class EligibilityScore:
    """Scored prescreen with its breakdown.

    Attributes:
        score: Points earned.
        max_possible: Points available under the rubric used.
        components: Points earned per rubric component.
        unmet_requirements: Human-readable hard requirements not met.
        rubric: "default" or "matrix".
    """

    score: int
    max_possible: int
    components: dict[str, int] = field(default_factory=dict)
    unmet_requirements: tuple[str, ...] = ()
    rubric: str = "default"

    @property
    def percentage(self) -> float:
        """Score as a percentage of max_possible.

        A rubric with nothing to score (a matrix carrying only hard
        requirements) counts as 100%.
        """
        if self.max_possible <= 0:
            return 100.0
        return self.score / self.max_possible * 100

    @property
    def verdict(self) -> Verdict:
        """Verdict for this score; any unmet hard requirement fails."""
        if self.unmet_requirements:
            return Verdict.FAIL
        return interpret_percentage(self.percentage)


def interpret_percentage(percentage: float) -> Verdict:
    """Map a score percentage to a verdict.

    Args:
        percentage: Score percentage (0-100).

    Returns:
        PASS at 80 and above, CAUTION from 60 up to 80, FAIL below 60.

    Raises:
        ValueError: If percentage is not finite or lies outside 0-100.
    """
    if not math.isfinite(percentage):
        msg = f"Percentage must be a finite number: {percentage}"
        raise ValueError(msg)
    if percentage < 0 or percentage > 100:
        msg = f"Percentage must be between 0 and 100: {percentage}"
        raise ValueError(msg)

    if percentage >= PASS_THRESHOLD:
        return Verdict.PASS
    if percentage >= CAUTION_THRESHOLD:
        return Verdict.CAUTION
    return Verdict.FAIL


# =============================================================================
# Default Rubric Scoring
# =============================================================================


def _count_distinct(items: list[str]) -> int:
    return len({item.strip().lower() for item in items if item.strip()})


def _experience_points(months: int) -> int:
    for minimum, points in EXPERIENCE_TIERS:
        if months >= minimum:
            return points
    return 0


def score_default_rubric(answers: PrescreenAnswers) -> EligibilityScore:
    """Score answers against the built-in 100-point rubric.

    Zero experience, no languages, and no certifications score 0 in their
    categories; they never raise.
    """
    components = {
        "experience": _experience_points(answers.experience_months),
        "icu_exposure": ICU_EXPOSURE_POINTS if answers.icu_exposure else 0,
        "languages": min(
            _count_distinct(answers.languages) * LANGUAGE_POINTS_EACH,
            LANGUAGE_MAX_POINTS,
        ),
        "education": EDUCATION_POINTS.get(answers.education_level.strip(), 0),
        "certifications": min(
            _count_distinct(answers.certifications) * CERTIFICATION_POINTS_EACH,
            CERTIFICATION_MAX_POINTS,
        ),
    }
    return EligibilityScore(
        score=sum(components.values()),
        max_possible=DEFAULT_MAX_POSSIBLE,
        components=components,
        rubric="default",
    )


# =============================================================================
# Matrix Scoring
# =============================================================================


def _normalized(items: list[str]) -> set[str]:
    return {item.strip().lower() for item in items if item.strip()}


def _score_criterion(answers: PrescreenAnswers, criterion: Criterion) -> int:
    value = getattr(answers, criterion.field)

    if isinstance(criterion, TieredCriterion):
        reached = [t.points for t in criterion.tiers if value >= t.minimum]
        return max(reached, default=0)

    if isinstance(criterion, FlagCriterion):
        return criterion.points if value else 0

    if isinstance(criterion, PerItemCriterion):
        return min(_count_distinct(value) * criterion.points_per_item, criterion.cap)

    if isinstance(criterion, ChoiceCriterion):
        lookup = {k.strip().lower(): v for k, v in criterion.points.items()}
        return lookup.get(str(value).strip().lower(), 0)

    if isinstance(criterion, IncludesCriterion):
        return criterion.points if _normalized(criterion.items) <= _normalized(value) else 0

    raise TypeError(f"Unsupported criterion: {type(criterion).__name__}")


def check_hard_requirements(
    answers: PrescreenAnswers,
    requirements: HardRequirements,
) -> tuple[str, ...]:
    """List hard requirements the answers do not meet.

    Returns:
        Tuple of human-readable reasons; empty when all are met.
    """
    unmet: list[str] = []

    if (
        requirements.min_experience_months is not None
        and answers.experience_months < requirements.min_experience_months
    ):
        unmet.append(
            f"At least {requirements.min_experience_months} months of experience "
            f"required, candidate has {answers.experience_months}"
        )

    missing_certs = sorted(
        _normalized(requirements.required_certifications)
        - _normalized(answers.certifications)
    )
    if missing_certs:
        unmet.append(f"Missing required certifications: {', '.join(missing_certs)}")

    missing_languages = sorted(
        _normalized(requirements.required_languages) - _normalized(answers.languages)
    )
    if missing_languages:
        unmet.append(f"Missing required languages: {', '.join(missing_languages)}")

    if requirements.icu_exposure_required and not answers.icu_exposure:
        unmet.append("ICU exposure required")

    if requirements.ventilator_handling_required and not answers.ventilator_handling:
        unmet.append("Ventilator handling required")

    return tuple(unmet)


def score_with_matrix(
    answers: PrescreenAnswers,
    matrix: RequirementMatrix,
) -> EligibilityScore:
    """Score answers against a requirement matrix's own rules."""
    components: dict[str, int] = {}
    for index, criterion in enumerate(matrix.criteria):
        name = criterion.label or criterion.field
        # Two criteria on the same field keep separate breakdown entries
        if name in components:
            name = f"{name}#{index}"
        components[name] = _score_criterion(answers, criterion)

    return EligibilityScore(
        score=sum(components.values()),
        max_possible=matrix.max_possible,
        components=components,
        unmet_requirements=check_hard_requirements(answers, matrix.requirements),
        rubric="matrix",
    )


# =============================================================================
# Public API
# =============================================================================


def score_answers(
    answers: PrescreenAnswers,
    matrix: RequirementMatrix | None = None,
) -> EligibilityScore:
    """Score answers, delegating to the matrix when one is supplied.

    An empty matrix (no criteria and no requirements) is treated as absent.
    """
    if matrix is None or matrix.is_empty:
        return score_default_rubric(answers)
    return score_with_matrix(answers, matrix)


def evaluate(
    answers: PrescreenAnswers,
    matrix: RequirementMatrix | None = None,
) -> Verdict:
    """Compute the prescreen verdict.

    Args:
        answers: Validated prescreen answers.
        matrix: Job/city requirement matrix, or None for the default rubric.

    Returns:
        Verdict.PASS, Verdict.CAUTION, or Verdict.FAIL.
    """
    return score_answers(answers, matrix).verdict


# =============================================================================
# Result Messaging
# =============================================================================


@dataclass(frozen=True)
class VerdictMessage:
    """Copy for the prescreen result screen.

    A fail verdict is informational, not an error: the candidate sees it as a
    result with next steps.
    """

    title: str
    subtitle: str
    next_action: str
    recommendations: tuple[str, ...]


VERDICT_MESSAGES: dict[Verdict, VerdictMessage] = {
    Verdict.PASS: VerdictMessage(
        title="Congratulations! You Passed the Prescreen",
        subtitle="You meet our requirements and can proceed to the next phase.",
        next_action="Continue to Onboarding",
        recommendations=(
            "Complete the detailed onboarding process",
            "Upload required documents",
            "Provide professional references",
            "Complete background verification",
        ),
    ),
    Verdict.CAUTION: VerdictMessage(
        title="Prescreen Results: Caution",
        subtitle=(
            "You meet most requirements but some areas need attention "
            "during onboarding."
        ),
        next_action="Continue to Onboarding",
        recommendations=(
            "Focus on areas that need improvement during onboarding",
            "Consider additional certifications if applicable",
            "Be prepared to discuss experience gaps",
            "Complete all required documentation thoroughly",
        ),
    ),
    Verdict.FAIL: VerdictMessage(
        title="Prescreen Results: Not Eligible",
        subtitle=(
            "Unfortunately, you do not meet our current requirements "
            "for this position."
        ),
        next_action="Back to Dashboard",
        recommendations=(
            "Consider gaining more experience in the field",
            "Look into relevant certifications",
            "Check other positions that might be a better fit",
            "Reapply when you meet the requirements",
        ),
    ),
}


def describe_verdict(verdict: Verdict) -> VerdictMessage:
    """Return result-screen copy for a verdict."""
    return VERDICT_MESSAGES[verdict]

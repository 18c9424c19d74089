"""Step validation.

Required-field checks run when a candidate asks to complete a step. Auto-save
never validates: half-filled forms are saved as they are.

Each rule function takes the step's blob (the same dict the auto-save
coordinator holds) and returns a list of {"field": ..., "message": ...}
issues. Field names are dotted paths into the blob (e.g.
"address.zipCode", "references.1.email"). validate_step() raises
ValidationError carrying every issue found, so the UI can mark all fields in
one pass.

Prescreen rules depend on the job title: nurses must list at least one
language and an education level.
"""

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

import pydantic
from pydantic.alias_generators import to_snake

from homecare_onboarding.core.errors import ValidationError
from homecare_onboarding.schemas.prescreen import PrescreenAnswers
from homecare_onboarding.services.completion import CompletionVector
from homecare_onboarding.services.steps import (
    STEP_DESCRIPTORS,
    OnboardingStep,
    parse_step,
)

logger = logging.getLogger(__name__)

Issue = dict[str, str]

# =============================================================================
# Constants
# =============================================================================

MAX_EXPERIENCE_MONTHS: int = 600
"""Upper bound for prescreen experience (50 years)."""

MAX_TRAVEL_KM: int = 1000
"""Upper bound for willing travel distance."""

MIN_SALARY_EXPECTATION: int = 5_000
MAX_SALARY_EXPECTATION: int = 500_000

PHONE_PATTERN = re.compile(r"^[0-9+\-\s()]{10,15}$")
"""Digits and common separators, 10-15 characters."""

REQUIRED_IDENTITY_DOCUMENTS: dict[str, str] = {
    "government_id": "Government ID",
    "ssn_card": "Social Security Card",
    "background_check": "Background Check",
}

REQUIRED_DOCUMENT_CATEGORIES: dict[str, str] = {
    "licenses": "Professional Licenses",
    "certifications": "Training Certifications",
}

MIN_PROFESSIONAL_REFERENCES: int = 2
MIN_PERSONAL_REFERENCES: int = 1


# =============================================================================
# Helpers
# =============================================================================


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _as_number(value: Any) -> float:
    """Read a numeric form value; blanks and garbage read as 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _entries(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [_mapping(item) for item in value]


def _require(
    issues: list[Issue],
    container: Mapping[str, Any],
    key: str,
    path: str,
    message: str,
) -> None:
    if _is_blank(container.get(key)):
        issues.append({"field": path, "message": message})


# =============================================================================
# Rule Functions
# =============================================================================


def check_prescreen(blob: Mapping[str, Any], *, job_title: str | None = None) -> list[Issue]:
    """Prescreen answers: ranges, contact details, and job-role rules."""
    try:
        answers = PrescreenAnswers.model_validate(dict(blob))
    except pydantic.ValidationError as exc:
        return [
            {
                "field": ".".join(to_snake(str(part)) for part in err["loc"]),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]

    issues: list[Issue] = []

    if answers.experience_months < 0:
        issues.append(
            {"field": "experience_months", "message": "Experience cannot be negative"}
        )
    elif answers.experience_months > MAX_EXPERIENCE_MONTHS:
        issues.append(
            {"field": "experience_months", "message": "Experience seems too high"}
        )

    if answers.travel_km < 0:
        issues.append({"field": "travel_km", "message": "Distance cannot be negative"})
    elif answers.travel_km > MAX_TRAVEL_KM:
        issues.append({"field": "travel_km", "message": "Distance seems too high"})

    # 0 means the optional salary input was left untouched
    if answers.salary_expectation == 0:
        pass
    elif answers.salary_expectation < MIN_SALARY_EXPECTATION:
        issues.append(
            {"field": "salary_expectation", "message": "Salary expectation seems too low"}
        )
    elif answers.salary_expectation > MAX_SALARY_EXPECTATION:
        issues.append(
            {"field": "salary_expectation", "message": "Salary expectation seems too high"}
        )

    if _is_blank(answers.current_location):
        issues.append(
            {"field": "current_location", "message": "Current location is required"}
        )

    contact = answers.emergency_contact
    if _is_blank(contact.name):
        issues.append(
            {
                "field": "emergency_contact.name",
                "message": "Emergency contact name is required",
            }
        )
    if _is_blank(contact.phone):
        issues.append(
            {
                "field": "emergency_contact.phone",
                "message": "Emergency contact phone is required",
            }
        )
    elif not PHONE_PATTERN.match(contact.phone):
        issues.append(
            {"field": "emergency_contact.phone", "message": "Invalid phone number format"}
        )
    if _is_blank(contact.relationship):
        issues.append(
            {
                "field": "emergency_contact.relationship",
                "message": "Relationship is required",
            }
        )

    if (job_title or "").strip().lower() == "nurse":
        if not [lang for lang in answers.languages if lang.strip()]:
            issues.append(
                {"field": "languages", "message": "At least one language is required"}
            )
        if _is_blank(answers.education_level):
            issues.append(
                {
                    "field": "education_level",
                    "message": "Education level is required for nurses",
                }
            )

    return issues


def check_personal_info(blob: Mapping[str, Any]) -> list[Issue]:
    """Personal details, postal address, and emergency contacts."""
    issues: list[Issue] = []
    _require(issues, blob, "fullName", "fullName", "Full name is required")
    _require(issues, blob, "phone", "phone", "Phone number is required")
    _require(issues, blob, "dateOfBirth", "dateOfBirth", "Date of birth is required")
    _require(issues, blob, "gender", "gender", "Gender is required")

    address = _mapping(blob.get("address"))
    _require(issues, address, "street", "address.street", "Street address is required")
    _require(issues, address, "city", "address.city", "City is required")
    _require(issues, address, "state", "address.state", "State is required")
    _require(issues, address, "zipCode", "address.zipCode", "ZIP code is required")

    for index, contact in enumerate(_entries(blob.get("emergencyContacts"))):
        prefix = f"emergencyContacts.{index}"
        _require(
            issues, contact, "name", f"{prefix}.name", "Emergency contact name is required"
        )
        _require(
            issues,
            contact,
            "phone",
            f"{prefix}.phone",
            "Emergency contact phone is required",
        )
        _require(
            issues, contact, "relationship", f"{prefix}.relationship", "Relationship is required"
        )
    return issues


def check_identity_verification(blob: Mapping[str, Any]) -> list[Issue]:
    """At least one uploaded document of each required identity type."""
    uploaded = {doc.get("type") for doc in _entries(blob.get("identityDocuments"))}
    missing = [
        name for doc_type, name in REQUIRED_IDENTITY_DOCUMENTS.items() if doc_type not in uploaded
    ]
    if not missing:
        return []
    return [
        {
            "field": "identityDocuments",
            "message": f"Please upload at least one: {', '.join(missing)}",
        }
    ]


def check_professional_background(blob: Mapping[str, Any]) -> list[Issue]:
    """Experience, education, and certification entries are complete."""
    issues: list[Issue] = []

    for index, exp in enumerate(_entries(blob.get("experience"))):
        prefix = f"experience.{index}"
        _require(issues, exp, "title", f"{prefix}.title", "Job title is required")
        _require(issues, exp, "company", f"{prefix}.company", "Company name is required")
        _require(issues, exp, "startDate", f"{prefix}.startDate", "Start date is required")
        if not exp.get("current"):
            _require(issues, exp, "endDate", f"{prefix}.endDate", "End date is required")

    for index, edu in enumerate(_entries(blob.get("education"))):
        prefix = f"education.{index}"
        _require(issues, edu, "degree", f"{prefix}.degree", "Degree is required")
        _require(
            issues, edu, "institution", f"{prefix}.institution", "Institution is required"
        )
        if not edu.get("graduationYear"):
            issues.append(
                {
                    "field": f"{prefix}.graduationYear",
                    "message": "Graduation year is required",
                }
            )

    for index, cert in enumerate(_entries(blob.get("certifications"))):
        prefix = f"certifications.{index}"
        _require(issues, cert, "name", f"{prefix}.name", "Certification name is required")
        _require(
            issues,
            cert,
            "issuingOrganization",
            f"{prefix}.issuingOrganization",
            "Issuing organization is required",
        )
        _require(issues, cert, "issueDate", f"{prefix}.issueDate", "Issue date is required")

    return issues


def check_health_assessment(blob: Mapping[str, Any]) -> list[Issue]:
    """Emergency contact and body measurements."""
    issues: list[Issue] = []
    contact = _mapping(blob.get("emergencyContact"))
    _require(
        issues,
        contact,
        "name",
        "emergencyContact.name",
        "Emergency contact name is required",
    )
    _require(
        issues,
        contact,
        "phone",
        "emergencyContact.phone",
        "Emergency contact phone is required",
    )
    _require(
        issues,
        contact,
        "relationship",
        "emergencyContact.relationship",
        "Emergency contact relationship is required",
    )
    if _as_number(blob.get("height")) <= 0:
        issues.append({"field": "height", "message": "Height must be greater than 0"})
    if _as_number(blob.get("weight")) <= 0:
        issues.append({"field": "weight", "message": "Weight must be greater than 0"})
    return issues


def check_references(blob: Mapping[str, Any]) -> list[Issue]:
    """Reference counts by type, and each reference's contact details."""
    issues: list[Issue] = []
    references = _entries(blob.get("references"))

    professional = sum(1 for ref in references if ref.get("type") == "professional")
    personal = sum(1 for ref in references if ref.get("type") == "personal")
    if professional < MIN_PROFESSIONAL_REFERENCES:
        issues.append(
            {
                "field": "references",
                "message": "At least 2 professional references are required",
            }
        )
    if personal < MIN_PERSONAL_REFERENCES:
        issues.append(
            {"field": "references", "message": "At least 1 personal reference is required"}
        )

    for index, ref in enumerate(references):
        prefix = f"references.{index}"
        _require(issues, ref, "name", f"{prefix}.name", "Reference name is required")
        _require(issues, ref, "email", f"{prefix}.email", "Reference email is required")
        _require(issues, ref, "phone", f"{prefix}.phone", "Reference phone is required")
        _require(
            issues, ref, "relationship", f"{prefix}.relationship", "Relationship is required"
        )
        if _as_number(ref.get("yearsKnown")) <= 0:
            issues.append(
                {
                    "field": f"{prefix}.yearsKnown",
                    "message": "Years known must be greater than 0",
                }
            )
    return issues


def check_documents(blob: Mapping[str, Any]) -> list[Issue]:
    """At least one document in each required category."""
    uploaded = {doc.get("category") for doc in _entries(blob.get("documents"))}
    missing = [
        name
        for category, name in REQUIRED_DOCUMENT_CATEGORIES.items()
        if category not in uploaded
    ]
    if not missing:
        return []
    return [
        {
            "field": "documents",
            "message": f"Please upload documents for: {', '.join(missing)}",
        }
    ]


def check_profile_submission(completion: CompletionVector) -> list[Issue]:
    """Every step before submission is complete."""
    return [
        {"field": d.step.value, "message": f"{d.title} is not complete"}
        for d in STEP_DESCRIPTORS
        if d.step is not OnboardingStep.PROFILE_SUBMISSION
        and not completion.is_complete(d.step)
    ]


_BLOB_RULES: dict[OnboardingStep, Callable[[Mapping[str, Any]], list[Issue]]] = {
    OnboardingStep.PERSONAL_INFO: check_personal_info,
    OnboardingStep.IDENTITY_VERIFICATION: check_identity_verification,
    OnboardingStep.PROFESSIONAL_BACKGROUND: check_professional_background,
    OnboardingStep.HEALTH_ASSESSMENT: check_health_assessment,
    OnboardingStep.REFERENCES: check_references,
    OnboardingStep.DOCUMENTS: check_documents,
}


# =============================================================================
# Public API
# =============================================================================


def collect_issues(
    step: str | OnboardingStep,
    blob: Mapping[str, Any],
    *,
    job_title: str | None = None,
    completion: CompletionVector | None = None,
) -> list[Issue]:
    """Run the step's rules and return every issue found.

    Args:
        step: Step whose rules apply.
        blob: The step's form data.
        job_title: Candidate's job title (prescreen role rules).
        completion: Current completion vector (profile submission only).
            None counts as nothing completed.

    Returns:
        List of {"field", "message"} dicts; empty when the blob is valid.
    """
    step = parse_step(step)
    if step is OnboardingStep.PRESCREEN:
        return check_prescreen(blob, job_title=job_title)
    if step is OnboardingStep.PROFILE_SUBMISSION:
        return check_profile_submission(completion or CompletionVector.empty())
    return _BLOB_RULES[step](blob)


def validate_step(
    step: str | OnboardingStep,
    blob: Mapping[str, Any],
    *,
    job_title: str | None = None,
    completion: CompletionVector | None = None,
) -> None:
    """Validate a step's blob before it is committed.

    Raises:
        ValidationError: With one details entry per issue.
    """
    issues = collect_issues(step, blob, job_title=job_title, completion=completion)
    if issues:
        logger.debug("Step %s failed validation: %d issue(s)", step, len(issues))
        raise ValidationError("Please correct the highlighted fields", details=issues)

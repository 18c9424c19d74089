"""Prescreen answer schema.

The candidate's raw prescreen input. The step UI owns it, the auto-save
coordinator writes it through to the backend, and the eligibility scorer reads
it once at submission.

The backend stores the blob with camelCase keys (experienceMonths,
icuExposure, ...) while the engine and the auto-save payload use snake_case.
Both spellings are accepted on input.
"""

from typing import Literal

from pydantic import Field

from homecare_onboarding.schemas.base import CamelModel

ShiftPreference = Literal["12h", "24h", "either"]
Availability = Literal["immediate", "1_week", "2_weeks", "1_month"]

LANGUAGE_OPTIONS: tuple[str, ...] = (
    "English",
    "Hindi",
    "Punjabi",
    "Gujarati",
    "Marathi",
    "Tamil",
    "Telugu",
    "Kannada",
    "Malayalam",
    "Bengali",
    "Odia",
    "Assamese",
)

EDUCATION_OPTIONS: tuple[str, ...] = (
    "High School",
    "Diploma",
    "Bachelor's Degree",
    "Master's Degree",
    "PhD",
    "Other",
)

CERTIFICATION_OPTIONS: tuple[str, ...] = (
    "BLS",
    "ACLS",
    "PALS",
    "NALS",
    "NICU",
    "PICU",
    "ICU",
    "Emergency Nursing",
    "Critical Care",
    "Oncology",
    "Pediatric",
    "Geriatric",
    "Mental Health",
    "Other",
)


class EmergencyContact(CamelModel):
    """Emergency contact captured during prescreen."""

    name: str = ""
    phone: str = ""
    relationship: str = ""


class PrescreenAnswers(CamelModel):
    """Candidate's prescreen answers.

    Defaults match an untouched form so a partially filled blob loaded from
    auto-save still parses.
    """

    experience_months: int = 0
    icu_exposure: bool = False
    ventilator_handling: bool = False
    shift_preference: ShiftPreference = "either"
    travel_km: int = 0
    languages: list[str] = Field(default_factory=list)
    education_level: str = ""
    certifications: list[str] = Field(default_factory=list)
    availability: Availability = "immediate"
    salary_expectation: int = 0
    current_location: str = ""
    willing_to_relocate: bool = False
    preferred_cities: list[str] = Field(default_factory=list)
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)

    def to_payload(self) -> dict[str, object]:
        """JSON-ready dict for auto-save and commit calls."""
        return self.model_dump(mode="json")

"""Pydantic schemas and parsed views of profile backend payloads."""

from homecare_onboarding.schemas.prescreen import EmergencyContact, PrescreenAnswers
from homecare_onboarding.schemas.profile import ProfileSnapshot
from homecare_onboarding.schemas.requirements import HardRequirements, RequirementMatrix

__all__ = [
    "EmergencyContact",
    "HardRequirements",
    "PrescreenAnswers",
    "ProfileSnapshot",
    "RequirementMatrix",
]

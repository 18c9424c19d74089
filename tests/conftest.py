from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
import pytest
from pydantic.alias_generators import to_camel

from homecare_onboarding.adapters.profile_api import ProfileBackend
from homecare_onboarding.core.auth import AuthContext
from homecare_onboarding.core.errors import OnboardingError
from homecare_onboarding.schemas.profile import ProfileSnapshot
from homecare_onboarding.schemas.requirements import RequirementMatrix
from homecare_onboarding.services.completion import CompletionVector
from homecare_onboarding.services.steps import OnboardingStep

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = "candidate-0001"

# Security: This is a test-only secret. The engine never verifies signatures.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105


def create_test_jwt(
    user_id: str = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT for test authentication.

    Args:
        user_id: Value for the sub claim.
        secret: Signing secret.
        expires_delta: Time until expiration. Defaults to 1 hour. Negative
            values produce an already expired token.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "exp": now + (expires_delta if expires_delta is not None else timedelta(hours=1)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


# =============================================================================
# Sample step blobs (valid unless noted)
# =============================================================================


def make_prescreen_blob(**overrides: Any) -> dict[str, Any]:
    """Prescreen answers that pass validation and score 100 on the default rubric."""
    blob: dict[str, Any] = {
        "experience_months": 24,
        "icu_exposure": True,
        "ventilator_handling": True,
        "shift_preference": "12h",
        "travel_km": 15,
        "languages": ["English", "Hindi", "Punjabi"],
        "education_level": "Bachelor's Degree",
        "certifications": ["BLS", "ACLS", "PALS", "ICU"],
        "availability": "immediate",
        "salary_expectation": 35000,
        "current_location": "Delhi",
        "willing_to_relocate": False,
        "preferred_cities": ["Delhi"],
        "emergency_contact": {
            "name": "Asha Verma",
            "phone": "+91 98100 12345",
            "relationship": "Sister",
        },
    }
    blob.update(overrides)
    return blob


def make_personal_info_blob(**overrides: Any) -> dict[str, Any]:
    blob: dict[str, Any] = {
        "fullName": "Priya Sharma",
        "phone": "+91 98100 54321",
        "dateOfBirth": "1992-04-17",
        "gender": "female",
        "address": {
            "street": "12 Ring Road",
            "city": "Delhi",
            "state": "Delhi",
            "zipCode": "110001",
            "country": "India",
        },
        "emergencyContacts": [
            {
                "name": "Asha Verma",
                "phone": "+91 98100 12345",
                "relationship": "Sister",
                "isPrimary": True,
            }
        ],
    }
    blob.update(overrides)
    return blob


def make_references_blob() -> dict[str, Any]:
    def ref(name: str, ref_type: str) -> dict[str, Any]:
        return {
            "name": name,
            "email": f"{name.split()[0].lower()}@example.com",
            "phone": "+91 98100 00000",
            "relationship": "Supervisor" if ref_type == "professional" else "Neighbour",
            "type": ref_type,
            "yearsKnown": 3,
            "canContact": True,
        }

    return {
        "references": [
            ref("Meera Nair", "professional"),
            ref("Ravi Kumar", "professional"),
            ref("Sunil Das", "personal"),
        ]
    }


# =============================================================================
# In-memory backend
# =============================================================================


class FakeProfileBackend(ProfileBackend):
    """ProfileBackend keeping state in memory and recording every call.

    Set ``fail_with`` to an OnboardingError to make the next calls raise it.
    """

    def __init__(
        self,
        completion: CompletionVector | None = None,
        profile: dict[str, Any] | None = None,
        matrix: RequirementMatrix | None = None,
    ) -> None:
        self.completion = completion or CompletionVector.empty()
        self.profile = profile or {}
        self.matrix = matrix
        self.matrix_error: OnboardingError | None = None
        self.fail_with: OnboardingError | None = None
        self.calls: list[tuple[str, Any]] = []

    def _check(self, name: str, payload: Any = None) -> None:
        self.calls.append((name, payload))
        if self.fail_with is not None:
            raise self.fail_with

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def fetch_profile(self, auth: AuthContext) -> ProfileSnapshot:
        self._check("fetch_profile")
        record = {**self.profile, **_camel_flags(self.completion)}
        return ProfileSnapshot.from_response({"profile": record})

    async def fetch_progress(self, auth: AuthContext) -> CompletionVector:
        self._check("fetch_progress")
        return self.completion

    async def auto_save(
        self, auth: AuthContext, step: OnboardingStep, blob: dict[str, Any]
    ) -> None:
        self._check("auto_save", (step, blob))

    async def commit_step(
        self, auth: AuthContext, step: OnboardingStep, blob: dict[str, Any]
    ) -> dict[str, Any]:
        self._check("commit_step", (step, blob))
        return {"success": True}

    async def mark_step_complete(self, auth: AuthContext, step: OnboardingStep) -> None:
        self._check("mark_step_complete", step)
        self.completion = self.completion.with_completed(step)

    async def update_profile(
        self, auth: AuthContext, fields: dict[str, Any]
    ) -> dict[str, Any]:
        self._check("update_profile", fields)
        return {"success": True}

    async def submit_profile(self, auth: AuthContext) -> dict[str, Any]:
        self._check("submit_profile")
        self.completion = self.completion.with_completed(OnboardingStep.PROFILE_SUBMISSION)
        return {"success": True}

    async def fetch_requirement_matrix(
        self, auth: AuthContext, job_title: str, city: str
    ) -> RequirementMatrix | None:
        self._check("fetch_requirement_matrix", (job_title, city))
        if self.matrix_error is not None:
            raise self.matrix_error
        return self.matrix


def _camel_flags(completion: CompletionVector) -> dict[str, bool]:
    return {to_camel(k): v for k, v in completion.to_progress().items()}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def auth() -> AuthContext:
    """Auth context carrying a valid signed token."""
    return AuthContext.from_token(create_test_jwt(), user_id=TEST_USER_ID)


@pytest.fixture
def backend() -> FakeProfileBackend:
    """Empty in-memory backend (nothing completed)."""
    return FakeProfileBackend()

"""Profile API adapter.

Async client for the candidate profile backend. Every call takes an explicit
AuthContext; the adapter never looks a token up on its own.

Endpoints (relative to settings.api_base_url):
    GET  profile                          → {"profile": {...}}
    GET  profile/progress                 → {"progress": {...}}
    PUT  profile/auto-save/{segment}      partial step blob
    PUT  profile/{segment}                commit a step's data
    PUT  profile/onboarding-step          {"step": ..., "completed": true}
    PUT  profile/update                   arbitrary profile fields
    POST profile/submit                   final submission
    GET  requirements/matrix              ?jobTitle=...&city=...

Status mapping:
    2xx      → parsed JSON body ({} when empty)
    401, 403 → StaleTokenError
    400, 422 → ValidationError (backend field errors in details)
    other    → NetworkError(status_code)
    transport failures (DNS, refused, timeout) → NetworkError(None)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
import pydantic

from homecare_onboarding.core.auth import AuthContext
from homecare_onboarding.core.config import settings
from homecare_onboarding.core.errors import (
    NetworkError,
    StaleTokenError,
    ValidationError,
)
from homecare_onboarding.schemas.profile import ProfileSnapshot
from homecare_onboarding.schemas.requirements import RequirementMatrix
from homecare_onboarding.services.completion import CompletionVector
from homecare_onboarding.services.steps import OnboardingStep, get_descriptor

logger = logging.getLogger(__name__)


class ProfileBackend(ABC):
    """Interface the engine uses to reach the profile backend.

    Implemented over HTTP by HttpProfileBackend; tests substitute in-memory
    fakes.
    """

    @abstractmethod
    async def fetch_profile(self, auth: AuthContext) -> ProfileSnapshot:
        """Load the candidate's profile record."""

    @abstractmethod
    async def fetch_progress(self, auth: AuthContext) -> CompletionVector:
        """Load only the completion vector."""

    @abstractmethod
    async def auto_save(
        self, auth: AuthContext, step: OnboardingStep, blob: dict[str, Any]
    ) -> None:
        """Persist a partial step blob."""

    @abstractmethod
    async def commit_step(
        self, auth: AuthContext, step: OnboardingStep, blob: dict[str, Any]
    ) -> dict[str, Any]:
        """Persist a step's final data."""

    @abstractmethod
    async def mark_step_complete(self, auth: AuthContext, step: OnboardingStep) -> None:
        """Set the step's completion flag on the backend."""

    @abstractmethod
    async def update_profile(
        self, auth: AuthContext, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """Update arbitrary profile fields."""

    @abstractmethod
    async def submit_profile(self, auth: AuthContext) -> dict[str, Any]:
        """Submit the completed application for review."""

    @abstractmethod
    async def fetch_requirement_matrix(
        self, auth: AuthContext, job_title: str, city: str
    ) -> RequirementMatrix | None:
        """Load the job/city requirement matrix, or None if there is none."""


class HttpProfileBackend(ProfileBackend):
    """ProfileBackend over HTTP using httpx.

    Example:
        async with httpx.AsyncClient() as client:
            backend = HttpProfileBackend(client)
            snapshot = await backend.fetch_profile(auth)
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: Shared AsyncClient. When omitted the adapter owns one and
                aclose() releases it.
            base_url: API root. Defaults to settings.api_base_url.
            timeout: Per-request timeout in seconds. Defaults to
                settings.api_timeout_seconds.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._base_url = (base_url or settings.api_root).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.api_timeout_seconds

    async def aclose(self) -> None:
        """Close the underlying client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    async def fetch_profile(self, auth: AuthContext) -> ProfileSnapshot:
        body = await self._request("GET", "profile", auth)
        return ProfileSnapshot.from_response(body)

    async def fetch_progress(self, auth: AuthContext) -> CompletionVector:
        body = await self._request("GET", "profile/progress", auth)
        progress = body.get("progress") if isinstance(body, dict) else None
        return CompletionVector.from_progress(
            progress if isinstance(progress, dict) else None
        )

    async def update_profile(
        self, auth: AuthContext, fields: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request("PUT", "profile/update", auth, json=fields)

    async def submit_profile(self, auth: AuthContext) -> dict[str, Any]:
        return await self._request("POST", "profile/submit", auth)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def auto_save(
        self, auth: AuthContext, step: OnboardingStep, blob: dict[str, Any]
    ) -> None:
        segment = get_descriptor(step).path_segment
        await self._request("PUT", f"profile/auto-save/{segment}", auth, json=blob)

    async def commit_step(
        self, auth: AuthContext, step: OnboardingStep, blob: dict[str, Any]
    ) -> dict[str, Any]:
        segment = get_descriptor(step).path_segment
        return await self._request("PUT", f"profile/{segment}", auth, json=blob)

    async def mark_step_complete(self, auth: AuthContext, step: OnboardingStep) -> None:
        await self._request(
            "PUT",
            "profile/onboarding-step",
            auth,
            json={"step": OnboardingStep(step).value, "completed": True},
        )

    # -------------------------------------------------------------------------
    # Requirements
    # -------------------------------------------------------------------------

    async def fetch_requirement_matrix(
        self, auth: AuthContext, job_title: str, city: str
    ) -> RequirementMatrix | None:
        """Load the job/city requirement matrix.

        Returns:
            The matrix, or None when the backend has none for this job (404,
            empty body, or an empty matrix).

        Raises:
            StaleTokenError: If the token was rejected.
            NetworkError: If the backend is unreachable or answers with an
                unexpected status or a malformed matrix.
        """
        try:
            body = await self._request(
                "GET",
                "requirements/matrix",
                auth,
                params={"jobTitle": job_title, "city": city},
            )
        except NetworkError as exc:
            if exc.status_code == 404:
                logger.info("No requirement matrix for %s in %s", job_title, city)
                return None
            raise

        try:
            return RequirementMatrix.from_response(body)
        except pydantic.ValidationError as exc:
            logger.warning("Malformed requirement matrix for %s in %s", job_title, city)
            raise NetworkError("Malformed requirement matrix") from exc

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        auth: AuthContext,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{path}"
        headers = auth.headers()
        try:
            resp = await self._client.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Could not reach the profile service: {exc}") from exc

        if resp.status_code in (401, 403):
            raise StaleTokenError("Authentication rejected by the profile service")
        if resp.status_code in (400, 422):
            body = _safe_json(resp)
            raise ValidationError(
                str(body.get("message") or "Validation failed"),
                details=_field_details(body),
            )
        if not resp.is_success:
            logger.warning("%s %s returned %d", method, path, resp.status_code)
            raise NetworkError(
                f"Profile service returned {resp.status_code}",
                status_code=resp.status_code,
            )
        return _safe_json(resp)


def _safe_json(resp: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body; anything else reads as {}."""
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _field_details(body: dict[str, Any]) -> list[dict] | None:
    """Extract per-field errors from a 400/422 body.

    Understands {"errors": {"field": "message"}} and
    {"errors": [{"field": ..., "message": ...}]}.
    """
    errors = body.get("errors")
    if isinstance(errors, dict):
        return [{"field": str(k), "message": str(v)} for k, v in errors.items()]
    if isinstance(errors, list):
        return [
            {"field": str(e.get("field", "")), "message": str(e.get("message", ""))}
            for e in errors
            if isinstance(e, dict)
        ]
    return None

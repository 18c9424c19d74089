"""Explicit authentication context for profile API calls.

Every engine call that reaches the backend takes an AuthContext argument
instead of reading a token from ambient storage, so the engine holds no
hidden global state and tests can construct sessions for any user.

Token lifecycle (issuing, refreshing, storing) belongs to the external auth
collaborator. The engine only attaches the bearer token and refuses to send
one it can already tell has expired.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

import jwt
from pydantic import SecretStr

from homecare_onboarding.core.errors import StaleTokenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """Bearer credentials for one signed-in candidate.

    Attributes:
        token: Bearer token issued by the auth collaborator.
        user_id: Candidate/application identifier, if known.
    """

    token: SecretStr
    user_id: str | None = None

    @classmethod
    def from_token(cls, token: str, user_id: str | None = None) -> "AuthContext":
        """Build a context from a raw token string.

        Raises:
            StaleTokenError: If the token is empty.
        """
        if not token or not token.strip():
            raise StaleTokenError("No authentication token found")
        return cls(token=SecretStr(token.strip()), user_id=user_id)

    def expires_at(self) -> datetime | None:
        """Read the exp claim without verifying the signature.

        The backend is the authority on signatures; this is only a local
        early-out for tokens that are obviously expired. Opaque (non-JWT)
        tokens return None.
        """
        try:
            claims = jwt.decode(
                self.token.get_secret_value(),
                options={"verify_signature": False},
            )
        except jwt.PyJWTError:
            return None
        exp = claims.get("exp")
        if not isinstance(exp, int | float):
            return None
        return datetime.fromtimestamp(exp, tz=UTC)

    def ensure_fresh(self, now: datetime | None = None) -> None:
        """Raise if the token's exp claim is already in the past.

        Raises:
            StaleTokenError: If the token has expired.
        """
        expires_at = self.expires_at()
        if expires_at is None:
            return
        if (now or datetime.now(UTC)) >= expires_at:
            logger.info("Refusing to send expired token (user=%s)", self.user_id)
            raise StaleTokenError("Authentication token has expired")

    def headers(self) -> dict[str, str]:
        """Request headers carrying the bearer token.

        Raises:
            StaleTokenError: If the token has expired.
        """
        self.ensure_fresh()
        return {
            "Authorization": f"Bearer {self.token.get_secret_value()}",
            "Content-Type": "application/json",
        }

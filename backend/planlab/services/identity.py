"""
Identity resolution and role classification.

The hosted auth provider signs access tokens with the project JWT secret.
We verify them locally and treat (sub, email) as the only trust root.
Role is recomputed on every request from the AccessPolicy, never stored.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from uuid import UUID

from jose import JWTError, jwt

from planlab.config import AccessPolicy, get_settings
from planlab.db.models import UserRole
from planlab.errors import ApiError, ErrorCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Verified identity returned by the provider."""

    user_id: UUID
    email: str


@dataclass(frozen=True)
class AuthedUser:
    """Identity plus the role derived from the access policy."""

    user_id: UUID
    email: str
    role: UserRole

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.TEACHER


class JWTIdentityProvider:
    """Verifies provider-issued access tokens (signature, expiry, audience)."""

    def __init__(self, secret: str, *, algorithm: str = "HS256", audience: str | None = None):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    def resolve(self, token: str) -> Identity:
        """
        Decode a bearer token into an Identity.

        Raises ApiError(UNAUTHENTICATED) if the token is invalid, expired,
        or lacks a UUID subject / email claim.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            logger.info("Rejected access token: %s", e)
            raise ApiError(ErrorCode.UNAUTHENTICATED, "Sesión inválida o ausente.") from e

        email = (payload.get("email") or "").strip()
        try:
            user_id = UUID(str(payload.get("sub")))
        except ValueError as e:
            raise ApiError(ErrorCode.UNAUTHENTICATED, "Sesión inválida o ausente.") from e

        if not email:
            raise ApiError(ErrorCode.UNAUTHENTICATED, "Sesión inválida o ausente.")

        return Identity(user_id=user_id, email=email)


@lru_cache
def get_identity_provider() -> JWTIdentityProvider:
    """Get the identity provider configured from settings."""
    settings = get_settings()
    return JWTIdentityProvider(
        settings.identity_jwt_secret,
        algorithm=settings.identity_jwt_algorithm,
        audience=settings.identity_jwt_audience or None,
    )


def classify_role(email: str, policy: AccessPolicy) -> UserRole:
    """
    Decide the role for an email under the given policy.

    Order:
    1. teacher allowlist -> teacher (any domain)
    2. student test allowlist -> student (any domain)
    3. institutional domain, if configured, must match -> student
       otherwise FORBIDDEN_DOMAIN
    With no domain configured every email is a student.
    """
    email_lower = email.strip().lower()

    if email_lower in policy.teacher_emails:
        return UserRole.TEACHER

    if email_lower in policy.student_test_emails:
        return UserRole.STUDENT

    if policy.allowed_domain and not email_lower.endswith(f"@{policy.allowed_domain}"):
        raise ApiError(
            ErrorCode.FORBIDDEN_DOMAIN,
            "Acceso restringido a correos institucionales.",
        )

    return UserRole.STUDENT


def authenticate(token: str, provider: JWTIdentityProvider, policy: AccessPolicy) -> AuthedUser:
    """Resolve a bearer token and classify the caller."""
    identity = provider.resolve(token)
    role = classify_role(identity.email, policy)
    return AuthedUser(user_id=identity.user_id, email=identity.email, role=role)

"""
Authentication provider seam.

The engine only consumes the resulting identity. Sign-in UI and provider
choice live elsewhere; JwtAuthProvider covers the common case where the
provider hands the client a signed identity token.
"""

from abc import ABC, abstractmethod
from typing import Optional

import jwt

from chat_sync.config import settings
from chat_sync.core.exceptions import UnauthorizedError
from chat_sync.core.logging_config import get_logger
from chat_sync.models.user import Identity

logger = get_logger(__name__)


class AuthProvider(ABC):
    """Supplies the signed-in identity and its session lifecycle."""

    @abstractmethod
    async def sign_in(self, credential: str) -> Identity:
        """Exchange a provider credential for an identity. Raises UnauthorizedError."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the provider session."""

    @abstractmethod
    def current_identity(self) -> Optional[Identity]:
        """Identity of a still-valid provider session, if any."""


def identity_from_claims(claims: dict) -> Identity:
    """Map standard OIDC claims onto an Identity."""
    return Identity(
        id=claims["sub"],
        display_name=claims.get("name") or claims.get("preferred_username") or "",
        photo_url=claims.get("picture"),
        email=claims.get("email"),
    )


class JwtAuthProvider(AuthProvider):
    """
    Validates identity tokens signed with a shared secret.

    Usage:
        provider = JwtAuthProvider()
        identity = await provider.sign_in(id_token)
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.issuer = issuer if issuer is not None else settings.JWT_ISSUER
        self._identity: Optional[Identity] = None

    def decode(self, token: str) -> Identity:
        """
        Decode and validate a raw identity token.

        Raises:
            UnauthorizedError: Token invalid, expired or missing 'sub'
        """
        options = {
            "verify_exp": True,
            "verify_signature": True,
            "verify_aud": False,
            "require": ["sub", "exp"],
        }
        kwargs = {}
        if self.issuer:
            kwargs["issuer"] = self.issuer

        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options=options,
                **kwargs
            )
        except jwt.ExpiredSignatureError:
            logger.warning("identity_token_expired")
            raise UnauthorizedError("Identity token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning("identity_token_invalid", error=str(e))
            raise UnauthorizedError(f"Invalid identity token: {e}")

        return identity_from_claims(claims)

    async def sign_in(self, credential: str) -> Identity:
        identity = self.decode(credential)
        self._identity = identity
        logger.info("provider_sign_in", user_id=identity.id)
        return identity

    async def sign_out(self) -> None:
        if self._identity is not None:
            logger.info("provider_sign_out", user_id=self._identity.id)
        self._identity = None

    def current_identity(self) -> Optional[Identity]:
        return self._identity

"""
Bearer token authentication.

Tokens are RS256 JWTs verified against the issuer's JWKS endpoint with
issuer and audience checks. In development, ``SKIP_AUTH=true`` replaces
verification with a fixed local user.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import Settings
from core.errors import AuthError

__all__ = ["TokenVerifier", "Authenticator", "DEV_USER", "security"]

logger = logging.getLogger(__name__)

ALGORITHMS = ["RS256"]
DEV_USER = {"id": "dev-user", "email": "dev@example.com"}

security = HTTPBearer(auto_error=False)


class TokenVerifier:
    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audience: str,
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ):
        self.issuer = issuer
        self.audience = audience
        self._jwks_client = jwks_client or jwt.PyJWKClient(jwks_url, cache_keys=True)

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Verify a JWT and return the user it identifies.

        Raises:
            AuthError: Signature, issuer, audience or expiry check failed
        """
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=ALGORITHMS,
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token has expired")
        except jwt.PyJWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            raise AuthError("Invalid token")

        return {"id": payload["sub"], "email": payload.get("email", "")}


class Authenticator:
    """Resolves the calling user for REST routes and JSON-RPC calls."""

    def __init__(self, settings: Settings, verifier: Optional[TokenVerifier] = None):
        self.settings = settings
        self.verifier = verifier or TokenVerifier(
            settings.jwks_url, settings.jwt_issuer, settings.jwt_audience
        )
        if settings.auth_disabled:
            logger.warning("Authentication disabled (SKIP_AUTH in development)")

    @property
    def disabled(self) -> bool:
        return self.settings.auth_disabled

    async def authenticate(self, authorization: Optional[str]) -> Dict[str, Any]:
        if self.disabled:
            return dict(DEV_USER)
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthError("Missing or invalid authorization header")
        token = authorization[len("Bearer "):].strip()
        # PyJWKClient fetches keys with blocking I/O
        return await asyncio.to_thread(self.verifier.verify, token)

    async def __call__(
        self,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ) -> Dict[str, Any]:
        header = f"Bearer {credentials.credentials}" if credentials else None
        try:
            user = await self.authenticate(header)
        except AuthError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(e),
                headers={"WWW-Authenticate": "Bearer"},
            )
        request.state.user = user
        return user

"""
Request Authentication

Resolves the user a search runs for:

- Authorization: Bearer <jwt>, verified against the Supabase auth endpoint
- x-admin-secret + dev_user_id, an admin bypass for testing
"""

import hmac
import logging
from typing import Optional

import httpx

from .errors import AuthError

logger = logging.getLogger("recall.common.auth")


class AuthVerifier:
    """Verifies request credentials and returns the caller's user id"""

    def __init__(
        self,
        supabase_url: str = "",
        api_key: str = "",
        admin_secret: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._supabase_url = supabase_url.rstrip("/")
        self._api_key = api_key
        self._admin_secret = admin_secret
        self._timeout = timeout
        self._transport = transport

    @property
    def admin_enabled(self) -> bool:
        return bool(self._admin_secret)

    def is_admin(self, provided_secret: Optional[str]) -> bool:
        """Constant-time comparison against the configured admin secret"""
        if not self._admin_secret or not provided_secret:
            return False
        return hmac.compare_digest(provided_secret.encode(), self._admin_secret.encode())

    async def authenticate(
        self,
        authorization: Optional[str] = None,
        admin_secret: Optional[str] = None,
        dev_user_id: Optional[str] = None,
    ) -> str:
        """
        Resolve the user id for a request.

        Raises:
            AuthError: missing or invalid credential
        """
        if dev_user_id and self.is_admin(admin_secret):
            logger.info("Admin bypass for user %s", dev_user_id)
            return dev_user_id

        if not authorization or not authorization.startswith("Bearer "):
            raise AuthError("Missing or invalid authorization header")

        token = authorization[len("Bearer "):].strip()
        if not token:
            raise AuthError("Missing or invalid authorization header")

        return await self.verify_token(token)

    async def verify_token(self, token: str) -> str:
        """Ask the Supabase auth endpoint who owns token"""
        if not self._supabase_url:
            raise AuthError("Token verification is not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self._supabase_url}/auth/v1/user",
                    headers={"apikey": self._api_key, "Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.warning("Token verification request failed: %s", e)
            raise AuthError("Unauthorized") from e

        if response.status_code != 200:
            raise AuthError("Unauthorized")

        user_id = (response.json() or {}).get("id")
        if not user_id:
            raise AuthError("Unauthorized")
        return str(user_id)

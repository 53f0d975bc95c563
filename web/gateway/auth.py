"""Bearer-token authentication against the hosted auth service.

The storefront signs shoppers in with the hosted auth service; this
gateway only resolves the bearer token it receives to a user by calling
``GET {HOSTED_AUTH_URL}/user``. The token is kept on the user object so
table calls run with the shopper's own row-level permissions.

Fail closed: an unknown, expired or unverifiable token is a 401.
"""

import logging

import httpx
from django.conf import settings
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from .middleware import REQUEST_ID_CTX

logger = logging.getLogger("gateway.auth")


class HostedUser:
    """Lightweight user resolved from the hosted auth service.

    No local Django ``User`` row exists; views read ``id``, ``full_name``
    and ``is_admin``.
    """

    is_authenticated = True
    is_active = True

    def __init__(self, payload: dict, access_token: str | None = None):
        self.payload = payload
        self.id: str = str(payload.get("id", ""))
        self.email: str = payload.get("email", "") or ""
        metadata = payload.get("user_metadata") or {}
        self.full_name: str | None = metadata.get("full_name")
        self.role: str = (payload.get("app_metadata") or {}).get("role") or "customer"
        self.access_token = access_token

    @property
    def pk(self) -> str:
        return self.id

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __str__(self) -> str:  # pragma: no cover
        return self.id


class HostedSessionAuthentication(BaseAuthentication):
    """DRF authentication class resolving ``Authorization: Bearer <token>``."""

    keyword = "Bearer"

    def authenticate(self, request):
        """Return ``(HostedUser, token)`` or ``None`` when no credentials are sent."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None
        token = self._extract_token(header)
        payload = self._fetch_user(token)
        return (HostedUser(payload, access_token=token), token)

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _fetch_user(token: str) -> dict:
        headers = {
            "apikey": getattr(settings, "HOSTED_DB_ANON_KEY", ""),
            "Authorization": f"Bearer {token}",
        }
        rid = REQUEST_ID_CTX.get()
        if rid and rid != "-":
            headers["X-Request-ID"] = rid
        try:
            with httpx.Client(timeout=settings.HTTP_TIMEOUT_SECS) as client:
                resp = client.get(f"{settings.HOSTED_AUTH_URL.rstrip('/')}/user", headers=headers)
        except httpx.RequestError as exc:
            logger.warning("auth lookup failed", extra={"error": str(exc)})
            raise AuthenticationFailed("Could not verify session.") from exc
        if resp.status_code != 200:
            raise AuthenticationFailed("Invalid or expired session.")
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict) or not payload.get("id"):
            raise AuthenticationFailed("Invalid or expired session.")
        return payload

"""
Session verification against the Clerk backend API.

A bearer token is verified remotely (``POST /sessions/verify``), then the
user profile is fetched to resolve username and primary e-mail. When an
allow-list of usernames is configured, other users are rejected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import AuthError


logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    username: str | None = None
    email: str | None = None


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthError("Missing or invalid Authorization header. Expected: Bearer <token>")
    token = authorization[len(BEARER_PREFIX) :].strip()
    if not token:
        raise AuthError("Missing or invalid Authorization header. Expected: Bearer <token>")
    return token


def _primary_email(user_data: dict[str, Any]) -> str | None:
    primary_id = user_data.get("primary_email_address_id")
    for entry in user_data.get("email_addresses") or []:
        if isinstance(entry, dict) and entry.get("id") == primary_id:
            return entry.get("email_address")
    return None


class SessionVerifier:
    """Verify session tokens with the identity provider."""

    def __init__(
        self,
        *,
        secret_key: str | None,
        api_url: str = "https://api.clerk.com/v1",
        allowed_usernames: tuple[str, ...] = (),
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.allowed_usernames = allowed_usernames
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {secret_key or ''}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def verify_session(self, token: str) -> AuthenticatedUser:
        if not self.secret_key:
            raise AuthError(
                "Clerk secret key not configured. "
                "Please set CLERK_SECRET_KEY environment variable."
            )

        try:
            verify_response = self._client.post("/sessions/verify", json={"token": token})
            if verify_response.is_error:
                logger.warning(
                    "Token verification failed with status %s", verify_response.status_code
                )
                raise AuthError("Invalid or expired session token")

            user_id = verify_response.json().get("user_id")
            if not user_id:
                raise AuthError("No user ID found in session")

            user_response = self._client.get(f"/users/{user_id}")
            if user_response.is_error:
                logger.warning(
                    "Fetching user %s failed with status %s",
                    user_id,
                    user_response.status_code,
                )
                raise AuthError("Failed to fetch user information")
            user_data = user_response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Auth validation error: %s", exc)
            raise AuthError("Authentication validation failed due to server error") from exc

        username = user_data.get("username")
        if self.allowed_usernames and username not in self.allowed_usernames:
            logger.warning("Unauthorized access attempt by user: %s", username or "unknown")
            raise AuthError(
                f"Access denied. User '{username or 'unknown'}' "
                "is not authorized to access this resource."
            )

        logger.info("Successful authentication for user: %s", username)
        return AuthenticatedUser(
            user_id=str(user_id),
            username=username,
            email=_primary_email(user_data),
        )

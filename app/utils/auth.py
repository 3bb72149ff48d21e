import secrets
from typing import Optional

from fastapi import Request

from app.config.settings import settings
from app.utils.errors import AuthenticationError


def extract_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    """Extract Bearer token from Authorization header"""
    if not authorization_header:
        return None

    if not authorization_header.startswith("Bearer "):
        return None

    return authorization_header[7:]  # Remove "Bearer " prefix


async def verify_cron_secret(request: Request) -> None:
    """
    Dependency guarding the trigger and notification endpoints.

    Open when CRON_SECRET is unset; otherwise requires
    "Authorization: Bearer <CRON_SECRET>".
    """
    expected = settings.CRON_SECRET
    if not expected:
        return

    token = extract_bearer_token(request.headers.get("authorization"))
    if token is None or not secrets.compare_digest(token, expected):
        raise AuthenticationError("Invalid or missing cron secret")

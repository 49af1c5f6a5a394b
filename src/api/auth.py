"""
Automated-ingest authentication using an ``Authorization: Bearer`` header.
"""

import hmac

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


def check_ingest_token(credentials: HTTPAuthorizationCredentials | None) -> str:
    """
    Compare the presented bearer token with the configured ingest token.

    The comparison is constant-time.

    Returns:
        The validated token

    Raises:
        HTTPException: 500 if no token is configured, 401 if the token is
            missing or does not match
    """
    settings = get_settings()

    if not settings.ingest_token_configured:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="INGEST_TOKEN not configured",
        )

    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expected = settings.ingest_token.get_secret_value()
    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials


async def verify_ingest_token(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> str:
    """Dependency form of ``check_ingest_token``."""
    return check_ingest_token(credentials)

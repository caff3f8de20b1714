"""
Security for the storefront: HTTP Basic for admin endpoints, bearer tokens for shoppers.

Shopper tokens are HS256 JWTs issued by the storefront's sign-in provider and
signed with ``SECRET_KEY``; ``sub`` is the shopper's user id.
"""

import logging
import secrets
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBasic, HTTPBasicCredentials, HTTPBearer

from plastik.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

security = HTTPBasic()
bearer = HTTPBearer(auto_error=False)


def get_current_username(
    credentials: HTTPBasicCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Simple HTTP Basic Auth - checks username/password from settings
    """
    if not settings.ADMIN_PASSWORD:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin password not configured"
        )

    is_correct_username = secrets.compare_digest(
        credentials.username.encode("utf8"),
        settings.ADMIN_USERNAME.encode("utf8")
    )
    is_correct_password = secrets.compare_digest(
        credentials.password.encode("utf8"),
        settings.ADMIN_PASSWORD.encode("utf8")
    )

    if not (is_correct_username and is_correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username



def _not_authenticated(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_shopper(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> str:
    """Return the user id of the signed-in shopper, or 401."""
    if credentials is None:
        raise _not_authenticated("Authentication required")
    if not settings.SECRET_KEY:
        logger.error("SECRET_KEY is not configured; shopper tokens cannot be verified")
        raise _not_authenticated("Authentication required")

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.SECRET_KEY,
            algorithms=["HS256"],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _not_authenticated("Token expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected shopper token: {e}")
        raise _not_authenticated("Invalid token")

    return str(payload["sub"])

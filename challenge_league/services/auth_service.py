"""
Token verification for authenticated league routes.

Tokens are issued elsewhere; this service only validates them.
"""

import logging
import os
from typing import Dict, Optional

import jwt

logger = logging.getLogger(__name__)

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")


def _get_secret_key() -> Optional[str]:
    """Read the signing key at call time (not import time)."""
    return os.getenv("JWT_SECRET_KEY")


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify and decode a JWT access token.

    Args:
        token: Encoded JWT

    Returns:
        Decoded payload, or None if the token is invalid, expired or no key
        is configured
    """
    secret_key = _get_secret_key()
    if not secret_key:
        logger.error("JWT_SECRET_KEY is not configured; rejecting token")
        return None

    try:
        return jwt.decode(token, secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid token: {e}")
        return None

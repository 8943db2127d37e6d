# auth.py
# =============================================================================
# Caller identity for LiftLog routes.
# Accepts either an API key (X-API-Key: <key>[:<user_id>]) or a Clerk session
# JWT (Authorization: Bearer <token>). Anything else is a 401 before any data
# access happens.
# =============================================================================

from __future__ import annotations

import logging
import os
from typing import List, Optional

import jwt
from fastapi import Header, HTTPException

log = logging.getLogger("liftlog.auth")

# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------
CLERK_DOMAIN = os.getenv("CLERK_DOMAIN", "")
CLERK_JWKS_URL = f"https://{CLERK_DOMAIN}/.well-known/jwks.json" if CLERK_DOMAIN else ""
JWT_ALGORITHMS = ["RS256"]
DEFAULT_API_USER = "admin"  # user for a bare key with no ":<user_id>" suffix

_jwks_client: Optional[jwt.PyJWKClient] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def _configured_api_keys() -> List[str]:
    # Read per request; API_KEYS is a comma-separated list
    return [k.strip() for k in os.getenv("API_KEYS", "").split(",") if k.strip()]


def get_jwks_client() -> Optional[jwt.PyJWKClient]:
    global _jwks_client
    if _jwks_client is None and CLERK_DOMAIN:
        _jwks_client = jwt.PyJWKClient(CLERK_JWKS_URL)
    return _jwks_client


# -----------------------------------------------------------------------------
# FastAPI dependency
# -----------------------------------------------------------------------------
async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> str:
    """Resolve the calling user's id; API key wins when both are sent."""
    if x_api_key:
        return user_from_api_key(x_api_key)
    if authorization:
        return user_from_bearer(authorization)
    raise _unauthorized("Missing authentication. Provide Authorization header or X-API-Key.")


# -----------------------------------------------------------------------------
# API keys
# -----------------------------------------------------------------------------
def user_from_api_key(api_key: str) -> str:
    keys = _configured_api_keys()
    if not keys:
        log.warning("API key presented but API_KEYS is empty")
        raise _unauthorized("API key authentication not configured")

    key, sep, user_id = api_key.partition(":")
    if key not in keys:
        log.info("Rejected unknown API key")
        raise _unauthorized("Invalid API key")
    if not sep:
        return DEFAULT_API_USER
    user_id = user_id.strip()
    if not user_id:
        raise _unauthorized("API key user id is empty")
    return user_id


# -----------------------------------------------------------------------------
# Clerk JWT
# -----------------------------------------------------------------------------
def user_from_bearer(authorization: str) -> str:
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise _unauthorized("Invalid authorization header format")

    client = get_jwks_client()
    if client is None:
        raise HTTPException(
            status_code=500,
            detail="JWT validation not configured (missing CLERK_DOMAIN)",
        )

    token = token.strip()
    try:
        signing_key = client.get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token, signing_key.key, algorithms=JWT_ALGORITHMS, options={"verify_aud": False}
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except (jwt.InvalidTokenError, jwt.PyJWKClientError) as e:
        log.info(f"Rejected bearer token: {e}")
        raise _unauthorized(f"Invalid token: {e}")

    sub = claims.get("sub")
    if not sub:
        raise _unauthorized("Token missing user ID")
    return sub

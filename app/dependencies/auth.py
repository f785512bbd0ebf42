from fastapi import Header, HTTPException, status, Depends
import jwt  # PyJWT
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

# Identity provider (Clerk) session tokens are RS256-signed; keys come from its JWKS endpoint
CLERK_JWKS_URL = os.getenv("CLERK_JWKS_URL", "")
CLERK_ISSUER = os.getenv("CLERK_ISSUER") or None
ADMIN_EMAIL_DOMAIN = os.getenv("ADMIN_EMAIL_DOMAIN", "@aimalyze.com").lower()
JWKS_CACHE_TTL = 3600  # Cache signing keys for 1 hour

_jwks_client: Optional[jwt.PyJWKClient] = None


def get_jwks_client() -> jwt.PyJWKClient:
    """PyJWKClient keeps its own key cache; build it once per process."""
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = jwt.PyJWKClient(CLERK_JWKS_URL, cache_keys=True, lifespan=JWKS_CACHE_TTL)
    return _jwks_client


def verify_identity_token(authorization: Optional[str] = Header(None)) -> dict:
    """
    Verify an identity provider session token from the Authorization header.
    Returns the token payload if valid.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid header format. Expected 'Bearer <token>'"
        )

    token = authorization.replace("Bearer ", "").strip()

    # Reject common invalid token values
    if token.lower() in ["null", "undefined", "none", ""]:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: token value is null or undefined"
        )

    if not CLERK_JWKS_URL:
        logger.error("[AUTH] CLERK_JWKS_URL is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: CLERK_JWKS_URL not set"
        )

    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
    except jwt.PyJWKClientError as e:
        logger.warning("[AUTH] Could not resolve signing key: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service temporarily unavailable. Please try again in a moment."
        )
    except jwt.DecodeError as e:
        logger.warning("[AUTH] Failed to decode token header: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token header"
        )

    try:
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=CLERK_ISSUER,
            options={"verify_aud": False, "verify_iss": CLERK_ISSUER is not None},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except jwt.InvalidTokenError as e:
        logger.warning("[AUTH] Token verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token signature"
        )

    return payload


def require_admin(payload: dict = Depends(verify_identity_token)) -> dict:
    """Only staff accounts (email on the admin domain) may read usage logs."""
    email = (payload.get("email") or "").lower()
    if not email.endswith(ADMIN_EMAIL_DOMAIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden"
        )
    return payload

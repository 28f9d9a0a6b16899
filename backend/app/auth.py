"""Request authentication: dashboard JWTs and workflow-engine API keys.

Dashboard users authenticate with the external auth provider and send
its access token; their role lives in our users table. The workflow
engine sends a static API key instead.
"""
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request
from jwt import PyJWKClient

from app import config
from app.dependencies import get_storage
from app.entities import User
from app.services.storage import StorageGateway

logger = logging.getLogger(__name__)

ASYMMETRIC_ALGORITHMS = ("ES256", "RS256")
REQUIRED_CLAIMS = ["sub", "exp"]

_jwks_client: Optional[PyJWKClient] = None


def _get_jwks_client() -> Optional[PyJWKClient]:
    global _jwks_client
    if _jwks_client is None and config.AUTH_JWKS_URL:
        try:
            _jwks_client = PyJWKClient(config.AUTH_JWKS_URL, cache_keys=True)
        except Exception as e:
            logger.error(f"Failed to initialize JWKS client: {e}")
    return _jwks_client


@dataclass
class UserContext:
    """Identity taken from a verified access token."""
    user_id: str
    email: Optional[str] = None


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.removeprefix("Bearer ").strip() or None


def _decode_jwt(token: str) -> dict:
    """Verify an access token and return its claims.

    ES256/RS256 tokens are checked against the provider's JWKS, anything
    else as HS256 with the shared secret. `sub` and `exp` are required.
    """
    alg = jwt.get_unverified_header(token).get("alg", "")

    if alg in ASYMMETRIC_ALGORITHMS:
        client = _get_jwks_client()
        if not client:
            raise jwt.InvalidTokenError("JWKS client not configured")
        key = client.get_signing_key_from_jwt(token).key
        algorithms = [alg]
    elif config.AUTH_JWT_SECRET:
        key = config.AUTH_JWT_SECRET
        algorithms = ["HS256"]
    else:
        raise jwt.InvalidTokenError("JWT secret not configured")

    return jwt.decode(
        token,
        key,
        algorithms=algorithms,
        audience=config.AUTH_AUDIENCE,
        options={"require": REQUIRED_CLAIMS},
    )


async def get_current_user(
    authorization: Optional[str] = Header(None),
) -> UserContext:
    """FastAPI dependency: requires a valid access token.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing authorization token")
    try:
        claims = _decode_jwt(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired. Please sign out and sign back in.")
    except jwt.InvalidTokenError as e:
        logger.warning(f"JWT verification failed: {type(e).__name__}: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return UserContext(user_id=str(claims["sub"]), email=claims.get("email"))


async def get_current_principal(
    user: UserContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
) -> User:
    """FastAPI dependency: the stored user, with role, behind a valid token.

    A token whose subject has no user row is treated as unauthenticated.
    """
    principal = await storage.find_user_by_id(user.user_id)
    if principal is None:
        logger.warning(f"Token subject {user.user_id} has no user record")
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return principal


def has_valid_api_key(request: Request) -> bool:
    """True if the request carries the workflow engine's API key."""
    token = _bearer_token(request.headers.get("authorization"))
    if token is None or not config.INGEST_API_KEY:
        return False
    return hmac.compare_digest(token.encode(), config.INGEST_API_KEY.encode())


def verify_ingest_request(request: Request) -> None:
    """FastAPI dependency for webhook routes: API key, then the shared secret if one is configured."""
    client = request.client.host if request.client else "unknown"
    if not has_valid_api_key(request):
        logger.warning(f"Webhook authentication failed: invalid API key from {client}")
        raise HTTPException(status_code=401, detail="Unauthorized - Invalid API key")

    if config.INGEST_WEBHOOK_SECRET:
        secret = request.headers.get("x-webhook-secret", "")
        if not hmac.compare_digest(secret.encode(), config.INGEST_WEBHOOK_SECRET.encode()):
            logger.warning(f"Webhook authentication failed: invalid secret from {client}")
            raise HTTPException(status_code=401, detail="Invalid webhook secret")

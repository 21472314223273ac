"""
Owner resolution for bookmark requests.

Every bookmark, tag and category belongs to a User row keyed by the Auth0
subject. A request resolves to that user from its Auth0 bearer JWT, or, in
DEV_MODE, to a fixed local user without any credentials.
"""
import logging
from functools import lru_cache

import httpx
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.session import get_async_session
from models.user import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

DEV_USER_AUTH0_ID = "dev|local-development-user"
DEV_USER_EMAIL = "dev@localhost"

# Checked in order; specific claim failures come before the PyJWTError catch-all
_JWT_ERROR_DETAILS: tuple[tuple[type[jwt.PyJWTError], str], ...] = (
    (jwt.ExpiredSignatureError, "Token has expired"),
    (jwt.InvalidAudienceError, "Invalid audience"),
    (jwt.InvalidIssuerError, "Invalid issuer"),
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@lru_cache
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    """One signing-key client per JWKS URL; keys are cached for an hour."""
    return PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=3600)


def decode_jwt(token: str, settings: Settings) -> dict:
    """
    Verify an Auth0 RS256 access token and return its claims.

    Raises:
        HTTPException: 401 for any token problem, 503 if the JWKS endpoint
            cannot be reached.
    """
    try:
        signing_key = get_jwks_client(settings.auth0_jwks_url).get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth0_audience,
            issuer=settings.auth0_issuer,
        )
    except jwt.PyJWTError as e:
        for error_type, detail in _JWT_ERROR_DETAILS:
            if isinstance(e, error_type):
                raise _unauthorized(detail) from e
        logger.warning("JWT validation failed: %s", e, exc_info=True)
        raise _unauthorized("Invalid token") from e
    except httpx.HTTPError as e:
        logger.error("Failed to fetch JWKS from Auth0: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not validate credentials",
        ) from e


async def get_or_create_user(
    db: AsyncSession,
    auth0_id: str,
    email: str | None = None,
) -> User:
    """
    Return the owner row for an Auth0 subject, creating it on first sight.

    Two first requests for the same subject can race on the insert; the loser
    hits the unique auth0_id inside its savepoint and re-reads the winner's row.
    A changed email claim is copied onto the row.

    Note: Uses flush(), not commit. Session generator handles commit at request end.
    """
    by_subject = select(User).where(User.auth0_id == auth0_id)
    user = (await db.execute(by_subject)).scalar_one_or_none()

    if user is None:
        user = User(auth0_id=auth0_id, email=email)
        try:
            async with db.begin_nested():
                db.add(user)
                await db.flush()
        except IntegrityError:
            user = (await db.execute(by_subject)).scalar_one()
        else:
            logger.info("Created user for subject %s", auth0_id)

    if email and user.email != email:
        user.email = email
        await db.flush()

    return user


async def resolve_owner(
    credentials: HTTPAuthorizationCredentials | None,
    db: AsyncSession,
    settings: Settings,
) -> User:
    """
    Resolve a request's credentials to its owner.

    Raises:
        HTTPException: 401 when credentials are missing or the token is rejected.
    """
    if settings.dev_mode:
        return await get_or_create_user(db, DEV_USER_AUTH0_ID, DEV_USER_EMAIL)

    if credentials is None:
        raise _unauthorized("Not authenticated")

    claims = decode_jwt(credentials.credentials, settings)
    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Invalid token: missing sub claim")

    return await get_or_create_user(db, subject, claims.get("email"))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> User:
    """Dependency returning the authenticated owner of the request."""
    return await resolve_owner(credentials, db, settings)

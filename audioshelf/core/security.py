from datetime import timedelta
from typing import Any, Optional, Union

import jwt
import structlog
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core.config import settings
from audioshelf.core.errors import AuthenticationError, AuthorizationError
from audioshelf.db.database import get_db
from audioshelf.models.user import User
from audioshelf.services.access_policy import Principal
from audioshelf.utils.timeutils import utcnow

logger = structlog.get_logger()

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.api_prefix}/login", auto_error=False
)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    subject: Union[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    expire = utcnow() + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"exp": expire, "sub": str(subject)}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> int:
    """Return the user id carried by ``token``; raises AuthenticationError."""
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        return int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        logger.info("Rejected access token", error=str(e))
        raise AuthenticationError("Could not validate credentials")


async def get_current_user_optional(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Resolve the bearer token to an active user, or None for anonymous callers.

    A token that is present but invalid is still an error; only a missing
    token means anonymous.
    """
    if not token:
        return None
    user_id = decode_access_token(token)
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Could not validate credentials")
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    if user is None:
        raise AuthenticationError()
    return user


async def get_current_user_id(user: User = Depends(get_current_user)) -> int:
    return user.id


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise AuthorizationError("Admin privileges required")
    return user


async def get_principal(
    user: Optional[User] = Depends(get_current_user_optional),
) -> Principal:
    if user is None:
        return Principal.anonymous()
    return Principal(user_id=user.id, role=user.role)

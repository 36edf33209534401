import os
import warnings
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from itam.db import get_db
from itam.errors import AuthError, ForbiddenError
from itam.logging_config import LogContext
from itam.models import User, UserRole

SECRET_KEY = os.getenv("JWT_SECRET")
if not SECRET_KEY:
    SECRET_KEY = "dev-secret-change-me"
    warnings.warn(
        "JWT_SECRET not set! Using insecure default. Set JWT_SECRET in production.",
        UserWarning,
    )
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 8)))  # 8 hours

# Tokens are issued by /auth/google/callback; tokenUrl is only for the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/google", auto_error=False)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None):
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email))


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not token:
        raise AuthError("Not authenticated")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email: str | None = payload.get("sub")
        if email is None:
            raise AuthError("Not authenticated")
    except JWTError:
        raise AuthError("Not authenticated")

    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        raise AuthError("Not authenticated")
    LogContext.set(actor_id=str(user.id))
    return user


def require_roles(*roles: UserRole):
    def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError("Not authorized")
        return user
    return _checker

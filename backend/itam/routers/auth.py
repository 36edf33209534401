import os

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session
from authlib.integrations.starlette_client import OAuth, OAuthError
from starlette.requests import Request

from itam.db import get_db
from itam.auth import create_access_token, get_current_user
from itam import config, schemas, crud
from itam.errors import UnexpectedError, ok
from itam.logging_config import get_logger
from itam.models import User, UserRole

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# Google OAuth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

oauth = OAuth()
oauth.register(
    name="google",
    client_id=GOOGLE_CLIENT_ID,
    client_secret=GOOGLE_CLIENT_SECRET,
    server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
    client_kwargs={"scope": "openid email profile"},
)


def _login_error(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"{config.FRONTEND_URL}/login?error={reason}")


@router.get("/google")
async def google_login(request: Request):
    """Initiate Google OAuth login flow."""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise UnexpectedError("Google OAuth not configured")

    redirect_uri = request.url_for("google_callback")
    return await oauth.google.authorize_redirect(request, redirect_uri)


def resolve_login(db: Session, sub: str | None, email: str, name: str) -> User | None:
    """Find the user for a provider identity, linking or provisioning as configured."""
    user = db.scalar(select(User).where(User.google_sub == sub)) if sub else None
    if user:
        return user

    user = crud.get_user_by_email(db, email)
    if user:
        # Pre-created by an admin; link it to the provider account
        if sub and not user.google_sub:
            user.google_sub = sub
            db.commit()
        return user

    if not config.AUTO_PROVISION_USERS:
        return None

    user = User(
        name=name,
        email=email,
        employee_id=crud.generate_next_employee_id(db),
        google_sub=sub,
        role=UserRole.USER,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Provisioned user on first login", extra={"user_id": user.id})
    return user


@router.get("/google/callback")
async def google_callback(request: Request, db: Session = Depends(get_db)):
    """Handle Google OAuth callback."""
    try:
        token = await oauth.google.authorize_access_token(request)
    except OAuthError as exc:
        logger.warning("OAuth exchange failed", extra={"error": exc.error})
        return _login_error("auth_failed")

    user_info = token.get("userinfo")
    if not user_info:
        return _login_error("no_user_info")

    email = user_info.get("email")
    if not email:
        return _login_error("no_email")
    name = user_info.get("name") or email.split("@")[0]

    user = resolve_login(db, user_info.get("sub"), email, name)
    if user is None:
        logger.warning("Login refused for unknown user", extra={"email": email})
        return _login_error("not_registered")
    if not user.is_active:
        return _login_error("account_disabled")

    jwt_token = create_access_token(subject=user.email)
    return RedirectResponse(url=f"{config.FRONTEND_URL}/auth/callback?token={jwt_token}")


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return ok(schemas.dump(schemas.UserRead, user))

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlmodel import Session

from auth import get_password_hash, verify_password
from config import Settings, get_settings
from database import get_session
from dependencies import (
    CurrentUser,
    clear_session_cookie,
    get_identity_provider,
    get_session_id,
    get_session_store,
    require_authenticated,
    set_session_cookie,
)
from errors import NotFound, Unauthorized, ValidationError
from schemas import PasswordChange, UserLogin, UserResponse
from services import auth_service
from services.identity_provider import IdentityProvider, provision_external_user
from services.login_audit import ClientMeta
from services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

_settings = get_settings()
limiter = Limiter(key_func=get_remote_address, enabled=_settings.RATE_LIMIT_ENABLED)

OAUTH_STATE_COOKIE = "ayur.oauth_state"


@router.post("/login", response_model=UserResponse)
@limiter.limit(_settings.LOGIN_RATE_LIMIT)
def login(
    request: Request,
    response: Response,
    credentials: UserLogin,
    sid: Optional[str] = Depends(get_session_id),
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Login with username and password; sets the session cookie"""
    user, new_sid = auth_service.login(
        session,
        store,
        credentials.username,
        credentials.password,
        ClientMeta.from_request(request),
        previous_sid=sid,
    )
    set_session_cookie(response, new_sid, settings)
    logger.info(f"User {user.id} logged in")
    return UserResponse.model_validate(user)


@router.post("/logout")
def logout(
    response: Response,
    sid: Optional[str] = Depends(get_session_id),
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
):
    """Destroy the server-side session; safe to call repeatedly"""
    auth_service.logout(store, sid)
    clear_session_cookie(response, settings)
    return {"message": "Logged out successfully"}


@router.get("/user", response_model=UserResponse)
def get_current_user_info(current: CurrentUser = Depends(require_authenticated)):
    """Get current user information"""
    return UserResponse.model_validate(current.user)


@router.put("/password")
def change_password(
    password_data: PasswordChange,
    current: CurrentUser = Depends(require_authenticated),
    session: Session = Depends(get_session),
):
    """Change the caller's own password"""
    user = current.user
    if not verify_password(password_data.current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")

    user.password_hash = get_password_hash(password_data.new_password)
    session.add(user)
    session.commit()
    logger.info(f"User {user.id} changed password")
    return {"message": "Password changed successfully"}


# ==================== External sign-in ====================

@router.get("/google")
def google_login(provider: IdentityProvider = Depends(get_identity_provider)):
    """Redirect to Google's consent screen"""
    state = secrets.token_urlsafe(16)
    redirect = RedirectResponse(provider.authorization_url(state), status_code=status.HTTP_302_FOUND)
    redirect.set_cookie(OAUTH_STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
    return redirect


@router.get("/google/callback")
def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    sid: Optional[str] = Depends(get_session_id),
    provider: IdentityProvider = Depends(get_identity_provider),
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Finish Google sign-in, provisioning a local account on first use"""
    if not provider.enabled:
        raise NotFound("External login is not configured")

    expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if not code or not state or not expected_state or not secrets.compare_digest(state, expected_state):
        raise Unauthorized("External login failed")

    identity = provider.fetch_identity(code)
    user = provision_external_user(session, identity, provider.name)
    new_sid = auth_service.establish_session(
        session, store, user, ClientMeta.from_request(request), previous_sid=sid
    )

    redirect = RedirectResponse("/", status_code=status.HTTP_302_FOUND)
    set_session_cookie(redirect, new_sid, settings)
    redirect.delete_cookie(OAUTH_STATE_COOKIE)
    logger.info(f"User {user.id} logged in with {provider.name}")
    return redirect

"""Login, logout and session resolution"""
import logging
from typing import Optional, Tuple

from sqlmodel import Session, select

from auth import verify_password
from errors import ACCOUNT_DEACTIVATED, INVALID_CREDENTIALS, Unauthorized
from models import LoginStatus, User, UserRole
from services.login_audit import ClientMeta, record_login
from services.session_store import SessionData, SessionStore, new_session_id

logger = logging.getLogger(__name__)


def get_user_by_username(session: Session, username: str) -> Optional[User]:
    return session.exec(select(User).where(User.username == username)).first()


def establish_session(
    session: Session,
    store: SessionStore,
    user: User,
    client: ClientMeta,
    previous_sid: Optional[str] = None,
) -> str:
    """
    Audit-log the attempt and open a session for an already-verified user.

    Inactive accounts get a ``locked`` log row and no session.
    """
    if previous_sid:
        store.destroy(previous_sid)

    if not user.is_active:
        record_login(session, user.id, LoginStatus.LOCKED, client, previous_sid)
        raise Unauthorized(ACCOUNT_DEACTIVATED)

    sid = new_session_id()
    record_login(session, user.id, LoginStatus.SUCCESS, client, sid)
    store.create(user.id, UserRole(user.role).value, user.full_name, session_id=sid)
    return sid


def login(
    session: Session,
    store: SessionStore,
    username: str,
    password: str,
    client: ClientMeta,
    previous_sid: Optional[str] = None,
) -> Tuple[User, str]:
    """
    Verify credentials and open a session.

    Returns the user and the new session id. Every attempt against a known
    username leaves exactly one audit row; unknown usernames leave none.

    Raises:
        Unauthorized: bad credentials or deactivated account
    """
    user = get_user_by_username(session, username)
    if not user:
        logger.info("Login attempt for unknown username")
        raise Unauthorized(INVALID_CREDENTIALS)

    if not verify_password(password, user.password_hash):
        record_login(session, user.id, LoginStatus.FAILED, client, previous_sid)
        raise Unauthorized(INVALID_CREDENTIALS)

    sid = establish_session(session, store, user, client, previous_sid)
    return user, sid


def logout(store: SessionStore, sid: Optional[str]) -> None:
    if sid:
        store.destroy(sid)


def resolve_session(session: Session, store: SessionStore, sid: Optional[str]) -> Tuple[User, SessionData]:
    """
    Resolve a session id to its user and stored session data.

    Sessions whose user was deleted or deactivated are destroyed.
    """
    if not sid:
        raise Unauthorized()

    data = store.get(sid)
    if data is None:
        raise Unauthorized()

    user = session.get(User, data.user_id)
    if not user or not user.is_active:
        logger.info(f"Evicting stale session for user {data.user_id}")
        store.destroy(sid)
        raise Unauthorized()

    store.touch(sid)
    return user, data


def current_user(session: Session, store: SessionStore, sid: Optional[str]) -> User:
    user, _ = resolve_session(session, store, sid)
    return user

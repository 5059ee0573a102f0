from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from fastapi import Depends, Request, Response
from sqlmodel import Session

from config import Settings, get_settings
from database import get_session
from errors import Forbidden, NotFound, Unauthorized
from models import Patient, User, UserRole
from services import auth_service
from services.identity_provider import IdentityProvider
from services.session_store import SessionStore


class Capability(str, Enum):
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOG = "view_audit_log"
    VIEW_ALL_DOCTORS = "view_all_doctors"
    MANAGE_CLINICAL_RECORDS = "manage_clinical_records"


ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.ADMIN: frozenset(Capability),
    UserRole.DOCTOR: frozenset({Capability.MANAGE_CLINICAL_RECORDS}),
    # staff work on behalf of doctors and are scoped to their own id like a doctor
    UserRole.STAFF: frozenset({Capability.MANAGE_CLINICAL_RECORDS}),
}


def has_capability(role: UserRole, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


@dataclass
class CurrentUser:
    """Authenticated caller: the user row, the role stored in the session, and the session id"""
    user: User
    role: UserRole
    session_id: str

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_session_id(request: Request, settings: Settings = Depends(get_settings)) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def set_session_cookie(response: Response, sid: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=sid,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")


def require_authenticated(
    response: Response,
    sid: Optional[str] = Depends(get_session_id),
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
) -> CurrentUser:
    """Resolve the session cookie to a live user and renew the session"""
    user, data = auth_service.resolve_session(session, store, sid)

    try:
        role = UserRole(data.user_role)
    except ValueError:
        store.destroy(sid)
        raise Unauthorized()

    # sliding expiry: re-issue the cookie with a fresh max-age
    set_session_cookie(response, sid, settings)
    return CurrentUser(user=user, role=role, session_id=sid)


def require_roles(allowed_roles: List[UserRole]):
    """Dependency factory for role-based access control"""
    allowed = frozenset(allowed_roles)

    def role_checker(current: CurrentUser = Depends(require_authenticated)) -> CurrentUser:
        if current.role not in allowed:
            raise Forbidden()
        return current
    return role_checker


def require_capability(capability: Capability):
    """Dependency factory for capability checks"""
    def capability_checker(current: CurrentUser = Depends(require_authenticated)) -> CurrentUser:
        if not has_capability(current.role, capability):
            raise Forbidden()
        return current
    return capability_checker


# Convenience dependencies for common checks
require_admin = require_roles([UserRole.ADMIN])
require_clinician = require_capability(Capability.MANAGE_CLINICAL_RECORDS)


def scope_doctor_id(current: CurrentUser, requested: Optional[int]) -> Optional[int]:
    """
    Doctor filter to apply to a listing.

    Admins keep whatever was requested (None means every doctor); everyone
    else is pinned to their own id regardless of the query string.
    """
    if has_capability(current.role, Capability.VIEW_ALL_DOCTORS):
        return requested
    return current.id


def can_see_doctor_record(current: CurrentUser, owner_id: int) -> bool:
    return has_capability(current.role, Capability.VIEW_ALL_DOCTORS) or owner_id == current.id


def get_visible_patient(session: Session, current: CurrentUser, patient_id: int) -> Patient:
    """Load a patient the caller may see; anything else looks like a missing record"""
    patient = session.get(Patient, patient_id)
    if not patient or not can_see_doctor_record(current, patient.doctor_id):
        raise NotFound("Patient not found")
    return patient

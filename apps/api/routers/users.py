"""User management endpoints (admin only)"""
import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from auth import get_password_hash
from database import get_session
from dependencies import CurrentUser, Capability, require_capability
from errors import DOCTOR_NAME_CONFLICT, Conflict, NotFound, ValidationError
from models import User, UserRole
from schemas import UserCreate, UserResponse, UserStatusToggle, UserUpdate
from services.patient_id import validate_doctor_name_uniqueness

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])

require_user_admin = require_capability(Capability.MANAGE_USERS)


def _get_user_or_404(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _ensure_username_free(session: Session, username: str, exclude_id: int = None) -> None:
    statement = select(User).where(User.username == username)
    if exclude_id is not None:
        statement = statement.where(User.id != exclude_id)
    if session.exec(statement).first():
        raise Conflict("Username already exists")


@router.get("", response_model=List[UserResponse])
def list_users(
    current: CurrentUser = Depends(require_user_admin),
    session: Session = Depends(get_session)
):
    """List all users"""
    return session.exec(select(User).order_by(User.created_at.desc(), User.id.desc())).all()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    current: CurrentUser = Depends(require_user_admin),
    session: Session = Depends(get_session)
):
    """Create a user; doctors must not collide with another doctor's ID prefix"""
    _ensure_username_free(session, user_data.username)

    if user_data.role == UserRole.DOCTOR:
        if not validate_doctor_name_uniqueness(session, user_data.full_name):
            raise Conflict(DOCTOR_NAME_CONFLICT)

    user = User(
        username=user_data.username,
        password_hash=get_password_hash(user_data.password),
        email=user_data.email,
        full_name=user_data.full_name,
        role=user_data.role,
        is_active=user_data.is_active,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info(f"Admin {current.id} created user {user.id} ({user.role.value})")
    return user


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    user_data: UserUpdate,
    current: CurrentUser = Depends(require_user_admin),
    session: Session = Depends(get_session)
):
    """Partially update a user"""
    user = _get_user_or_404(session, user_id)
    changes = user_data.model_dump(exclude_unset=True)

    if changes.get("username") is not None:
        _ensure_username_free(session, changes["username"], exclude_id=user_id)

    # name or role changes can alter the doctor's patient-ID prefix
    if changes.get("role") is not None or changes.get("full_name") is not None:
        final_name = changes.get("full_name") or user.full_name
        final_role = changes.get("role") or user.role
        if final_role == UserRole.DOCTOR:
            if not validate_doctor_name_uniqueness(session, final_name, exclude_id=user_id):
                raise Conflict(DOCTOR_NAME_CONFLICT)

    password = changes.pop("password", None)
    if password:
        user.password_hash = get_password_hash(password)

    for key, value in changes.items():
        if value is None:
            raise ValidationError(f"{key} cannot be null")
        setattr(user, key, value)
    user.updated_at = datetime.utcnow()

    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info(f"Admin {current.id} updated user {user.id}")
    return user


@router.patch("/{user_id}/toggle-status", response_model=UserResponse)
def toggle_user_status(
    user_id: int,
    toggle: UserStatusToggle,
    current: CurrentUser = Depends(require_user_admin),
    session: Session = Depends(get_session)
):
    """Activate or deactivate a user account"""
    user = _get_user_or_404(session, user_id)
    user.is_active = toggle.is_active
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info(f"Admin {current.id} set user {user.id} active={user.is_active}")
    return user


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    current: CurrentUser = Depends(require_user_admin),
    session: Session = Depends(get_session)
):
    """Delete a user; their open sessions are evicted on next use"""
    if user_id == current.id:
        raise ValidationError("You cannot delete your own account")

    user = _get_user_or_404(session, user_id)
    session.delete(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("User is still referenced by other records")

    logger.info(f"Admin {current.id} deleted user {user_id}")
    return {"message": "User deleted successfully"}

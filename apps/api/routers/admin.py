"""Admin-only reporting: login audit log and practice-wide statistics"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, select

from database import get_session
from dependencies import Capability, CurrentUser, require_admin, require_capability
from errors import NotFound, ValidationError
from models import LoginStatus, User, UserRole
from schemas import (
    AdminDashboardMetrics,
    DoctorPatient,
    DoctorStats,
    LoginLogResponse,
    UserResponse,
)
from services import dashboard
from services.login_audit import query_login_logs

router = APIRouter(prefix="/api/admin", tags=["Admin"])

require_audit_access = require_capability(Capability.VIEW_AUDIT_LOG)


def _require_doctor_id(session: Session, doctor_id: Optional[int]) -> int:
    if doctor_id is None:
        raise ValidationError("doctor_id is required")
    doctor = session.get(User, doctor_id)
    if not doctor or doctor.role == UserRole.ADMIN:
        raise NotFound("Doctor not found")
    return doctor_id


# ==================== Login audit ====================

@router.get("/login-logs", response_model=List[LoginLogResponse])
def list_login_logs(
    login_status: Optional[LoginStatus] = Query(None, alias="status"),
    user_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current: CurrentUser = Depends(require_audit_access),
    session: Session = Depends(get_session)
):
    """Login attempts, newest first"""
    return query_login_logs(session, login_status=login_status, user_id=user_id, limit=limit, offset=offset)


@router.get("/login-logs/{user_id}", response_model=List[LoginLogResponse])
def list_user_login_logs(
    user_id: int,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current: CurrentUser = Depends(require_audit_access),
    session: Session = Depends(get_session)
):
    return query_login_logs(session, user_id=user_id, limit=limit, offset=offset)


# ==================== Practice-wide stats ====================

@router.get("/dashboard/metrics", response_model=AdminDashboardMetrics)
def get_admin_metrics(
    current: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_session)
):
    return dashboard.admin_metrics(session)


@router.get("/doctors", response_model=List[UserResponse])
def list_doctors(
    current: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_session)
):
    """All doctor and staff accounts"""
    statement = (
        select(User)
        .where(User.role.in_([UserRole.DOCTOR, UserRole.STAFF]))
        .order_by(User.full_name)
    )
    return session.exec(statement).all()


@router.get("/doctor-stats", response_model=DoctorStats)
def get_doctor_stats(
    doctor_id: Optional[int] = None,
    current: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_session)
):
    doctor_id = _require_doctor_id(session, doctor_id)
    return dashboard.doctor_stats(session, doctor_id)


@router.get("/doctor-patients", response_model=List[DoctorPatient])
def get_doctor_patients(
    doctor_id: Optional[int] = None,
    current: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_session)
):
    doctor_id = _require_doctor_id(session, doctor_id)
    return dashboard.doctor_patients(session, doctor_id)

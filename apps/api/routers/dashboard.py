from typing import List

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from database import get_session
from dependencies import CurrentUser, require_clinician
from schemas import AppointmentResponse, DashboardMetrics, PatientResponse
from services import dashboard

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/metrics", response_model=DashboardMetrics)
def get_metrics(
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """Headline numbers for the caller's own practice"""
    return dashboard.practice_metrics(session, current.id)


@router.get("/today-appointments", response_model=List[AppointmentResponse])
def get_today_appointments(
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    return [AppointmentResponse.model_validate(a) for a in dashboard.today_appointments(session, current.id)]


@router.get("/recent-patients", response_model=List[PatientResponse])
def get_recent_patients(
    limit: int = Query(5, ge=1, le=50),
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    return dashboard.recent_patients(session, current.id, limit=limit)

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session, select

from database import get_session
from dependencies import (
    CurrentUser,
    can_see_doctor_record,
    get_visible_patient,
    require_clinician,
    scope_doctor_id,
)
from errors import NotFound, ValidationError
from models import Appointment
from schemas import AppointmentCreate, AppointmentUpdate, AppointmentResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["Appointments"])


def _get_visible_appointment(session: Session, current: CurrentUser, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if not appointment or not can_see_doctor_record(current, appointment.doctor_id):
        raise NotFound("Appointment not found")
    return appointment


@router.get("", response_model=List[AppointmentResponse])
def list_appointments(
    doctor_id: Optional[int] = None,
    day: Optional[date] = Query(None, alias="date"),
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """List appointments ordered by date, optionally for a single calendar day"""
    statement = select(Appointment)

    scoped_doctor = scope_doctor_id(current, doctor_id)
    if scoped_doctor is not None:
        statement = statement.where(Appointment.doctor_id == scoped_doctor)

    if day:
        start = datetime.combine(day, time.min)
        statement = statement.where(
            Appointment.appointment_date >= start,
            Appointment.appointment_date < start + timedelta(days=1),
        )

    appointments = session.exec(statement.order_by(Appointment.appointment_date, Appointment.id)).all()
    return [AppointmentResponse.model_validate(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    return AppointmentResponse.model_validate(_get_visible_appointment(session, current, appointment_id))


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_data: AppointmentCreate,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """Book an appointment with the caller as the doctor"""
    get_visible_patient(session, current, appointment_data.patient_id)

    appointment = Appointment(doctor_id=current.id, **appointment_data.model_dump())
    session.add(appointment)
    session.commit()
    session.refresh(appointment)

    logger.info(f"User {current.id} booked appointment {appointment.id}")
    return AppointmentResponse.model_validate(appointment)


@router.put("/{appointment_id}", response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    appointment_data: AppointmentUpdate,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    appointment = _get_visible_appointment(session, current, appointment_id)

    for key, value in appointment_data.model_dump(exclude_unset=True).items():
        if value is None and key in ("appointment_date", "duration", "type", "status"):
            raise ValidationError(f"{key} cannot be null")
        setattr(appointment, key, value)

    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    return AppointmentResponse.model_validate(appointment)

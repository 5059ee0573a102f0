import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session, select, or_, func

from database import get_session
from dependencies import CurrentUser, get_visible_patient, require_clinician
from errors import ValidationError
from models import Patient
from schemas import PatientCreate, PatientUpdate, PatientResponse
from services.patient_id import generate_patient_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patients", tags=["Patients"])

REQUIRED_FIELDS = {"full_name", "age", "gender", "phone_number", "prakriti", "chief_complaints"}


@router.get("", response_model=List[PatientResponse])
def list_patients(
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """List the caller's own patients, newest first"""
    statement = select(Patient).where(Patient.doctor_id == current.id)

    if search:
        term = f"%{search.lower()}%"
        statement = statement.where(
            or_(
                func.lower(Patient.full_name).like(term),
                func.lower(Patient.patient_id).like(term),
                Patient.phone_number.like(f"%{search}%"),
            )
        )

    statement = statement.order_by(Patient.created_at.desc(), Patient.id.desc()).offset(offset).limit(limit)
    return session.exec(statement).all()


@router.get("/{patient_id}", response_model=PatientResponse)
def get_patient(
    patient_id: int,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    return get_visible_patient(session, current, patient_id)


@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    patient_data: PatientCreate,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """Register a patient under the caller and allocate its patient ID"""
    # the counter is committed before the patient row; a failed insert leaves a gap
    patient_code = generate_patient_id(session, current.id)

    patient = Patient(
        patient_id=patient_code,
        doctor_id=current.id,
        **patient_data.model_dump()
    )
    session.add(patient)
    session.commit()
    session.refresh(patient)

    logger.info(f"User {current.id} registered patient {patient.patient_id}")
    return patient


@router.put("/{patient_id}", response_model=PatientResponse)
def update_patient(
    patient_id: int,
    patient_data: PatientUpdate,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    patient = get_visible_patient(session, current, patient_id)

    for key, value in patient_data.model_dump(exclude_unset=True).items():
        if value is None and key in REQUIRED_FIELDS:
            raise ValidationError(f"{key} cannot be null")
        setattr(patient, key, value)
    patient.updated_at = datetime.utcnow()

    session.add(patient)
    session.commit()
    session.refresh(patient)
    return patient

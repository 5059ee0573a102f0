import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from fastapi.responses import FileResponse
from sqlmodel import Session, select

from database import get_session
from dependencies import (
    CurrentUser,
    can_see_doctor_record,
    get_visible_patient,
    require_clinician,
    scope_doctor_id,
)
from errors import NotFound
from models import Appointment, Prescription
from schemas import PrescriptionCreate, PrescriptionResponse, UploadResponse
from services.file_store import LocalFileStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prescriptions", tags=["Prescriptions"])


def get_file_store(request: Request) -> LocalFileStore:
    return request.app.state.file_store


@router.get("", response_model=List[PrescriptionResponse])
def list_prescriptions(
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    statement = select(Prescription)

    scoped_doctor = scope_doctor_id(current, doctor_id)
    if scoped_doctor is not None:
        statement = statement.where(Prescription.doctor_id == scoped_doctor)
    if patient_id is not None:
        statement = statement.where(Prescription.patient_id == patient_id)

    prescriptions = session.exec(statement.order_by(Prescription.created_at.desc(), Prescription.id.desc())).all()
    return [PrescriptionResponse.model_validate(p) for p in prescriptions]


@router.post("/upload", response_model=UploadResponse)
async def upload_prescription(
    prescription: UploadFile = File(...),
    current: CurrentUser = Depends(require_clinician),
    store: LocalFileStore = Depends(get_file_store)
):
    """Upload a scanned prescription (JPEG, PNG or PDF)"""
    stored = await store.save_prescription(prescription)
    logger.info(f"User {current.id} uploaded {stored['filename']}")
    return stored


@router.get("/files/{filename}")
def get_prescription_file(
    filename: str,
    current: CurrentUser = Depends(require_clinician),
    store: LocalFileStore = Depends(get_file_store)
):
    """Serve an uploaded prescription file to signed-in clinicians"""
    path, media_type = store.open_prescription(filename)
    return FileResponse(path, media_type=media_type, headers={"Content-Disposition": f'inline; filename="{filename}"'})


@router.get("/{prescription_id}", response_model=PrescriptionResponse)
def get_prescription(
    prescription_id: int,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    prescription = session.get(Prescription, prescription_id)
    if not prescription or not can_see_doctor_record(current, prescription.doctor_id):
        raise NotFound("Prescription not found")
    return PrescriptionResponse.model_validate(prescription)


@router.post("", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def create_prescription(
    prescription_data: PrescriptionCreate,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """Write a prescription with the caller as the prescribing doctor"""
    patient = get_visible_patient(session, current, prescription_data.patient_id)

    if prescription_data.appointment_id is not None:
        appointment = session.get(Appointment, prescription_data.appointment_id)
        if not appointment or appointment.patient_id != patient.id:
            raise NotFound("Appointment not found")

    data = prescription_data.model_dump()
    prescription = Prescription(doctor_id=current.id, **data)
    session.add(prescription)
    session.commit()
    session.refresh(prescription)

    logger.info(f"User {current.id} wrote prescription {prescription.id} for patient {patient.patient_id}")
    return PrescriptionResponse.model_validate(prescription)

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
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
from models import Patient, Payment, PaymentStatus
from schemas import PaymentCreate, PaymentStatusUpdate, PaymentResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


def apply_status_change(payment: Payment, new_status: PaymentStatus, now: Optional[datetime] = None) -> None:
    """Move a payment to ``new_status``; only entering completed stamps paid_at"""
    if new_status == PaymentStatus.COMPLETED and payment.payment_status != PaymentStatus.COMPLETED:
        payment.paid_at = now or datetime.utcnow()
    payment.payment_status = new_status


@router.get("", response_model=List[PaymentResponse])
def list_payments(
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """List payments; ownership follows the patient's doctor"""
    statement = select(Payment).join(Patient, Patient.id == Payment.patient_id)

    scoped_doctor = scope_doctor_id(current, doctor_id)
    if scoped_doctor is not None:
        statement = statement.where(Patient.doctor_id == scoped_doctor)
    if patient_id is not None:
        statement = statement.where(Payment.patient_id == patient_id)

    payments = session.exec(statement.order_by(Payment.created_at.desc(), Payment.id.desc())).all()
    return [PaymentResponse.model_validate(p) for p in payments]


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def create_payment(
    payment_data: PaymentCreate,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    get_visible_patient(session, current, payment_data.patient_id)

    data = payment_data.model_dump()
    initial_status = data.pop("payment_status")
    payment = Payment(payment_status=PaymentStatus.PENDING, **data)
    apply_status_change(payment, initial_status)

    session.add(payment)
    session.commit()
    session.refresh(payment)

    logger.info(f"User {current.id} recorded payment {payment.id} ({payment.payment_status.value})")
    return PaymentResponse.model_validate(payment)


@router.put("/{payment_id}/status", response_model=PaymentResponse)
def update_payment_status(
    payment_id: int,
    update: PaymentStatusUpdate,
    current: CurrentUser = Depends(require_clinician),
    session: Session = Depends(get_session)
):
    """Change a payment's status"""
    payment = session.get(Payment, payment_id)
    if not payment:
        raise NotFound("Payment not found")
    patient = session.get(Patient, payment.patient_id)
    if not patient or not can_see_doctor_record(current, patient.doctor_id):
        raise NotFound("Payment not found")

    apply_status_change(payment, update.status)
    if update.transaction_id is not None:
        payment.transaction_id = update.transaction_id

    session.add(payment)
    session.commit()
    session.refresh(payment)

    logger.info(f"User {current.id} set payment {payment.id} to {payment.payment_status.value}")
    return PaymentResponse.model_validate(payment)

"""Read-only aggregations for the practice and admin dashboards"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlmodel import Session, select, func

from models import (
    Appointment,
    Patient,
    Payment,
    PaymentStatus,
    User,
    UserLoginLog,
    UserRole,
    LoginStatus,
)


def _today_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    now = now or datetime.utcnow()
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _count(session: Session, statement) -> int:
    return session.exec(statement).one() or 0


def _sum(session: Session, statement) -> Decimal:
    return Decimal(session.exec(statement).one() or 0)


def practice_metrics(session: Session, doctor_id: int) -> dict:
    today, tomorrow = _today_bounds()
    month_start = _month_start()

    total_patients = _count(
        session, select(func.count(Patient.id)).where(Patient.doctor_id == doctor_id)
    )
    today_appointments = _count(
        session,
        select(func.count(Appointment.id))
        .where(Appointment.doctor_id == doctor_id)
        .where(Appointment.appointment_date >= today)
        .where(Appointment.appointment_date < tomorrow),
    )
    monthly_revenue = _sum(
        session,
        select(func.sum(Payment.amount))
        .join(Patient, Patient.id == Payment.patient_id)
        .where(Patient.doctor_id == doctor_id)
        .where(Payment.payment_status == PaymentStatus.COMPLETED)
        .where(Payment.paid_at >= month_start),
    )
    pending_payments = _sum(
        session,
        select(func.sum(Payment.amount))
        .join(Patient, Patient.id == Payment.patient_id)
        .where(Patient.doctor_id == doctor_id)
        .where(Payment.payment_status == PaymentStatus.PENDING),
    )
    return {
        "total_patients": total_patients,
        "today_appointments": today_appointments,
        "monthly_revenue": monthly_revenue,
        "pending_payments": pending_payments,
    }


def today_appointments(session: Session, doctor_id: int) -> List[Appointment]:
    today, tomorrow = _today_bounds()
    statement = (
        select(Appointment)
        .where(Appointment.doctor_id == doctor_id)
        .where(Appointment.appointment_date >= today)
        .where(Appointment.appointment_date < tomorrow)
        .order_by(Appointment.appointment_date)
    )
    return list(session.exec(statement).all())


def recent_patients(session: Session, doctor_id: int, limit: int = 5) -> List[Patient]:
    statement = (
        select(Patient)
        .where(Patient.doctor_id == doctor_id)
        .order_by(Patient.created_at.desc(), Patient.id.desc())
        .limit(limit)
    )
    return list(session.exec(statement).all())


def admin_metrics(session: Session) -> dict:
    def users_with_role(role: UserRole) -> int:
        return _count(session, select(func.count(User.id)).where(User.role == role))

    return {
        "total_users": _count(session, select(func.count(User.id))),
        "total_doctors": users_with_role(UserRole.DOCTOR),
        "total_staff": users_with_role(UserRole.STAFF),
        "total_patients": _count(session, select(func.count(Patient.id))),
        "total_appointments": _count(session, select(func.count(Appointment.id))),
        "total_revenue": _sum(
            session,
            select(func.sum(Payment.amount)).where(Payment.payment_status == PaymentStatus.COMPLETED),
        ),
    }


def doctor_stats(session: Session, doctor_id: int) -> dict:
    month_start = _month_start()
    active_since = datetime.utcnow() - timedelta(days=30)

    last_login = session.exec(
        select(func.max(UserLoginLog.login_time))
        .where(UserLoginLog.user_id == doctor_id)
        .where(UserLoginLog.login_status == LoginStatus.SUCCESS)
    ).one()

    return {
        "total_patients": _count(
            session, select(func.count(Patient.id)).where(Patient.doctor_id == doctor_id)
        ),
        "active_patients": _count(
            session,
            select(func.count(func.distinct(Appointment.patient_id)))
            .where(Appointment.doctor_id == doctor_id)
            .where(Appointment.appointment_date >= active_since),
        ),
        "total_appointments": _count(
            session, select(func.count(Appointment.id)).where(Appointment.doctor_id == doctor_id)
        ),
        "monthly_appointments": _count(
            session,
            select(func.count(Appointment.id))
            .where(Appointment.doctor_id == doctor_id)
            .where(Appointment.appointment_date >= month_start),
        ),
        "last_active": last_login,
    }


def doctor_patients(session: Session, doctor_id: int) -> List[dict]:
    statement = (
        select(Patient, func.count(Appointment.id), func.max(Appointment.appointment_date))
        .join(Appointment, Appointment.patient_id == Patient.id, isouter=True)
        .where(Patient.doctor_id == doctor_id)
        .group_by(Patient.id)
        .order_by(Patient.created_at.desc())
    )
    rows = []
    for patient, total, last_visit in session.exec(statement).all():
        rows.append({
            **patient.model_dump(),
            "total_appointments": total,
            "last_visit_date": last_visit,
        })
    return rows

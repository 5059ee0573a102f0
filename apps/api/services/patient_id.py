"""
Patient identifier allocation

Patient IDs look like ``RAJS7``: an alphabetic prefix derived from the owning
doctor's name followed by that doctor's running patient count. The count
lives in ``PatientCounter`` (one row per doctor) and is bumped with a single
``UPDATE ... RETURNING`` so two requests for the same doctor can never read
the same value.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from errors import NotFound
from models import PatientCounter, User, UserRole

logger = logging.getLogger(__name__)

PREFIX_MIN_LENGTH = 3

# Title tokens ignored when deriving a prefix ("Dr. Sarah Wilson" -> SARW)
HONORIFICS = {"dr", "prof", "mr", "mrs", "ms", "miss", "vaidya", "vd"}

_counter_locks: Dict[int, threading.Lock] = {}
_counter_locks_guard = threading.Lock()


def _name_tokens(full_name: str) -> List[str]:
    tokens = []
    for raw in (full_name or "").split():
        token = "".join(ch for ch in raw if ch.isalpha())
        if token and token.lower() not in HONORIFICS:
            tokens.append(token)
    return tokens


def derive_prefix(full_name: str, user_id: int) -> str:
    """
    Derive the patient-ID prefix for a doctor.

    First three letters of the first name, plus the initial of the last
    name when there is one, uppercased. Prefixes shorter than three
    characters are right-padded with the digits of ``user_id``.
    """
    tokens = _name_tokens(full_name)
    prefix = ""
    if tokens:
        prefix = tokens[0][:3].upper()
        if len(tokens) > 1:
            prefix += tokens[-1][0].upper()

    digits = str(abs(user_id)) if user_id is not None else "0"
    i = 0
    while len(prefix) < PREFIX_MIN_LENGTH:
        prefix += digits[i % len(digits)]
        i += 1
    return prefix


def _doctors(session: Session, exclude_id: Optional[int] = None) -> List[User]:
    statement = select(User).where(User.role == UserRole.DOCTOR)
    if exclude_id is not None:
        statement = statement.where(User.id != exclude_id)
    return list(session.exec(statement).all())


def resolve_prefix(session: Session, doctor: User) -> str:
    """
    Prefix actually used for ``doctor``'s patients.

    When any other doctor derives the same prefix, this one falls back to
    its first two letters plus its id zero-padded to two digits. Both sides
    of a collision fall back, so user management rejects such names up front.
    """
    candidate = derive_prefix(doctor.full_name, doctor.id)
    for other in _doctors(session, exclude_id=doctor.id):
        if derive_prefix(other.full_name, other.id) == candidate:
            fallback = f"{candidate[:2]}{doctor.id:02d}"
            logger.info(
                f"Prefix {candidate} of user {doctor.id} collides with user {other.id}; using {fallback}"
            )
            return fallback
    return candidate


def validate_doctor_name_uniqueness(session: Session, full_name: str, exclude_id: Optional[int] = None) -> bool:
    """Return False when ``full_name`` derives the same prefix as an existing doctor"""
    proposed = derive_prefix(full_name, exclude_id if exclude_id is not None else 0)
    for doctor in _doctors(session, exclude_id=exclude_id):
        if derive_prefix(doctor.full_name, doctor.id) == proposed:
            return False
    return True


def _lock_for(doctor_id: int) -> threading.Lock:
    with _counter_locks_guard:
        lock = _counter_locks.get(doctor_id)
        if lock is None:
            lock = _counter_locks[doctor_id] = threading.Lock()
        return lock


def _increment(session: Session, doctor_id: int) -> Optional[int]:
    statement = (
        update(PatientCounter)
        .where(PatientCounter.doctor_id == doctor_id)
        .values(last_count=PatientCounter.last_count + 1, updated_at=datetime.utcnow())
        .returning(PatientCounter.last_count)
    )
    return session.exec(statement).scalar_one_or_none()


def next_patient_number(session: Session, doctor_id: int) -> int:
    """Atomically bump and return the doctor's counter, creating it at 1 on first use"""
    with _lock_for(doctor_id):
        count = _increment(session, doctor_id)
        if count is None:
            try:
                with session.begin_nested():
                    session.add(PatientCounter(doctor_id=doctor_id, last_count=1))
                count = 1
            except IntegrityError:
                # another worker created the row first
                count = _increment(session, doctor_id)
        session.commit()
    return count


def generate_patient_id(session: Session, doctor_id: int) -> str:
    """
    Mint a new patient ID for ``doctor_id``.

    The counter is committed before the ID is returned, so a failed patient
    insert leaves a gap in the sequence but never a duplicate.

    Raises:
        NotFound: if ``doctor_id`` is not a known user
    """
    doctor = session.get(User, doctor_id)
    if not doctor:
        raise NotFound("Doctor not found")

    prefix = resolve_prefix(session, doctor)
    number = next_patient_number(session, doctor_id)
    patient_id = f"{prefix}{number}"
    logger.info(f"Allocated patient ID {patient_id} for user {doctor_id}")
    return patient_id

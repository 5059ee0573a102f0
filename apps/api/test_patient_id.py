"""Patient identifier allocation."""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlmodel import Session, select

from database import engine
from errors import NotFound
from models import PatientCounter, UserRole
from services.patient_id import (
    derive_prefix,
    generate_patient_id,
    next_patient_number,
    resolve_prefix,
    validate_doctor_name_uniqueness,
)


@pytest.mark.parametrize("full_name, user_id, expected", [
    ("Dr. Sarah Wilson", 3, "SARW"),
    ("Rajesh Kumar Sharma", 1, "RAJS"),
    ("Vaidya Anand", 2, "ANA"),
    ("anne o'neil", 4, "ANNO"),
    ("Al", 7, "AL7"),
    ("X", 12, "X12"),
    ("", 5, "555"),
])
def test_derive_prefix(full_name, user_id, expected):
    assert derive_prefix(full_name, user_id) == expected


def test_derive_prefix_ignores_non_letters():
    assert derive_prefix("Dr. Priya-2 Nair!", 9) == "PRIN"


def test_sequential_ids_for_one_doctor(session, make_user):
    doctor = make_user("sarah", "Dr. Sarah Wilson")

    assert generate_patient_id(session, doctor.id) == "SARW1"
    assert generate_patient_id(session, doctor.id) == "SARW2"

    counter = session.exec(select(PatientCounter).where(PatientCounter.doctor_id == doctor.id)).one()
    assert counter.last_count == 2


def test_counters_are_per_doctor(session, make_user):
    sarah = make_user("sarah", "Sarah Wilson")
    rajesh = make_user("rajesh", "Rajesh Sharma")

    assert generate_patient_id(session, sarah.id) == "SARW1"
    assert generate_patient_id(session, rajesh.id) == "RAJS1"
    assert generate_patient_id(session, sarah.id) == "SARW2"


def test_unknown_doctor(session):
    with pytest.raises(NotFound):
        generate_patient_id(session, 999)


def test_colliding_doctors_fall_back_to_id_prefixes(session, make_user):
    first = make_user("sarah", "Sarah Wilson")
    second = make_user("sara", "Sara Williams")

    assert resolve_prefix(session, first) == f"SA{first.id:02d}"
    assert resolve_prefix(session, second) == f"SA{second.id:02d}"
    assert generate_patient_id(session, second.id) == f"SA{second.id:02d}1"


def test_non_doctors_do_not_claim_prefixes(session, make_user):
    make_user("sarah-staff", "Sarah Wilson", role=UserRole.STAFF)
    doctor = make_user("sarah", "Sarah Wilson")

    assert resolve_prefix(session, doctor) == "SARW"


def test_name_uniqueness(session, make_user):
    existing = make_user("sarah", "Dr. Sarah Wilson")

    assert validate_doctor_name_uniqueness(session, "Sarah Walker") is False
    assert validate_doctor_name_uniqueness(session, "Dr. Sarah Walker", exclude_id=existing.id) is True
    assert validate_doctor_name_uniqueness(session, "Meera Iyer") is True


def test_concurrent_allocation_never_repeats(make_user):
    doctor = make_user("sarah", "Sarah Wilson")
    workers = 10

    def allocate(_):
        with Session(engine) as db:
            return generate_patient_id(db, doctor.id)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        ids = list(pool.map(allocate, range(workers)))

    assert len(set(ids)) == workers
    assert sorted(int(i[len("SARW"):]) for i in ids) == list(range(1, workers + 1))


def test_first_use_creates_counter(session, make_user):
    doctor = make_user("meera", "Meera Iyer")

    assert next_patient_number(session, doctor.id) == 1
    assert next_patient_number(session, doctor.id) == 2

"""Patients, appointments, prescriptions and payments through the API."""
from datetime import datetime, timedelta

import pytest

from conftest import PATIENT_PAYLOAD, login_client
from models import Payment, PaymentStatus
from routers.payments import apply_status_change
from services.file_store import LocalFileStore


@pytest.fixture
def other_doctor_client(make_user):
    make_user("rajesh", "Rajesh Sharma")
    return login_client("rajesh")


def _create_patient(api_client, **overrides):
    response = api_client.post("/api/patients", json={**PATIENT_PAYLOAD, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


# ==================== Patients ====================

def test_new_doctor_registers_patients_end_to_end(admin_client):
    response = admin_client.post("/api/users", json={
        "username": "sarah",
        "password": "sarah-pass-1",
        "email": "sarah@example.com",
        "full_name": "Dr. Sarah Wilson",
        "role": "doctor",
    })
    assert response.status_code == 201, response.text

    sarah = login_client("sarah", "sarah-pass-1")
    first = _create_patient(sarah)
    second = _create_patient(sarah, full_name="Lakshmi Rao")

    assert first["patient_id"] == "SARW1"
    assert second["patient_id"] == "SARW2"
    assert first["doctor_id"] == response.json()["id"]

    clash = admin_client.post("/api/users", json={
        "username": "sarah2",
        "password": "sarah-pass-2",
        "email": "walker@example.com",
        "full_name": "Sarah Walker",
        "role": "doctor",
    })
    assert clash.status_code == 400
    assert "conflicts with existing doctor" in clash.json()["detail"]


def test_patient_create_validation(doctor_client):
    response = doctor_client.post("/api/patients", json={"full_name": "No Details"})

    assert response.status_code == 400
    assert response.json()["errors"]


def test_patients_are_private_to_their_doctor(doctor_client, other_doctor_client):
    patient = _create_patient(doctor_client)

    assert other_doctor_client.get(f"/api/patients/{patient['id']}").status_code == 404
    assert other_doctor_client.put(f"/api/patients/{patient['id']}", json={"age": 50}).status_code == 404
    assert other_doctor_client.get("/api/patients").json() == []
    assert len(doctor_client.get("/api/patients").json()) == 1


def test_patient_list_is_own_even_for_admin(doctor_client, admin_client):
    patient = _create_patient(doctor_client)

    assert admin_client.get("/api/patients").json() == []
    assert admin_client.get(f"/api/patients/{patient['id']}").status_code == 200


def test_patient_search(doctor_client):
    _create_patient(doctor_client, full_name="Ravi Menon", phone_number="111")
    _create_patient(doctor_client, full_name="Lakshmi Rao", phone_number="222")

    names = [p["full_name"] for p in doctor_client.get("/api/patients", params={"search": "lak"}).json()]
    assert names == ["Lakshmi Rao"]

    by_code = doctor_client.get("/api/patients", params={"search": "sarw1"}).json()
    assert [p["patient_id"] for p in by_code] == ["SARW1"]

    by_phone = doctor_client.get("/api/patients", params={"search": "222"}).json()
    assert [p["full_name"] for p in by_phone] == ["Lakshmi Rao"]


def test_patient_list_is_newest_first_and_paginated(doctor_client):
    for name in ("A One", "B Two", "C Three"):
        _create_patient(doctor_client, full_name=name)

    page = doctor_client.get("/api/patients", params={"limit": 2}).json()
    assert [p["patient_id"] for p in page] == ["SARW3", "SARW2"]

    rest = doctor_client.get("/api/patients", params={"limit": 2, "offset": 2}).json()
    assert [p["patient_id"] for p in rest] == ["SARW1"]


def test_patient_update_keeps_identity(doctor_client):
    patient = _create_patient(doctor_client)

    response = doctor_client.put(
        f"/api/patients/{patient['id']}",
        json={"patient_id": "HACK1", "doctor_id": 999, "vikriti": "Pitta"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["vikriti"] == "Pitta"
    assert body["patient_id"] == patient["patient_id"]
    assert body["doctor_id"] == patient["doctor_id"]


# ==================== Appointments ====================

def test_appointment_lifecycle(doctor_client, doctor):
    patient = _create_patient(doctor_client)
    when = datetime(2026, 3, 14, 10, 30)

    created = doctor_client.post("/api/appointments", json={
        "patient_id": patient["id"],
        "appointment_date": when.isoformat(),
        "type": "consultation",
        "doctor_id": 999,
    })
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["doctor_id"] == doctor.id
    assert body["duration"] == 30
    assert body["status"] == "scheduled"
    assert body["patient"]["patient_id"] == patient["patient_id"]

    updated = doctor_client.put(f"/api/appointments/{body['id']}", json={"status": "completed"})
    assert updated.json()["status"] == "completed"

    # status transitions are unconstrained
    reopened = doctor_client.put(f"/api/appointments/{body['id']}", json={"status": "scheduled"})
    assert reopened.json()["status"] == "scheduled"


def test_appointment_requires_visible_patient(doctor_client, other_doctor_client):
    patient = _create_patient(doctor_client)

    response = other_doctor_client.post("/api/appointments", json={
        "patient_id": patient["id"],
        "appointment_date": "2026-03-14T10:00:00",
        "type": "consultation",
    })
    assert response.status_code == 404


def test_appointment_listing_by_day_and_scope(doctor_client, other_doctor_client, admin_client, doctor):
    patient = _create_patient(doctor_client)
    other_patient = _create_patient(other_doctor_client)
    for day, hour in ((14, 11), (14, 9), (15, 9)):
        doctor_client.post("/api/appointments", json={
            "patient_id": patient["id"],
            "appointment_date": datetime(2026, 3, day, hour).isoformat(),
            "type": "follow-up",
        })
    other_doctor_client.post("/api/appointments", json={
        "patient_id": other_patient["id"],
        "appointment_date": datetime(2026, 3, 14, 10).isoformat(),
        "type": "consultation",
    })

    day_view = doctor_client.get("/api/appointments", params={"date": "2026-03-14"}).json()
    assert [a["appointment_date"][11:16] for a in day_view] == ["09:00", "11:00"]

    # doctors cannot widen their scope through the query string
    others = doctor_client.get("/api/appointments", params={"doctor_id": other_patient["doctor_id"]}).json()
    assert {a["doctor_id"] for a in others} == {doctor.id}

    assert len(admin_client.get("/api/appointments").json()) == 4
    filtered = admin_client.get("/api/appointments", params={"doctor_id": doctor.id}).json()
    assert len(filtered) == 3

    first = day_view[0]["id"]
    assert other_doctor_client.get(f"/api/appointments/{first}").status_code == 404


# ==================== Prescriptions ====================

def test_prescription_create_and_fetch(doctor_client, other_doctor_client, doctor):
    patient = _create_patient(doctor_client)

    created = doctor_client.post("/api/prescriptions", json={
        "patient_id": patient["id"],
        "diagnosis": "Amavata",
        "treatment_plan": "Langhana followed by Deepana",
        "medications": [{"name": "Simhanada Guggulu", "dosage": "2 tabs", "frequency": "BD", "duration": "30 days"}],
    })
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["doctor_id"] == doctor.id
    assert body["medications"][0]["name"] == "Simhanada Guggulu"

    assert doctor_client.get(f"/api/prescriptions/{body['id']}").status_code == 200
    assert other_doctor_client.get(f"/api/prescriptions/{body['id']}").status_code == 404
    assert other_doctor_client.get("/api/prescriptions").json() == []
    listed = doctor_client.get("/api/prescriptions", params={"patient_id": patient["id"]}).json()
    assert [p["id"] for p in listed] == [body["id"]]


def test_prescription_for_hidden_patient(doctor_client, other_doctor_client):
    patient = _create_patient(doctor_client)

    response = other_doctor_client.post("/api/prescriptions", json={
        "patient_id": patient["id"],
        "diagnosis": "x",
        "treatment_plan": "y",
    })
    assert response.status_code == 404


def test_prescription_upload(doctor_client):
    response = doctor_client.post(
        "/api/prescriptions/upload",
        files={"prescription": ("scan.png", b"\x89PNG fake image bytes", "image/png")},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["url"] == f"/api/prescriptions/files/{body['filename']}"
    assert body["filename"].endswith(".png")

    served = doctor_client.get(body["url"])
    assert served.status_code == 200
    assert served.headers["content-type"] == "image/png"
    assert served.content == b"\x89PNG fake image bytes"


def test_uploaded_files_require_a_session(doctor_client, client):
    body = doctor_client.post(
        "/api/prescriptions/upload",
        files={"prescription": ("scan.pdf", b"%PDF-1.4 scan", "application/pdf")},
    ).json()

    assert client.get(body["url"]).status_code == 401
    assert doctor_client.get("/api/prescriptions/files/prescription_missing.pdf").status_code == 404
    assert doctor_client.get("/api/prescriptions/files/notes.txt").status_code == 404


def test_upload_extension_follows_content_type(doctor_client):
    response = doctor_client.post(
        "/api/prescriptions/upload",
        files={"prescription": ("evil.html", b"<script>alert(1)</script>", "image/png")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["filename"].endswith(".png")
    assert doctor_client.get(body["url"]).headers["content-type"] == "image/png"


def test_prescription_upload_rejects_wrong_type(doctor_client):
    response = doctor_client.post(
        "/api/prescriptions/upload",
        files={"prescription": ("notes.txt", b"plain text", "text/plain")},
    )
    assert response.status_code == 400


def test_prescription_upload_rejects_large_files(doctor_client, tmp_path):
    from main import app

    app.state.file_store = LocalFileStore(str(tmp_path), max_bytes=8)

    response = doctor_client.post(
        "/api/prescriptions/upload",
        files={"prescription": ("big.pdf", b"%PDF-1.4 way too long", "application/pdf")},
    )
    assert response.status_code == 400
    assert list(tmp_path.iterdir()) == []


def test_prescription_upload_requires_a_file(doctor_client):
    assert doctor_client.post("/api/prescriptions/upload").status_code == 400


# ==================== Payments ====================

def test_status_change_only_stamps_on_entering_completed():
    payment = Payment(patient_id=1, amount=100, payment_method="cash", payment_status=PaymentStatus.PENDING)
    first = datetime(2026, 1, 1)

    apply_status_change(payment, PaymentStatus.COMPLETED, now=first)
    assert payment.paid_at == first

    apply_status_change(payment, PaymentStatus.COMPLETED, now=first + timedelta(days=1))
    assert payment.paid_at == first

    apply_status_change(payment, PaymentStatus.REFUNDED, now=first + timedelta(days=2))
    assert payment.payment_status == PaymentStatus.REFUNDED
    assert payment.paid_at == first


def test_payment_lifecycle(doctor_client):
    patient = _create_patient(doctor_client)

    created = doctor_client.post("/api/payments", json={
        "patient_id": patient["id"],
        "amount": "1500.00",
        "payment_method": "upi",
    })
    assert created.status_code == 201, created.text
    payment = created.json()
    assert payment["payment_status"] == "pending"
    assert payment["paid_at"] is None

    completed = doctor_client.put(
        f"/api/payments/{payment['id']}/status",
        json={"status": "completed", "transaction_id": "UPI-123"},
    ).json()
    assert completed["payment_status"] == "completed"
    assert completed["transaction_id"] == "UPI-123"
    assert completed["paid_at"] is not None

    again = doctor_client.put(f"/api/payments/{payment['id']}/status", json={"status": "completed"}).json()
    assert again["paid_at"] == completed["paid_at"]
    assert again["transaction_id"] == "UPI-123"

    refunded = doctor_client.put(f"/api/payments/{payment['id']}/status", json={"status": "refunded"}).json()
    assert refunded["paid_at"] == completed["paid_at"]


def test_payment_created_completed_is_stamped(doctor_client):
    patient = _create_patient(doctor_client)

    payment = doctor_client.post("/api/payments", json={
        "patient_id": patient["id"],
        "amount": "800",
        "payment_method": "cash",
        "payment_status": "completed",
    }).json()

    assert payment["paid_at"] is not None


def test_payment_amount_must_be_positive(doctor_client):
    patient = _create_patient(doctor_client)

    response = doctor_client.post("/api/payments", json={
        "patient_id": patient["id"],
        "amount": "0",
        "payment_method": "cash",
    })
    assert response.status_code == 400


def test_payments_are_scoped_through_the_patient(doctor_client, other_doctor_client):
    patient = _create_patient(doctor_client)
    payment = doctor_client.post("/api/payments", json={
        "patient_id": patient["id"],
        "amount": "500",
        "payment_method": "card",
    }).json()

    assert other_doctor_client.get("/api/payments").json() == []
    assert other_doctor_client.put(
        f"/api/payments/{payment['id']}/status", json={"status": "completed"}
    ).status_code == 404
    assert other_doctor_client.post("/api/payments", json={
        "patient_id": patient["id"],
        "amount": "500",
        "payment_method": "card",
    }).status_code == 404
    assert [p["id"] for p in doctor_client.get("/api/payments").json()] == [payment["id"]]

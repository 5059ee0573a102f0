from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import Column, JSON


class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    STAFF = "staff"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    CHEQUE = "cheque"
    ONLINE = "online"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class LoginStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    LOCKED = "locked"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    password_hash: Optional[str] = None  # None for accounts created through OAuth
    email: str = Field(index=True)
    full_name: str
    role: UserRole = Field(default=UserRole.STAFF, index=True)
    is_active: bool = Field(default=True)
    google_id: Optional[str] = Field(default=None, unique=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class PatientCounter(SQLModel, table=True):
    """Last issued patient sequence number, one row per doctor"""
    __tablename__ = "patient_counter"

    id: Optional[int] = Field(default=None, primary_key=True)
    doctor_id: int = Field(foreign_key="user.id", unique=True)
    last_count: int = Field(default=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Patient(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: str = Field(unique=True, index=True)  # e.g. RAJS7
    doctor_id: int = Field(foreign_key="user.id", index=True)
    full_name: str
    age: int
    gender: str
    phone_number: str
    email: Optional[str] = None
    address: Optional[str] = None
    prakriti: str  # Ayurvedic constitution
    vikriti: Optional[str] = None  # Current imbalance
    chief_complaints: str
    medical_history: Optional[str] = None
    allergies: Optional[str] = None
    emergency_contact: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Appointment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patient.id", index=True)
    doctor_id: int = Field(foreign_key="user.id", index=True)
    appointment_date: datetime = Field(index=True)
    duration: int = Field(default=30)  # minutes
    type: str  # consultation, follow-up, panchakarma
    status: AppointmentStatus = Field(default=AppointmentStatus.SCHEDULED)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    patient: Optional[Patient] = Relationship()


class Prescription(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patient.id", index=True)
    doctor_id: int = Field(foreign_key="user.id", index=True)
    appointment_id: Optional[int] = Field(default=None, foreign_key="appointment.id")
    diagnosis: str
    treatment_plan: str
    medications: Optional[List[dict]] = Field(default=None, sa_column=Column(JSON))
    dietary_recommendations: Optional[str] = None
    lifestyle_modifications: Optional[str] = None
    follow_up_date: Optional[datetime] = None
    prescription_url: Optional[str] = None  # set for uploaded prescription files
    created_at: datetime = Field(default_factory=datetime.utcnow)

    patient: Optional[Patient] = Relationship()


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patient.id", index=True)
    appointment_id: Optional[int] = Field(default=None, foreign_key="appointment.id")
    amount: Decimal = Field(max_digits=10, decimal_places=2)
    payment_method: PaymentMethod
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None  # only set by a transition to completed
    created_at: datetime = Field(default_factory=datetime.utcnow)

    patient: Optional[Patient] = Relationship()


class UserLoginLog(SQLModel, table=True):
    """Append-only record of login attempts"""
    __tablename__ = "user_login_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    login_time: datetime = Field(default_factory=datetime.utcnow, index=True)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    session_id: Optional[str] = None
    login_status: LoginStatus = Field(index=True)

from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import (
    UserRole,
    AppointmentStatus,
    PaymentMethod,
    PaymentStatus,
    LoginStatus,
)

# bcrypt only accepts passwords up to 72 bytes
PASSWORD_MAX_LENGTH = 72


def check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > PASSWORD_MAX_LENGTH:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} bytes")
    return value


# ==================== Auth ====================

class UserLogin(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("new_password")
    @classmethod
    def new_password_fits_bcrypt(cls, v):
        return check_password_bytes(v)


# ==================== Users ====================

class UserCreate(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=PASSWORD_MAX_LENGTH)
    email: EmailStr
    full_name: str = Field(min_length=1)
    role: UserRole = UserRole.STAFF
    is_active: bool = True

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v):
        return check_password_bytes(v)


class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=1)
    password: Optional[str] = Field(default=None, min_length=8, max_length=PASSWORD_MAX_LENGTH)
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(default=None, min_length=1)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v):
        return check_password_bytes(v)


class UserStatusToggle(BaseModel):
    is_active: bool


class UserResponse(BaseModel):
    """Public view of a user; never carries the password hash"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ==================== Patients ====================

class PatientCreate(BaseModel):
    full_name: str = Field(min_length=1)
    age: int = Field(ge=0, le=150)
    gender: str = Field(min_length=1)
    phone_number: str = Field(min_length=1)
    email: Optional[str] = None
    address: Optional[str] = None
    prakriti: str = Field(min_length=1)
    vikriti: Optional[str] = None
    chief_complaints: str = Field(min_length=1)
    medical_history: Optional[str] = None
    allergies: Optional[str] = None
    emergency_contact: Optional[str] = None


class PatientUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1)
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    prakriti: Optional[str] = None
    vikriti: Optional[str] = None
    chief_complaints: Optional[str] = None
    medical_history: Optional[str] = None
    allergies: Optional[str] = None
    emergency_contact: Optional[str] = None


class PatientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    doctor_id: int
    full_name: str
    age: int
    gender: str
    phone_number: str
    email: Optional[str] = None
    address: Optional[str] = None
    prakriti: str
    vikriti: Optional[str] = None
    chief_complaints: str
    medical_history: Optional[str] = None
    allergies: Optional[str] = None
    emergency_contact: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PatientSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    full_name: str
    phone_number: str


# ==================== Appointments ====================

class AppointmentCreate(BaseModel):
    patient_id: int
    appointment_date: datetime
    duration: int = Field(default=30, gt=0)
    type: str = Field(min_length=1)
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: Optional[str] = None


class AppointmentUpdate(BaseModel):
    appointment_date: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, gt=0)
    type: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    appointment_date: datetime
    duration: int
    type: str
    status: AppointmentStatus
    notes: Optional[str] = None
    created_at: datetime
    patient: Optional[PatientSummary] = None


# ==================== Prescriptions ====================

class Medication(BaseModel):
    name: str
    dosage: str
    frequency: str
    duration: str
    instructions: str = ""


class PrescriptionCreate(BaseModel):
    patient_id: int
    appointment_id: Optional[int] = None
    diagnosis: str = Field(min_length=1)
    treatment_plan: str = Field(min_length=1)
    medications: List[Medication] = []
    dietary_recommendations: Optional[str] = None
    lifestyle_modifications: Optional[str] = None
    follow_up_date: Optional[datetime] = None
    prescription_url: Optional[str] = None


class PrescriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    appointment_id: Optional[int] = None
    diagnosis: str
    treatment_plan: str
    medications: Optional[List[Medication]] = None
    dietary_recommendations: Optional[str] = None
    lifestyle_modifications: Optional[str] = None
    follow_up_date: Optional[datetime] = None
    prescription_url: Optional[str] = None
    created_at: datetime
    patient: Optional[PatientSummary] = None


class UploadResponse(BaseModel):
    url: str
    filename: str


# ==================== Payments ====================

class PaymentCreate(BaseModel):
    patient_id: int
    appointment_id: Optional[int] = None
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    transaction_id: Optional[str] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    appointment_id: Optional[int] = None
    amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    patient: Optional[PatientSummary] = None


# ==================== Audit log ====================

class LoginLogUser(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    role: UserRole


class LoginLogResponse(BaseModel):
    id: int
    user_id: int
    login_time: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[dict] = None
    session_id: Optional[str] = None
    login_status: LoginStatus
    user: Optional[LoginLogUser] = None


# ==================== Dashboard ====================

class DashboardMetrics(BaseModel):
    total_patients: int
    today_appointments: int
    monthly_revenue: Decimal
    pending_payments: Decimal


class AdminDashboardMetrics(BaseModel):
    total_users: int
    total_doctors: int
    total_staff: int
    total_patients: int
    total_appointments: int
    total_revenue: Decimal


class DoctorStats(BaseModel):
    total_patients: int
    active_patients: int
    total_appointments: int
    monthly_appointments: int
    last_active: Optional[datetime] = None


class DoctorPatient(PatientResponse):
    total_appointments: int = 0
    last_visit_date: Optional[datetime] = None

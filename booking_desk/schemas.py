import re
from datetime import date, datetime, time

from pydantic import BaseModel, Field, validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_email(value: str) -> str:
    normalized = value.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValueError("email must be a valid address")
    return normalized


def _check_not_blank(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


class ReservationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=20)
    email: str = Field(min_length=3, max_length=150)
    service_id: int = Field(gt=0)
    day: date
    at: time
    notes: str | None = None

    @validator("name", "phone")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        return _check_not_blank(value)

    @validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _check_email(value)


class ManagerOut(BaseModel):
    id: int
    name: str
    email: str
    role: str


class ReservationOut(BaseModel):
    id: int
    client_name: str
    client_phone: str
    client_email: str
    service_name: str
    day: date
    at: time
    status: str
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    manager: ManagerOut | None = None


class NotificationLinkOut(BaseModel):
    link: str


class ServiceIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    price: int = Field(default=0, ge=0)
    description: str | None = Field(default=None, max_length=500)
    duration_min: int = Field(default=60, ge=1, le=480)
    is_active: bool = True

    @validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _check_not_blank(value)


class ServiceOut(BaseModel):
    id: int
    name: str
    price: int
    description: str | None = None
    duration_min: int
    is_active: bool
    created_at: datetime


class UserIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=150)
    phone: str = Field(min_length=1, max_length=20)
    password: str | None = Field(default=None, min_length=6, max_length=200)
    role: str = Field(default="CLIENT", min_length=1, max_length=32)
    department: str | None = Field(default=None, max_length=100)
    is_active: bool = True

    @validator("name", "phone")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        return _check_not_blank(value)

    @validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _check_email(value)


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    phone: str
    role: str
    role_label: str
    department: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    managed_reservations: int = 0


class RoleOption(BaseModel):
    value: str
    label: str


class LoginIn(BaseModel):
    email: str = Field(min_length=3, max_length=150)
    password: str = Field(min_length=1, max_length=200)


class LoginOut(BaseModel):
    token: str
    token_type: str = "Bearer"
    name: str
    email: str
    role: str


class ReservationSummaryOut(BaseModel):
    total: int
    pending: int
    confirmed: int
    rejected: int
    today: int


class ServiceUsageOut(BaseModel):
    service_id: int
    service_name: str
    reservations: int


class MonthlyCountOut(BaseModel):
    month: int
    confirmed: int

# healthmate/schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# Auth
class SignupIn(CamelModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    password: Optional[str] = None


class AdminUserIn(SignupIn):
    is_admin: bool = False


class LoginIn(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordIn(CamelModel):
    email: Optional[str] = None


class VerifyOTPIn(CamelModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class ResetPasswordIn(CamelModel):
    email: Optional[str] = None
    new_password: Optional[str] = None


# Users
class UserOut(CamelModel):
    id: int
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    profile_img: Optional[str] = None
    is_admin: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdateIn(CamelModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None


class AdminUserUpdateIn(ProfileUpdateIn):
    is_admin: Optional[bool] = None


# Reports
class ManualReportIn(CamelModel):
    report_type: Optional[str] = None
    date: Optional[str] = None
    manual_data: Optional[Any] = None


class ReportUpdateIn(CamelModel):
    report_type: Optional[str] = None
    date: Optional[str] = None
    manual_data: Optional[Dict[str, Any]] = None


class ReportOut(CamelModel):
    id: int
    user_id: int
    report_type: str
    date: datetime
    file_url: Optional[str] = None
    manual_data: Optional[Dict[str, Any]] = None
    ai_summary: Optional[str] = None
    abnormalities: List[str] = []
    doctor_questions: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReportTimelineOut(CamelModel):
    id: int
    report_type: str
    date: datetime
    ai_summary: Optional[str] = None
    abnormalities: List[str] = []
    created_at: Optional[datetime] = None


# Vitals
class VitalIn(CamelModel):
    date: Optional[str] = None
    bp: Optional[str] = None
    sugar: Optional[float] = None
    weight: Optional[float] = None
    pulse: Optional[float] = None
    temperature: Optional[float] = None
    notes: Optional[str] = None


class VitalOut(CamelModel):
    id: int
    user_id: int
    date: datetime
    bp: Optional[str] = None
    sugar: Optional[float] = None
    weight: Optional[float] = None
    pulse: Optional[float] = None
    temperature: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Chat
class ChatMessageIn(CamelModel):
    message: Optional[Any] = None


def dump(schema, obj) -> Dict[str, Any]:
    return schema.model_validate(obj).model_dump(by_alias=True)


def dump_all(schema, rows) -> List[Dict[str, Any]]:
    return [dump(schema, r) for r in rows]


def envelope(message: str, data: Any = None, **extra) -> Dict[str, Any]:
    """Success body shared by every endpoint: {success, message, data?, count?, ...}."""
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body

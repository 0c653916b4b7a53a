"""
Database Schemas for SkillHorizon

Collections: "users", "teachers" (teacher requests), "classes", "assignments"
and "payments". The models below are the request bodies that create or
update documents in them; the server fills in ownership (email) and
lifecycle (role, status) fields itself.
"""
from typing import Optional, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator
from datetime import datetime

Role = Literal["Student", "Teacher", "Admin"]
Status = Literal["Pending", "Accepted", "Rejected"]


def normalize_email(email: str) -> str:
    """Emails are matched case-insensitively, so they are stored lowercased."""
    return email.strip().lower()


class TokenRequest(BaseModel):
    email: EmailStr = Field(..., description="Identity asserted by the token")
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return normalize_email(v)


class UserCreate(BaseModel):
    name: Optional[str] = Field(None, description="Display name")
    email: EmailStr = Field(..., description="Email address, unique per user")
    photo: Optional[str] = Field(None, description="Profile photo URL")

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return normalize_email(v)


class TeacherRequestCreate(BaseModel):
    name: str
    image: Optional[str] = None
    title: str = Field(..., description="Headline the applicant wants to teach under")
    category: str
    experience: Optional[str] = Field(None, description="beginner, mid-level or experienced")


class ClassCreate(BaseModel):
    title: str
    name: Optional[str] = Field(None, description="Teacher display name")
    price: float = Field(..., ge=0, allow_inf_nan=False)
    image: Optional[str] = None
    description: Optional[str] = None


class ClassUpdate(BaseModel):
    title: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    image: Optional[str] = None
    description: Optional[str] = None


class AssignmentCreate(BaseModel):
    class_id: str
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None


class PaymentIntentRequest(BaseModel):
    price: float = Field(..., allow_inf_nan=False)


class PaymentCreate(BaseModel):
    class_id: str
    price: float = Field(..., ge=0, allow_inf_nan=False)
    transaction_id: str = Field(..., description="Stripe payment intent id")
    title: Optional[str] = None

"""
Authentication schemas.
"""
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator, model_validator


class SignupRequest(BaseModel):
    """User registration request."""
    name: str
    email: EmailStr
    password: str
    confirm_password: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Jane Doe",
                "email": "jane@example.com",
                "password": "Secret123!",
                "confirm_password": "Secret123!"
            }
        }


class SigninRequest(BaseModel):
    """User login request."""
    email: EmailStr
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "email": "jane@example.com",
                "password": "Secret123!"
            }
        }


class ForgotPasswordRequest(BaseModel):
    """Request password reset."""
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """New password for a reset token (token travels in the query string)."""
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""
    refresh_token: str


class ResendVerificationRequest(BaseModel):
    """Resend verification email."""
    email: EmailStr


class UserPublic(BaseModel):
    """User view returned to clients. Never carries credentials."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    is_verified: bool
    created_at: datetime


class TokenPairResponse(BaseModel):
    """Rotated access + refresh tokens."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # access token lifetime, seconds


class AuthResponse(TokenPairResponse):
    """Signup / signin response."""
    message: str
    user: UserPublic


class CurrentUserResponse(BaseModel):
    user: UserPublic
    message: Optional[str] = "Token is valid"

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.core.config import settings
from app.schemas.user import UserOut
from app.services.users import normalize_email


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_new_password(password: str, confirm_password: str) -> None:
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters.")
    if password != confirm_password:
        raise ValueError("Passwords do not match.")


class RegisterIn(CamelModel):
    name: str
    email: EmailStr
    password: str
    confirm_password: str

    @field_validator("name")
    @classmethod
    def name_min_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters.")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_email(v) if isinstance(v, str) else v

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterIn":
        _check_new_password(self.password, self.confirm_password)
        return self


class Login(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_email(v)


class RefreshTokenIn(CamelModel):
    refresh_token: Optional[str] = None


class ForgotPasswordIn(CamelModel):
    email: str

    @field_validator("email")
    @classmethod
    def normalize(cls, v: str) -> str:
        v = normalize_email(v)
        if not v:
            raise ValueError("Please provide your email.")
        return v


class VerifyOtpIn(CamelModel):
    email: str
    otp: str

    @field_validator("email")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("otp")
    @classmethod
    def strip_otp(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Please provide email and OTP.")
        return v


class VerifyOtpOut(CamelModel):
    reset_token: str


class ResetPasswordIn(CamelModel):
    reset_token: str
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordIn":
        _check_new_password(self.password, self.confirm_password)
        return self


class AuthSession(CamelModel):
    """Payload returned by register / login / refresh-token."""

    user: UserOut
    access_token: str
    refresh_token: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

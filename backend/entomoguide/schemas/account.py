"""
EntomoGuide Backend: Account Request/Response Schemas
======================================================

What:  Pydantic models for registration, login, profiles and dashboard data.
How:   Python attribute names are English; the JSON contract keeps the field
       names the mobile client already sends (`nome`, `senha`, `tipo`, ...)
       through aliases. Responses are built from ORM rows by attribute name
       and serialized under the aliased names.
Who:   Routers in routes/accounts.py.

Security:
    No response model declares a password field. AccountResponse is built from
    the ORM row, so `password_hash` can never leak into a response.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from entomoguide.services.security import MAX_PASSWORD_BYTES, password_too_long


def normalize_email(value: str) -> str:
    value = value.strip()
    local, _, domain = value.partition("@")
    if not local or not domain or "." not in domain or " " in value:
        raise ValueError("Invalid e-mail address")
    return value.lower()


def check_password(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    return value


def check_login(value: str) -> str:
    """Login handles share the lookup key with e-mails, so they may not look like one."""
    value = value.strip()
    if "@" in value:
        raise ValueError("Login must not contain '@'")
    return value


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(BaseModel):
    """Body of POST /clientes."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="nome", min_length=1, max_length=120)
    email: str = Field(max_length=255)
    password: str = Field(alias="senha", min_length=1, max_length=128)
    login: Optional[str] = Field(default=None, max_length=80)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v)

    @field_validator("login")
    @classmethod
    def validate_login(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return check_login(v) or None


class LoginRequest(BaseModel):
    """
    Body of POST /login. The `email` field also accepts a login handle,
    which is how the mobile client sends it.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(alias="senha", min_length=1, max_length=128)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v)


class ApproveRequest(BaseModel):
    """Body of PUT /aprovarUsuario."""

    id: int = Field(gt=0, description="Account to approve")


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class AccountResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int
    name: str = Field(serialization_alias="nome")
    email: str
    login: Optional[str] = None
    profile_photo: Optional[str] = Field(
        default=None, serialization_alias="foto_perfil"
    )
    status: str
    role: str = Field(serialization_alias="tipo")
    created_at: Optional[datetime] = None


class RegisterResponse(BaseModel):
    message: str = "Registration request received. An administrator will review it."
    id: int
    status: str


class LoginUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: str = Field(serialization_alias="tipo")


class LoginResponse(BaseModel):
    message: str = "Login successful"
    token: str
    user: LoginUser


class ApprovalResponse(BaseModel):
    message: str
    id: int
    status: str


class StatusCount(BaseModel):
    """One row of GET /dashboard/status-usuarios."""

    status: str
    count: int = Field(serialization_alias="quantidade")


class DailyCount(BaseModel):
    """One row of GET /dashboard/cadastros-por-dia."""

    day: date = Field(serialization_alias="dia")
    count: int = Field(serialization_alias="quantidade")

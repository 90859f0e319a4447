"""
EntomoGuide Backend: Account SQLAlchemy Model
==============================================

What:  ORM model for the `accounts` table (registered users and administrators).
How:   Inherits from the shared DeclarativeBase; Alembic reads it for migrations.
Who:   Mutated only by CredentialStore; read by the approval workflow and auth gate.

Table Design:
    - email unique, login unique (nullable: login by e-mail alone is allowed)
    - password_hash holds a bcrypt hash, never the plaintext
    - role / status are short strings guarded by CHECK constraints, so a bad
      value cannot reach the table even through a hand-written UPDATE
    - created_at is assigned by the server and never updated
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from entomoguide.database import Base


class AccountStatus(str, enum.Enum):
    """Lifecycle of an account. New accounts always start as PENDING."""

    PENDING = "pending"
    ACTIVE = "active"


class Role(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class Account(Base):
    """
    A person who can log in to the guide.

    Lifecycle:
        1. Registered through POST /clientes with status='pending'
        2. An administrator approves it (status='active') → user is e-mailed
        3. An administrator may revert it to 'pending' (no e-mail)
        4. Deleted by its owner or an administrator
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Optional handle accepted by /login in place of the e-mail
    login: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, unique=True)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Locator of the profile picture (/uploads/<name>), if any
    profile_photo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=Role.USER.value,
        server_default=text("'user'"),
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccountStatus.PENDING.value,
        server_default=text("'pending'"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="ck_accounts_role"),
        CheckConstraint("status IN ('pending', 'active')", name="ck_accounts_status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email='{self.email}', status='{self.status}')>"

"""
EntomoGuide Backend: Credential Store
======================================

What:  The only component that reads and writes Account rows.
How:   Async SQLAlchemy statements on a caller-provided session. Mutating
       methods flush but do not commit; the calling workflow (or the request
       session dependency) owns the transaction boundary.
Who:   AccountWorkflow, the profile routes, and the admin dashboard.

Password handling:
    `create` and `update_profile` receive the plaintext and store only a
    bcrypt hash. Plaintext never reaches a log line or an exception context.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from entomoguide.exceptions import DuplicateEmailError, PersistenceError, ValidationError
from entomoguide.models.account import Account, AccountStatus, Role
from entomoguide.services.security import hash_password

logger = logging.getLogger(__name__)

# Columns a profile update may touch; `password` is re-hashed into password_hash
PROFILE_FIELDS = frozenset({"name", "email", "login", "password", "profile_photo"})


def _check_login(login: Optional[str]) -> Optional[str]:
    if login is not None and "@" in login:
        raise ValidationError("The login must not contain '@'.", field="login")
    return login


class CredentialStore:
    """
    Persistence of accounts.

    Args:
        bcrypt_rounds: Cost factor for new hashes
    """

    def __init__(self, bcrypt_rounds: int = 10):
        self.bcrypt_rounds = bcrypt_rounds

    # ── Create ────────────────────────────────────────────────────────────

    async def create(
        self,
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        login: Optional[str] = None,
        role: Role = Role.USER,
    ) -> Account:
        """
        Inserts a new account in the `pending` state.

        Raises:
            DuplicateEmailError: email (or login) already registered
            ValidationError:     login handle contains "@", or password too long
            PersistenceError:    any other database failure
        """
        _check_login(login)
        password_hash = await hash_password(password, self.bcrypt_rounds)
        account = Account(
            name=name,
            email=email,
            login=login,
            password_hash=password_hash,
            role=role.value,
            status=AccountStatus.PENDING.value,
        )
        db.add(account)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.info("Registration rejected: duplicate e-mail or login")
            raise DuplicateEmailError(email)
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError(context={"operation": "create_account", "error": str(e)})

        logger.info("Account created: id=%s status=%s", account.id, account.status)
        return account

    # ── Read ──────────────────────────────────────────────────────────────

    async def find_by_email_or_login(self, db: AsyncSession, key: str) -> Optional[Account]:
        key = key.strip()
        email = key.lower()
        # An e-mail match wins over a login match
        stmt = (
            select(Account)
            .where(or_(Account.email == email, Account.login == key))
            .order_by(case((Account.email == email, 0), else_=1), Account.id)
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    async def get(self, db: AsyncSession, account_id: int) -> Optional[Account]:
        return await db.get(Account, account_id)

    async def list_by_status(self, db: AsyncSession, status: AccountStatus) -> List[Account]:
        stmt = select(Account).where(Account.status == status.value).order_by(Account.id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ── Update ────────────────────────────────────────────────────────────

    async def set_status(self, db: AsyncSession, account_id: int, status: AccountStatus) -> int:
        """Returns the number of rows changed (0 when the account is absent)."""
        stmt = update(Account).where(Account.id == account_id).values(status=status.value)
        result = await db.execute(stmt)
        return result.rowcount

    async def update_profile(
        self, db: AsyncSession, account_id: int, fields: Mapping[str, Any]
    ) -> int:
        """
        Applies an allow-listed partial update.

        Raises:
            ValidationError:     unknown field, or nothing to update
            DuplicateEmailError: new email/login collides with another account
            PersistenceError:    any other database failure
        """
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValidationError(
                "Some fields cannot be updated.",
                context={"fields": sorted(unknown)},
            )

        values: Dict[str, Any] = {}
        for key, value in fields.items():
            if key == "password":
                if value:
                    values["password_hash"] = await hash_password(value, self.bcrypt_rounds)
            elif key == "email" and value is not None:
                values["email"] = value.strip().lower()
            elif key == "login":
                values["login"] = _check_login(value)
            else:
                values[key] = value

        if not values:
            raise ValidationError("No data to update.")

        stmt = update(Account).where(Account.id == account_id).values(**values)
        try:
            result = await db.execute(stmt)
        except IntegrityError:
            await db.rollback()
            raise DuplicateEmailError(values.get("email"))
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError(context={"operation": "update_profile", "error": str(e)})
        logger.info("Account %s updated: %s", account_id, sorted(k for k in values if k != "password_hash"))
        return result.rowcount

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete(self, db: AsyncSession, account_id: int) -> int:
        result = await db.execute(delete(Account).where(Account.id == account_id))
        return result.rowcount

    # ── Dashboard aggregates ──────────────────────────────────────────────

    async def count_by_status(self, db: AsyncSession) -> List[Tuple[str, int]]:
        stmt = (
            select(Account.status, func.count(Account.id))
            .group_by(Account.status)
            .order_by(Account.status)
        )
        result = await db.execute(stmt)
        return [(status, count) for status, count in result.all()]

    async def registrations_per_day(
        self, db: AsyncSession, start: date, end: date
    ) -> List[Tuple[date, int]]:
        """
        Number of accounts created on each day in [start, end] (UTC days).
        Days without registrations are omitted.
        """
        if end < start:
            raise ValidationError("The end date must not be before the start date.")

        lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
        upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
        stmt = select(Account.created_at).where(
            Account.created_at >= lower, Account.created_at < upper
        )
        result = await db.execute(stmt)

        per_day: Dict[date, int] = {}
        for (created_at,) in result.all():
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            day = created_at.astimezone(timezone.utc).date()
            per_day[day] = per_day.get(day, 0) + 1
        return sorted(per_day.items())

"""
EntomoGuide Backend: Account Approval Workflow
===============================================

What:  Registration, login, approval and revert of accounts.
How:   A small state machine over Account.status:

           register ──► pending ──approve──► active
                           ▲                   │
                           └──revert_to_pending┘

       Each transition first checks that the account exists
       (AccountNotFoundError otherwise) and commits before any e-mail goes
       out, so no database connection is held while talking to SMTP.
Who:   routes/accounts.py.

Notification asymmetry:
    register: the admin e-mail is fire-and-forget. A failure is logged and
              the registration still succeeds.
    approve:  the user e-mail is awaited and its result is returned, so the
              route can answer "approved, but the e-mail failed".
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from entomoguide.exceptions import (
    AccountNotFoundError,
    InvalidCredentialsError,
    RegistrationPendingError,
)
from entomoguide.models.account import Account, AccountStatus
from entomoguide.services.credential_store import CredentialStore
from entomoguide.services.notification import (
    NotificationDispatcher,
    NotificationKind,
    NotificationResult,
)
from entomoguide.services.security import TokenService, hash_password, verify_password

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    account: Account
    notification: Optional[NotificationResult]
    already_active: bool = False

    @property
    def notification_failed(self) -> bool:
        return self.notification is not None and not self.notification.succeeded


class AccountWorkflow:
    """
    Orchestrates the account lifecycle.

    Args:
        store:      CredentialStore
        tokens:     TokenService used by login
        dispatcher: NotificationDispatcher for both e-mails
    """

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        dispatcher: NotificationDispatcher,
    ):
        self.store = store
        self.tokens = tokens
        self.dispatcher = dispatcher
        self._unknown_account_hash: Optional[str] = None

    async def _dummy_hash(self) -> str:
        if self._unknown_account_hash is None:
            self._unknown_account_hash = await hash_password("not-a-real-password", self.store.bcrypt_rounds)
        return self._unknown_account_hash

    # ── Register ──────────────────────────────────────────────────────────

    async def register(
        self,
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        login: Optional[str] = None,
        defer: Optional[Callable[..., Any]] = None,
    ) -> Account:
        """
        Creates a pending account and notifies the administrator.

        Args:
            defer: Optional scheduler (e.g. BackgroundTasks.add_task). When
                   given, the notification runs after the response is sent;
                   otherwise it is awaited here. Either way its failure never
                   fails the registration.

        Raises:
            DuplicateEmailError: email already registered (nothing is sent)
        """
        account = await self.store.create(db, name=name, email=email, password=password, login=login)
        await db.commit()

        payload = {"name": account.name, "email": account.email, "account_id": account.id}
        if defer is not None:
            defer(self._notify_admin, payload)
        else:
            await self._notify_admin(payload)
        return account

    async def _notify_admin(self, payload: dict) -> None:
        result = await self.dispatcher.notify(NotificationKind.ADMIN_NEW_REGISTRATION, payload)
        if not result.succeeded:
            logger.warning(
                "Admin was not notified of registration %s: %s",
                payload.get("account_id"),
                result.reason,
            )

    # ── Login ─────────────────────────────────────────────────────────────

    async def login(self, db: AsyncSession, key: str, password: str) -> Tuple[str, Account]:
        """
        Verifies credentials and issues a token.

        Order matters: the password is checked before the status, so the
        "pending approval" answer is only given to someone who knows the
        password.

        Raises:
            InvalidCredentialsError:  unknown e-mail/login or wrong password
            RegistrationPendingError: right password, account still pending
        """
        account = await self.store.find_by_email_or_login(db, key)
        if account is None:
            # Same bcrypt cost as a wrong password, so timing does not reveal
            # which e-mails are registered
            await verify_password(password, await self._dummy_hash())
            raise InvalidCredentialsError()

        if not await verify_password(password, account.password_hash):
            logger.info("Failed login for account %s", account.id)
            raise InvalidCredentialsError()

        if account.status != AccountStatus.ACTIVE.value:
            raise RegistrationPendingError(context={"status": account.status})

        token = self.tokens.issue(account)
        logger.info("Account %s logged in", account.id)
        return token, account

    # ── Approve / Revert ──────────────────────────────────────────────────

    async def approve(self, db: AsyncSession, account_id: int) -> ApprovalResult:
        """
        pending → active, then e-mails the account holder.

        Approving an account that is already active re-confirms the status
        and sends nothing.

        Raises:
            AccountNotFoundError: no such account (nothing written, nothing sent)
        """
        account = await self.store.get(db, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        if account.status == AccountStatus.ACTIVE.value:
            logger.info("Account %s already active; approval is a no-op", account_id)
            return ApprovalResult(account=account, notification=None, already_active=True)

        await self.store.set_status(db, account_id, AccountStatus.ACTIVE)
        await db.commit()
        logger.info("Account %s approved", account_id)

        result = await self.dispatcher.notify(
            NotificationKind.USER_APPROVED,
            {"name": account.name, "email": account.email, "account_id": account.id},
        )
        if not result.succeeded:
            logger.error("Account %s approved but notification failed: %s", account_id, result.reason)
        return ApprovalResult(account=account, notification=result)

    async def revert_to_pending(self, db: AsyncSession, account_id: int) -> Account:
        """active → pending. No notification."""
        account = await self.store.get(db, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        await self.store.set_status(db, account_id, AccountStatus.PENDING)
        await db.commit()
        logger.info("Account %s moved back to pending", account_id)
        return account

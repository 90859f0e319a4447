"""
EntomoGuide Backend: Account Route Handlers
============================================

What:  Login, registration, approval workflow, profiles and the admin dashboard.
How:   Thin handlers: parse the request, call AccountWorkflow / CredentialStore,
       shape the response. Failures are raised as EntomoGuideError subclasses
       and rendered by the global handlers in main.py.
Who:   The mobile client (login, registration, profile) and the admin panel.

Routes:
    POST   /login                        public
    POST   /clientes                     public (registration)
    GET    /clientes                     admin  (active accounts)
    GET    /clientesPendentes            admin  (pending accounts)
    GET    /clientes/{id}                owner or admin
    PUT    /clientes/{id}                owner or admin (multipart, optional photo)
    DELETE /clientes/{id}                owner or admin
    PUT    /aprovarUsuario               admin  (body: {"id": N})
    PUT    /usuarios/{id}/pendente       admin
    GET    /dashboard/status-usuarios    admin
    GET    /dashboard/cadastros-por-dia  admin  (?inicio=YYYY-MM-DD&fim=YYYY-MM-DD)
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from entomoguide.database import get_db_session
from entomoguide.deps import (
    get_current_claim,
    get_storage,
    get_store,
    get_workflow,
    require_admin,
)
from entomoguide.exceptions import (
    AccountNotFoundError,
    NotificationDeliveryError,
    ValidationError,
)
from entomoguide.models.account import AccountStatus
from entomoguide.schemas.account import (
    AccountResponse,
    ApprovalResponse,
    ApproveRequest,
    DailyCount,
    LoginRequest,
    LoginResponse,
    LoginUser,
    RegisterRequest,
    RegisterResponse,
    StatusCount,
    check_login,
    check_password,
    normalize_email,
)
from entomoguide.schemas.common import ErrorResponse, MessageResponse
from entomoguide.services.account_workflow import AccountWorkflow
from entomoguide.services.credential_store import CredentialStore
from entomoguide.services.file_service import FileService
from entomoguide.services.security import Claim, ensure_owner_or_admin

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Accounts"])


# ══════════════════════════════════════════════════════════════════════════
# Public
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"description": "Unknown e-mail or wrong password", "model": ErrorResponse},
        403: {"description": "Registration pending approval", "model": ErrorResponse},
    },
    summary="Log in and receive a session token",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
    workflow: AccountWorkflow = Depends(get_workflow),
) -> LoginResponse:
    token, account = await workflow.login(db, body.email, body.password)
    return LoginResponse(token=token, user=LoginUser.model_validate(account))


@router.post(
    "/clientes",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "E-mail already registered", "model": ErrorResponse}},
    summary="Request an account (starts pending)",
)
async def register(
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    workflow: AccountWorkflow = Depends(get_workflow),
) -> RegisterResponse:
    account = await workflow.register(
        db,
        name=body.name,
        email=body.email,
        password=body.password,
        login=body.login,
        defer=background_tasks.add_task,
    )
    return RegisterResponse(id=account.id, status=account.status)


# ══════════════════════════════════════════════════════════════════════════
# Admin: approval workflow
# ══════════════════════════════════════════════════════════════════════════


@router.put(
    "/aprovarUsuario",
    response_model=ApprovalResponse,
    responses={
        404: {"description": "Account not found", "model": ErrorResponse},
        502: {"description": "Approved, but the e-mail could not be sent", "model": ErrorResponse},
    },
    summary="Approve a pending account and e-mail its owner",
)
async def approve_account(
    body: ApproveRequest,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    workflow: AccountWorkflow = Depends(get_workflow),
) -> ApprovalResponse:
    result = await workflow.approve(db, body.id)

    if result.notification_failed:
        raise NotificationDeliveryError(
            message="Account approved, but the confirmation e-mail could not be sent.",
            context={
                "id": result.account.id,
                "status": result.account.status,
                "reason": result.notification.reason,
            },
        )

    message = "Account approved."
    if result.already_active:
        message = "Account was already active."
    return ApprovalResponse(message=message, id=result.account.id, status=result.account.status)


@router.put(
    "/usuarios/{account_id}/pendente",
    response_model=ApprovalResponse,
    summary="Move an account back to pending",
)
async def revert_to_pending(
    account_id: int,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    workflow: AccountWorkflow = Depends(get_workflow),
) -> ApprovalResponse:
    account = await workflow.revert_to_pending(db, account_id)
    return ApprovalResponse(message="Account moved to pending.", id=account.id, status=account.status)


@router.get("/clientes", response_model=List[AccountResponse], summary="List active accounts")
async def list_active_accounts(
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    store: CredentialStore = Depends(get_store),
) -> List[AccountResponse]:
    accounts = await store.list_by_status(db, AccountStatus.ACTIVE)
    return [AccountResponse.model_validate(a) for a in accounts]


@router.get("/clientesPendentes", response_model=List[AccountResponse], summary="List pending accounts")
async def list_pending_accounts(
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    store: CredentialStore = Depends(get_store),
) -> List[AccountResponse]:
    accounts = await store.list_by_status(db, AccountStatus.PENDING)
    return [AccountResponse.model_validate(a) for a in accounts]


# ══════════════════════════════════════════════════════════════════════════
# Profiles (owner or admin)
# ══════════════════════════════════════════════════════════════════════════


@router.get("/clientes/{account_id}", response_model=AccountResponse, summary="Read a profile")
async def get_account(
    account_id: int,
    claim: Claim = Depends(get_current_claim),
    db: AsyncSession = Depends(get_db_session),
    store: CredentialStore = Depends(get_store),
) -> AccountResponse:
    ensure_owner_or_admin(claim, account_id)
    account = await store.get(db, account_id)
    if account is None:
        raise AccountNotFoundError(account_id)
    return AccountResponse.model_validate(account)


@router.put(
    "/clientes/{account_id}",
    response_model=AccountResponse,
    summary="Update a profile (multipart form, optional new photo)",
)
async def update_account(
    account_id: int,
    nome: Optional[str] = Form(default=None),
    email: Optional[str] = Form(default=None),
    senha: Optional[str] = Form(default=None),
    login: Optional[str] = Form(default=None),
    foto_perfil: Optional[UploadFile] = File(default=None),
    claim: Claim = Depends(get_current_claim),
    db: AsyncSession = Depends(get_db_session),
    store: CredentialStore = Depends(get_store),
    storage: FileService = Depends(get_storage),
) -> AccountResponse:
    ensure_owner_or_admin(claim, account_id)

    fields: Dict[str, Any] = {}
    if nome is not None and nome.strip():
        fields["name"] = nome.strip()
    if email is not None and email.strip():
        try:
            fields["email"] = normalize_email(email)
        except ValueError as e:
            raise ValidationError(str(e), field="email")
    if senha is not None and senha.strip():
        try:
            fields["password"] = check_password(senha)
        except ValueError as e:
            raise ValidationError(str(e), field="senha")
    if login is not None and login.strip():
        try:
            fields["login"] = check_login(login)
        except ValueError as e:
            raise ValidationError(str(e), field="login")

    new_photo: Optional[str] = None
    if foto_perfil is not None and foto_perfil.filename:
        new_photo = await storage.save(foto_perfil.filename, await foto_perfil.read())
        fields["profile_photo"] = new_photo

    # Past this point the new photo is on disk: any failure must remove it
    try:
        previous = await store.get(db, account_id)
        if previous is None:
            raise AccountNotFoundError(account_id)
        old_photo = previous.profile_photo
        await store.update_profile(db, account_id, fields)
        await db.commit()
    except Exception:
        if new_photo:
            await storage.discard(new_photo)
        raise

    if new_photo and old_photo:
        await storage.discard(old_photo)

    await db.refresh(previous)
    return AccountResponse.model_validate(previous)


@router.delete("/clientes/{account_id}", response_model=MessageResponse, summary="Delete an account")
async def delete_account(
    account_id: int,
    claim: Claim = Depends(get_current_claim),
    db: AsyncSession = Depends(get_db_session),
    store: CredentialStore = Depends(get_store),
    storage: FileService = Depends(get_storage),
) -> MessageResponse:
    ensure_owner_or_admin(claim, account_id)
    account = await store.get(db, account_id)
    if account is None:
        raise AccountNotFoundError(account_id)

    photo = account.profile_photo
    await store.delete(db, account_id)
    await db.commit()
    if photo:
        await storage.discard(photo)
    return MessageResponse(message="Account deleted.")


# ══════════════════════════════════════════════════════════════════════════
# Admin dashboard
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "/dashboard/status-usuarios",
    response_model=List[StatusCount],
    summary="Number of accounts per status",
)
async def accounts_per_status(
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    store: CredentialStore = Depends(get_store),
) -> List[StatusCount]:
    rows = await store.count_by_status(db)
    return [StatusCount(status=s, count=c) for s, c in rows]


@router.get(
    "/dashboard/cadastros-por-dia",
    response_model=List[DailyCount],
    summary="Registrations per day in a date range",
)
async def registrations_per_day(
    inicio: date = Query(description="First day (YYYY-MM-DD), inclusive"),
    fim: date = Query(description="Last day (YYYY-MM-DD), inclusive"),
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    store: CredentialStore = Depends(get_store),
) -> List[DailyCount]:
    rows = await store.registrations_per_day(db, inicio, fim)
    return [DailyCount(day=d, count=c) for d, c in rows]

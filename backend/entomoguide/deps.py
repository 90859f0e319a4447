"""
EntomoGuide Backend: Route Dependencies
========================================

What:  FastAPI dependencies for authentication, authorization and service access.
How:   `get_current_claim` reads `Authorization: Bearer <token>`, verifies it
       with the application's TokenService and stores the Claim on
       `request.state.claim` (the access log reads it from there).
       `require_admin` adds the role check on top. Service accessors return
       the instances the application factory put on `app.state`.
Who:   Every router.

Check order on a protected route: authentication (401) → role (403) →
ownership (403, checked inside the handler).
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from entomoguide.exceptions import AuthenticationError
from entomoguide.models.account import Role
from entomoguide.services.account_workflow import AccountWorkflow
from entomoguide.services.attachment_manager import AttachmentManager
from entomoguide.services.catalog_service import CatalogService
from entomoguide.services.credential_store import CredentialStore
from entomoguide.services.file_service import FileService
from entomoguide.services.security import Claim, TokenService, require_role

# auto_error=False: a missing header is reported through AuthenticationError
# and the common error body instead of FastAPI's default 403
bearer_scheme = HTTPBearer(auto_error=False)


# ── Services ──────────────────────────────────────────────────────────────

def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def get_store(request: Request) -> CredentialStore:
    return request.app.state.store


def get_workflow(request: Request) -> AccountWorkflow:
    return request.app.state.workflow


def get_attachments(request: Request) -> AttachmentManager:
    return request.app.state.attachments


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_storage(request: Request) -> FileService:
    return request.app.state.storage


# ── Auth Gate ─────────────────────────────────────────────────────────────

async def get_current_claim(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_tokens),
) -> Claim:
    """
    Raises:
        AuthenticationError: header missing or not a Bearer token
        InvalidTokenError:   signature/expiry check failed
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication token not provided.")

    claim = tokens.decode(credentials.credentials)
    request.state.claim = claim
    return claim


async def require_admin(claim: Claim = Depends(get_current_claim)) -> Claim:
    require_role(claim, Role.ADMIN)
    return claim

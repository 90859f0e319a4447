"""
EntomoGuide Backend: Password Hashing and Session Tokens
=========================================================

What:  bcrypt password hashing, HS256 token issue/verify, role and ownership checks.
How:   bcrypt work runs in a worker thread (`asyncio.to_thread`) so a login
       never blocks the event loop for the duration of a hash. Tokens are
       PyJWT-signed claim sets `{id, tipo, iat, exp}`.
Who:   CredentialStore (hashing), AccountWorkflow (issue), routes/deps.py (decode,
       role and ownership checks).

Tokens are stateless: no refresh and no revocation. Expiry is the only way a
token stops working, so the lifetime is capped at 8 hours by configuration.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Union

import bcrypt
import jwt

from entomoguide.exceptions import AuthorizationError, InvalidTokenError, ValidationError
from entomoguide.models.account import Role

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Password Hashing
# ══════════════════════════════════════════════════════════════════════════

# bcrypt reads at most 72 bytes of a password and refuses longer input
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def _hash_sync(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _verify_sync(password: str, password_hash: str) -> bool:
    if password_too_long(password):
        # No stored hash can match it
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        logger.warning("Stored password hash has an unrecognized format")
        return False


async def hash_password(password: str, rounds: int = 10) -> str:
    """
    Returns a salted bcrypt hash of `password`.

    Raises:
        ValidationError: password longer than MAX_PASSWORD_BYTES in UTF-8
    """
    if password_too_long(password):
        raise ValidationError(
            f"The password must be at most {MAX_PASSWORD_BYTES} bytes long.", field="senha"
        )
    return await asyncio.to_thread(_hash_sync, password, rounds)


async def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison of `password` against a stored bcrypt hash."""
    return await asyncio.to_thread(_verify_sync, password, password_hash)


# ══════════════════════════════════════════════════════════════════════════
# Session Tokens
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Claim:
    """Decoded identity of the caller, attached to `request.state.claim`."""

    account_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


class TokenService:
    """
    Issues and verifies signed session tokens.

    Args:
        secret:       Shared HMAC secret
        algorithm:    JWT algorithm (HS256)
        expire_hours: Lifetime of every issued token
    """

    def __init__(self, secret: str, algorithm: str = "HS256", expire_hours: int = 8):
        self._secret = secret
        self._algorithm = algorithm
        self.expire_hours = expire_hours

    def issue(self, account: Any) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "id": account.id,
            "tipo": account.role,
            "iat": now,
            "exp": now + timedelta(hours=self.expire_hours),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> Claim:
        """
        Verifies signature and expiry.

        Raises:
            InvalidTokenError: bad signature, expired, malformed, or missing claims
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Session expired. Please log in again.")
        except jwt.InvalidTokenError as e:
            logger.info("Rejected token: %s", type(e).__name__)
            raise InvalidTokenError()

        account_id = payload.get("id")
        role = payload.get("tipo")
        if not isinstance(account_id, int) or role not in {r.value for r in Role}:
            raise InvalidTokenError()
        return Claim(account_id=account_id, role=role)


# ══════════════════════════════════════════════════════════════════════════
# Authorization Checks
# ══════════════════════════════════════════════════════════════════════════


def require_role(claim: Claim, role: Union[Role, str]) -> None:
    """Raises AuthorizationError unless the claim carries `role`."""
    expected = role.value if isinstance(role, Role) else role
    if claim.role != expected:
        raise AuthorizationError(
            "Access denied. Administrator privileges are required.",
            context={"required_role": expected},
        )


def ensure_owner_or_admin(claim: Claim, account_id: int) -> None:
    """Raises AuthorizationError unless the caller is `account_id` or an admin."""
    if claim.is_admin or claim.account_id == account_id:
        return
    raise AuthorizationError("Access denied. You can only manage your own profile.")

"""
Approval Token Service

Issues and validates the capability tokens embedded in approval emails.
A token names one PO, one approval role and an expiry instant; holding a
valid token is what authorises a decision for that role.

Tokens are Fernet messages (AES-CBC with a fresh random IV plus an
HMAC-SHA256 tag) over a JSON claim, keyed with PBKDF2 from TOKEN_SECRET.
Tampering, truncation or a different key all fail authentication. Nothing
is stored server-side.
"""

import base64
import hmac
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.config import settings
from app.core.exceptions import TokenExpired, TokenInvalid, Unauthorized
from app.models.purchase import ApprovalRole


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalClaim:
    """Decoded content of an approval token."""
    po_id: uuid.UUID
    role: ApprovalRole
    expires_at: datetime


class ApprovalTokenService:
    """
    Stateless issue/validate for approval capability tokens.

    The cipher is derived once per instance; use get_approval_token_service()
    for the process-wide instance.
    """

    KDF_ITERATIONS = 100000

    def __init__(
        self,
        secret_key: Optional[str] = None,
        salt: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
        override_password: Optional[str] = None,
    ):
        self._secret = secret_key or settings.TOKEN_SECRET
        self._salt = (salt or settings.TOKEN_SALT).encode()
        self.ttl_minutes = ttl_minutes or settings.APPROVAL_TOKEN_EXPIRE_MINUTES
        self._override_password = (
            override_password if override_password is not None else settings.APPROVAL_OVERRIDE_PASSWORD
        )
        self._fernet = self._create_cipher()

    def _create_cipher(self) -> Fernet:
        """Create Fernet cipher from derived key."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._salt,
            iterations=self.KDF_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self._secret.encode()))
        return Fernet(key)

    def issue(
        self,
        po_id: uuid.UUID,
        role: ApprovalRole,
        ttl_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Mint a token for one role on one PO.

        Args:
            po_id: Purchase order the token decides
            role: Approval role the holder acts as
            ttl_minutes: Validity window, defaults to APPROVAL_TOKEN_EXPIRE_MINUTES
            now: Issue instant (tests)

        Returns:
            URL-safe token string
        """
        now = now or datetime.now(timezone.utc)
        expires_at = now + timedelta(minutes=ttl_minutes or self.ttl_minutes)
        claim = {
            "po_id": str(po_id),
            "role": ApprovalRole(role).value,
            "expires_at": int(expires_at.timestamp()),
        }
        token = self._fernet.encrypt(json.dumps(claim).encode()).decode()
        logger.info(f"Issued {claim['role']} approval token for PO {po_id}, expires {expires_at.isoformat()}")
        return token

    def validate(self, token: str, now: Optional[datetime] = None) -> ApprovalClaim:
        """
        Authenticate and decode a token.

        Raises:
            TokenInvalid: Token fails authentication or carries a malformed claim
            TokenExpired: Claim is authentic but past its expiry
        """
        if not token:
            raise TokenInvalid("Approval token is missing")

        try:
            payload = self._fernet.decrypt(token.encode())
        except (InvalidToken, ValueError):
            raise TokenInvalid("Approval token could not be authenticated")

        try:
            data = json.loads(payload)
            claim = ApprovalClaim(
                po_id=uuid.UUID(data["po_id"]),
                role=ApprovalRole(data["role"]),
                expires_at=datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc),
            )
        except (ValueError, KeyError, TypeError):
            raise TokenInvalid("Approval token claim is malformed")

        now = now or datetime.now(timezone.utc)
        if now >= claim.expires_at:
            raise TokenExpired(
                "Approval token has expired",
                {"po_id": str(claim.po_id), "role": claim.role.value},
            )
        return claim

    def check_override_password(self, password: Optional[str]) -> None:
        """
        Enforce the shared approval password when one is configured.

        Raises:
            Unauthorized: Password configured and the supplied one is absent or wrong
        """
        if not self._override_password:
            return
        if not password or not hmac.compare_digest(
            password.encode(), self._override_password.encode()
        ):
            raise Unauthorized("Approval password is incorrect")


# Singleton instance
_approval_token_service: Optional[ApprovalTokenService] = None


def get_approval_token_service() -> ApprovalTokenService:
    """Get or create the approval token service singleton."""
    global _approval_token_service
    if _approval_token_service is None:
        _approval_token_service = ApprovalTokenService()
    return _approval_token_service

"""
Session Token Service – server-signed trial and premium session tokens.

A token is ``base64url(json payload) + "." + hex(HMAC-SHA256(payload))``.
The payload carries the opaque session id, the token kind and its
issue/expiry times (epoch seconds).  The trial countdown and the premium
flag both live in the signed payload, so a client cannot extend either.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from api.errors import UnauthenticatedError

logger = logging.getLogger(__name__)

KIND_TRIAL = "trial"
KIND_PREMIUM = "premium"


@dataclass
class UsageStatus:
    session_id: str
    kind: str
    is_premium: bool
    expires_at: int
    remaining_ms: int

    @property
    def expired(self) -> bool:
        return self.remaining_ms <= 0

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "kind": self.kind,
            "isPremium": self.is_premium and not self.expired,
            "remainingTime": self.remaining_ms,
            "expired": self.expired,
        }


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class SessionTokenService:

    def __init__(
        self,
        secret: str,
        trial_seconds: int = 600,
        premium_ttl: int = 86400,
        clock: Callable[[], datetime] | None = None,
    ):
        if not secret:
            raise ValueError("secret must be a non-empty string")
        self._secret = secret.encode()
        self.trial_seconds = trial_seconds
        self.premium_ttl = premium_ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> int:
        return int(self._clock().timestamp())

    def _sign(self, body: str) -> str:
        return hmac.new(self._secret, body.encode(), hashlib.sha256).hexdigest()

    def _encode(self, payload: dict) -> str:
        body = _b64encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode())
        return f"{body}.{self._sign(body)}"

    def issue_trial(self, session_id: str | None = None) -> str:
        now = self._now()
        sid = session_id or secrets.token_urlsafe(16)
        return self._encode({"sid": sid, "kind": KIND_TRIAL, "iat": now, "exp": now + self.trial_seconds})

    def issue_premium(self, session_id: str | None, access_expires_at: datetime) -> str:
        """Premium token, never outliving the access code it was granted for."""
        now = self._now()
        sid = session_id or secrets.token_urlsafe(16)
        exp = min(now + self.premium_ttl, int(access_expires_at.timestamp()))
        return self._encode({"sid": sid, "kind": KIND_PREMIUM, "iat": now, "exp": exp})

    def inspect(self, token: str | None) -> UsageStatus:
        """Validate a token and report the remaining usage time."""
        if not token or token.count(".") != 1:
            raise UnauthenticatedError("Missing or malformed session token")

        body, signature = token.split(".")
        if not hmac.compare_digest(signature.encode(), self._sign(body).encode()):
            logger.warning("Rejected session token with a bad signature")
            raise UnauthenticatedError("Invalid session token")

        try:
            payload = json.loads(_b64decode(body))
            sid = str(payload["sid"])
            kind = payload["kind"]
            exp = int(payload["exp"])
        except (ValueError, KeyError, TypeError):
            raise UnauthenticatedError("Invalid session token")
        if kind not in (KIND_TRIAL, KIND_PREMIUM):
            raise UnauthenticatedError("Invalid session token")

        remaining_ms = max(0, (exp - self._now()) * 1000)
        return UsageStatus(
            session_id=sid,
            kind=kind,
            is_premium=kind == KIND_PREMIUM,
            expires_at=exp,
            remaining_ms=remaining_ms,
        )

"""
Access Code Service – generation and verification of annual access codes.

An access code is derived from the Stripe checkout session id, the year of
issue, a server-side salt and the customer's e-mail:

    hash_input = f"{session_id}-{year}-{salt}-{email}"
    raw        = base36(|string_hash(hash_input)|), zero-padded, last 12 chars
    code       = raw with 0/O -> 8 and 1/I/L -> 9, shown as XXX-XXX-XXX-XXX

``string_hash`` is the classic 31-multiplier string hash over UTF-16 code
units, truncated to a signed 32-bit integer.  It is NOT a cryptographic MAC:
it is kept so that codes already sold keep working.  Verification without an
issued-code lookup only checks the code's shape, so any well-formed string
containing an 8 or a 9 is accepted.  Enable strict mode to require a stored
issued record.
"""

from __future__ import annotations

import logging
import math
import re
import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from api.errors import (
    ExpiredError, FormatError, InvalidInputError, NavigatorError, UnauthenticatedError,
)

logger = logging.getLogger(__name__)

CODE_LENGTH = 12
GROUP_SIZE = 3
SCHEME_VERSION = 1

_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_SUBSTITUTIONS = str.maketrans({"0": "8", "O": "8", "1": "9", "I": "9", "L": "9"})
_CODE_PATTERN = re.compile(r"^[A-Z0-9]{12}$")
_SEPARATORS = re.compile(r"[-\s]")

MSG_EMPTY = "Please enter a valid access code"
MSG_LENGTH = "Invalid code format. Code should be 12 characters."
MSG_CHARSET = "Invalid code format. Please check your code and try again."
MSG_STRUCTURE = "Invalid access code. Please check your code and try again."
MSG_EXPIRED = "This access code has expired. Please purchase a new annual subscription."
MSG_NOT_ISSUED = "This access code was not issued by us. Please check your code and try again."

INSTRUCTIONS = "Copy this code and paste it into the app to activate your annual subscription"

Clock = Callable[[], datetime]
IssuedLookup = Callable[[str], Optional[datetime]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ─── Hash primitive ──────────────────────────────────────────────────────────

def string_hash(value: str) -> int:
    """31-multiplier hash over UTF-16 code units, as a signed 32-bit int."""
    acc = 0
    for (unit,) in struct.iter_unpack("<H", value.encode("utf-16-le")):
        acc = (acc * 31 + unit) & 0xFFFFFFFF
    return acc - 0x100000000 if acc & 0x80000000 else acc


def encode_hash(value: int, width: int = CODE_LENGTH) -> str:
    """Base-36 of ``|value|``, uppercase, left-padded with ``0`` to *width*."""
    n = abs(value)
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36_DIGITS[rem])
    encoded = "".join(reversed(digits)) or "0"
    return encoded.rjust(width, "0")[-width:]


# ─── Formatting helpers ──────────────────────────────────────────────────────

def clean_code(code: str) -> str:
    """Strip hyphens/whitespace and uppercase."""
    return _SEPARATORS.sub("", code or "").upper()


def format_code(code: str) -> str:
    """Group a cleaned code as ``XXX-XXX-XXX-XXX``."""
    cleaned = clean_code(code)
    return "-".join(cleaned[i:i + GROUP_SIZE] for i in range(0, len(cleaned), GROUP_SIZE))


def mask_code(code: str) -> str:
    """Log-safe rendering of a code (last three characters only)."""
    cleaned = clean_code(code)
    return f"***-***-***-{cleaned[-3:]}" if len(cleaned) >= 3 else "***"


def add_one_year(moment: datetime) -> datetime:
    """Same month/day next year; 29 February becomes 28 February."""
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        return moment.replace(year=moment.year + 1, day=28)


def compute_code(session_id: str, year: int, secret_salt: str, email: str = "") -> str:
    """Derive the unformatted 12-character code.  Pure."""
    hash_input = f"{session_id}-{year}-{secret_salt}-{email or ''}"
    raw = encode_hash(string_hash(hash_input))
    return raw.translate(_SUBSTITUTIONS)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# ─── Result types ────────────────────────────────────────────────────────────

@dataclass
class GeneratedAccessCode:
    code: str                   # formatted XXX-XXX-XXX-XXX
    raw: str                    # cleaned 12 characters
    issued_at: datetime
    expires_at: datetime
    year: int
    scheme: int = SCHEME_VERSION

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "expiresAt": self.expires_at.isoformat(),
            "year": self.year,
            "scheme": self.scheme,
        }


@dataclass
class VerificationResult:
    valid: bool
    code: str | None = None
    expires_at: datetime | None = None
    days_remaining: int | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def message(self) -> str:
        if self.valid and self.expires_at is not None:
            return f"Access code verified! Valid until {self.expires_at.date().isoformat()}"
        return self.error or ""

    def to_dict(self) -> dict:
        if not self.valid:
            return {"valid": False, "error": self.error, "errorKind": self.error_kind}
        return {
            "valid": True,
            "expiresAt": self.expires_at.isoformat(),
            "daysRemaining": self.days_remaining,
            "message": self.message,
        }

    @classmethod
    def failure(
        cls, error_type: type[NavigatorError], error: str, code: str | None = None,
    ) -> "VerificationResult":
        return cls(valid=False, code=code, error=error, error_kind=error_type.kind)


# ─── Service ─────────────────────────────────────────────────────────────────

class AccessCodeService:
    """Generates and verifies annual access codes.

    Parameters
    ----------
    secret_salt : str
        Server-side salt mixed into every code.  Must match between
        generation and any later regeneration.
    clock : callable, optional
        Returns the current aware ``datetime``.  Defaults to UTC now.
    issued_lookup : callable, optional
        ``code -> issued_at | None`` for codes recorded at generation time.
        A recorded issue date takes precedence when computing expiry.
    require_issued_record : bool
        Reject codes that ``issued_lookup`` does not know (strict mode).
    """

    def __init__(
        self,
        secret_salt: str,
        clock: Clock | None = None,
        issued_lookup: IssuedLookup | None = None,
        require_issued_record: bool = False,
    ):
        if not secret_salt:
            raise ValueError("secret_salt must be a non-empty string")
        if require_issued_record and issued_lookup is None:
            raise ValueError("require_issued_record needs an issued_lookup")
        self._salt = secret_salt
        self._clock = clock or utc_now
        self._issued_lookup = issued_lookup
        self.require_issued_record = require_issued_record

    def now(self) -> datetime:
        return _as_utc(self._clock())

    def generate(self, session_id: str, email: str = "") -> GeneratedAccessCode:
        """Produce the access code for a paid checkout session."""
        if not session_id or not str(session_id).strip():
            raise InvalidInputError("Stripe session ID is required")

        issued_at = self.now()
        raw = compute_code(str(session_id), issued_at.year, self._salt, email or "")
        generated = GeneratedAccessCode(
            code=format_code(raw),
            raw=raw,
            issued_at=issued_at,
            expires_at=add_one_year(issued_at),
            year=issued_at.year,
        )
        logger.info(f"Generated access code {mask_code(raw)} for session {session_id}")
        return generated

    def verify(self, submitted: str | None, issued_at: datetime | None = None) -> VerificationResult:
        """Check a user-submitted code.  Failures are returned, never raised."""
        if submitted is None or not str(submitted).strip():
            return VerificationResult.failure(InvalidInputError, MSG_EMPTY)

        code = clean_code(str(submitted))
        if len(code) != CODE_LENGTH:
            return VerificationResult.failure(FormatError, MSG_LENGTH, code)
        if not _CODE_PATTERN.match(code):
            return VerificationResult.failure(FormatError, MSG_CHARSET, code)
        if "8" not in code and "9" not in code:
            return VerificationResult.failure(FormatError, MSG_STRUCTURE, code)

        recorded = self._issued_lookup(code) if self._issued_lookup else None
        if recorded is None and self.require_issued_record:
            logger.warning(f"Rejected unissued access code {mask_code(code)}")
            return VerificationResult.failure(UnauthenticatedError, MSG_NOT_ISSUED, code)

        now = self.now()
        start = recorded or issued_at or now
        expires_at = add_one_year(_as_utc(start))
        if now > expires_at:
            return VerificationResult.failure(ExpiredError, MSG_EXPIRED, code)

        days_remaining = math.ceil((expires_at - now) / timedelta(days=1))
        return VerificationResult(
            valid=True,
            code=format_code(code),
            expires_at=expires_at,
            days_remaining=days_remaining,
        )

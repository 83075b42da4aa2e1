"""
Issued Code Repository – persistence of access codes handed to customers.
"""

import logging
from datetime import datetime, timezone

from api.models import get_session, IssuedAccessCode
from api.services.access_codes import GeneratedAccessCode, clean_code, mask_code

logger = logging.getLogger(__name__)


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class IssuedCodeRepository:

    @staticmethod
    def record(generated: GeneratedAccessCode, session_id: str, email: str = "") -> bool:
        """Store an issued code.  Returns ``False`` if it was already stored."""
        session = get_session()
        try:
            if session.get(IssuedAccessCode, generated.raw) is not None:
                logger.info(f"Access code {mask_code(generated.raw)} already recorded")
                return False
            session.add(IssuedAccessCode(
                code=generated.raw,
                stripe_session_id=session_id,
                email=email or "",
                scheme=generated.scheme,
                issued_at=_naive_utc(generated.issued_at),
                expires_at=_naive_utc(generated.expires_at),
            ))
            session.commit()
            return True
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def lookup_issued_at(code: str) -> datetime | None:
        session = get_session()
        try:
            row = session.get(IssuedAccessCode, clean_code(code))
            if row is None:
                return None
            return row.issued_at.replace(tzinfo=timezone.utc)
        finally:
            session.close()

    @staticmethod
    def get(code: str) -> dict | None:
        session = get_session()
        try:
            row = session.get(IssuedAccessCode, clean_code(code))
            return row.to_dict() if row else None
        finally:
            session.close()

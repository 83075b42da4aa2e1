"""Service layer for the Medical Device Navigator API."""

from .access_codes import AccessCodeService
from .feedback_service import FeedbackService
from .indication_service import IndicationService
from .issued_codes import IssuedCodeRepository
from .lookup_service import LookupService
from .payment_service import PaymentService
from .session_tokens import SessionTokenService

__all__ = [
    "AccessCodeService",
    "FeedbackService",
    "IndicationService",
    "IssuedCodeRepository",
    "LookupService",
    "PaymentService",
    "SessionTokenService",
]

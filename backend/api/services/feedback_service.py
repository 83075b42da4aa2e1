"""
Feedback Service – error reports and mapping suggestions from users.
"""

import logging

from api.errors import InvalidInputError
from api.models import get_session, Feedback

logger = logging.getLogger(__name__)

FEEDBACK_TYPES = ("error_report", "mapping_suggestion")


class FeedbackService:

    @staticmethod
    def submit(
        type: str | None,
        message: str | None,
        email: str | None = None,
        gmdn_code: str | None = None,
        emdn_code: str | None = None,
        user_agent: str | None = None,
        ip: str | None = None,
    ) -> dict:
        if not type or not message or not message.strip():
            raise InvalidInputError("Type and message are required")
        if type not in FEEDBACK_TYPES:
            raise InvalidInputError(f"Unknown feedback type '{type}'. Expected one of: {', '.join(FEEDBACK_TYPES)}")

        session = get_session()
        try:
            row = Feedback(
                type=type,
                message=message.strip(),
                email=(email or "").strip() or "anonymous",
                gmdn_code=gmdn_code or None,
                emdn_code=emdn_code or None,
                user_agent=(user_agent or "")[:500] or None,
                ip=ip,
                status="pending",
            )
            session.add(row)
            session.commit()
            feedback_id = row.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(f"Feedback #{feedback_id} received ({type}): {message.strip()[:100]}")
        return {
            "success": True,
            "message": "Feedback submitted successfully",
            "feedbackId": feedback_id,
        }

    @staticmethod
    def list_feedback(status: str | None = None, limit: int = 50) -> list[dict]:
        session = get_session()
        try:
            query = session.query(Feedback)
            if status:
                query = query.filter(Feedback.status == status)
            rows = query.order_by(Feedback.created_at.desc(), Feedback.id.desc()).limit(limit).all()
            return [r.to_dict() for r in rows]
        finally:
            session.close()

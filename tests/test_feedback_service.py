"""Tests for user feedback storage."""

import pytest

from api.errors import InvalidInputError
from api.services.feedback_service import FeedbackService


class TestSubmit:

    def test_submit_stores_pending_feedback(self, db) -> None:
        result = FeedbackService.submit(
            "mapping_suggestion", "  Z1201 should map to I21  ", emdn_code="Z1201", ip="10.0.0.1",
        )
        assert result["success"] is True
        assert result["message"] == "Feedback submitted successfully"

        [stored] = FeedbackService.list_feedback()
        assert stored["id"] == result["feedbackId"]
        assert stored["message"] == "Z1201 should map to I21"
        assert stored["email"] == "anonymous"
        assert stored["emdnCode"] == "Z1201"
        assert stored["status"] == "pending"
        assert stored["timestamp"]

    @pytest.mark.parametrize("type,message", [
        (None, "text"),
        ("error_report", ""),
        ("error_report", "   "),
    ])
    def test_type_and_message_required(self, db, type, message) -> None:
        with pytest.raises(InvalidInputError) as exc:
            FeedbackService.submit(type, message)
        assert exc.value.message == "Type and message are required"

    def test_unknown_type(self, db) -> None:
        with pytest.raises(InvalidInputError):
            FeedbackService.submit("praise", "Nice app")


class TestList:

    def test_newest_first_and_filtered(self, db) -> None:
        first = FeedbackService.submit("error_report", "first")["feedbackId"]
        second = FeedbackService.submit("error_report", "second")["feedbackId"]

        assert [f["id"] for f in FeedbackService.list_feedback()] == [second, first]
        assert FeedbackService.list_feedback(status="closed") == []
        assert len(FeedbackService.list_feedback(limit=1)) == 1

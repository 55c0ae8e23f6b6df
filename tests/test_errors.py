"""
Tests for error handling: structured error responses, HTTP status codes,
and the custom exception classes.
"""
from datetime import date

import pytest

from app.core.errors import (
    InvalidStateError,
    JournalAlreadyExistsError,
    JournalNotFoundError,
    SummaryAlreadyExistsError,
    UpstreamCallError,
    UpstreamParseError,
    UserNotFoundError,
    ValidationError,
)


# ---------------------------------------------------------------------------
# Unit tests on exception classes
# ---------------------------------------------------------------------------

class TestExceptionClasses:
    def test_journal_not_found_error(self):
        err = JournalNotFoundError(day=date(2025, 6, 1))
        assert err.http_status == 404
        assert err.code == "JOURNAL_NOT_FOUND"
        assert "2025-06-01" in err.message
        d = err.to_dict()
        assert d["success"] is False
        assert d["details"]["date"] == "2025-06-01"

    def test_journal_already_exists_error(self):
        err = JournalAlreadyExistsError(day=date(2025, 6, 1))
        assert err.http_status == 409
        assert err.code == "JOURNAL_ALREADY_EXISTS"

    def test_summary_already_exists_error(self):
        err = SummaryAlreadyExistsError("week", date(2025, 5, 31), date(2025, 6, 6))
        assert err.http_status == 409
        assert err.details == {"period": "week", "start_date": "2025-05-31", "end_date": "2025-06-06"}

    def test_invalid_state_error_carries_status(self):
        err = InvalidStateError("Can only finish journal in draft or in_review status.", current_status="complete")
        assert err.http_status == 400
        assert err.code == "INVALID_STATE"
        assert err.details == {"status": "complete"}

    def test_user_not_found_error(self):
        err = UserNotFoundError(42)
        assert err.http_status == 404
        assert err.details["user_id"] == 42

    def test_upstream_errors_are_502(self):
        assert UpstreamCallError("boom").http_status == 502
        err = UpstreamParseError("bad json", snippet="x" * 500)
        assert err.http_status == 502
        assert err.code == "UPSTREAM_PARSE_ERROR"
        assert len(err.details["snippet"]) == 200

    def test_to_dict_without_details(self):
        d = ValidationError("nope").to_dict()
        assert d == {"success": False, "error": "nope", "code": "VALIDATION_ERROR"}


# ---------------------------------------------------------------------------
# Integration tests on HTTP error responses
# ---------------------------------------------------------------------------

class TestUserHeader:
    def test_missing_header_returns_422(self, client, user):
        r = client.get("/journals/today")
        assert r.status_code == 422
        body = r.json()
        assert body["success"] is False
        assert body["code"] == "VALIDATION_ERROR"
        fields = [e["field"] for e in body["details"]["errors"]]
        assert any("x-user-id" in f for f in fields)

    def test_unknown_user_returns_404(self, client, user):
        r = client.get("/journals/today", headers={"X-User-Id": str(user.id + 999)})
        assert r.status_code == 404
        assert r.json()["code"] == "USER_NOT_FOUND"


class TestValidationErrors:
    def test_invalid_date_returns_422(self, client, headers):
        r = client.post("/journals", json={"date": "not-a-date"}, headers=headers)
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("rating", [0, 6, -1])
    def test_day_rating_out_of_range_returns_422(self, client, headers, rating):
        r = client.post("/journals", json={"date": "2025-06-01", "day_rating": rating}, headers=headers)
        assert r.status_code == 422
        fields = [e["field"] for e in r.json()["details"]["errors"]]
        assert any("day_rating" in f for f in fields)

    def test_blank_chat_message_returns_422(self, client, headers):
        r = client.post("/journals/2025-06-01/chat", json={"message": "   "}, headers=headers)
        assert r.status_code == 422

    def test_unknown_tone_tag_returns_422(self, client, headers):
        client.post("/journals", json={"date": "2025-06-01"}, headers=headers)
        r = client.put("/journals/2025-06-01", json={"tone_tags": ["ecstatic"]}, headers=headers)
        assert r.status_code == 422


class TestNotFoundAndConflict:
    def test_missing_journal_returns_404(self, client, headers):
        r = client.get("/journals/2025-06-01", headers=headers)
        assert r.status_code == 404
        body = r.json()
        assert body["code"] == "JOURNAL_NOT_FOUND"
        assert body["details"]["date"] == "2025-06-01"

    def test_duplicate_journal_returns_409(self, client, headers):
        r1 = client.post("/journals", json={"date": "2025-06-01"}, headers=headers)
        assert r1.status_code == 201
        r2 = client.post("/journals", json={"date": "2025-06-01"}, headers=headers)
        assert r2.status_code == 409
        assert r2.json()["code"] == "JOURNAL_ALREADY_EXISTS"


class TestHealth:
    def test_health_ok(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert (body["status"], body["db"]) == ("ok", "ok")

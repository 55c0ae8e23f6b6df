"""
Tests for weekly / monthly period summaries.
"""
from datetime import date

import pytest
from sqlalchemy import select

from app.models.journal import Journal, JournalStatus
from app.models.user_attribute import UserAttribute
from app.services.journal_summaries import month_boundaries, week_boundaries

PERIOD_RESULT = {
    "summary": "A week of long walks and early nights.",
    "tags": ["Walking", "walking", "sleep"],
    "attributes": [
        {"category": "values", "value": "health"},
        {"category": "hobbies", "value": "walking"},
        {"category": "priorities", "value": "  rest  "},
    ],
}


def _complete(db, user, day, text="Walked by the river"):
    db.add(Journal(
        user_id=user.id, date=day, status=JournalStatus.complete,
        initial_message=text, chat_session=[{"role": "user", "content": text}],
    ))


# ---------------------------------------------------------------------------
# Window arithmetic
# ---------------------------------------------------------------------------

class TestBoundaries:
    @pytest.mark.parametrize("day", [date(2025, 5, 31), date(2025, 6, 3), date(2025, 6, 6)])
    def test_week_runs_saturday_to_friday(self, day):
        assert week_boundaries(day) == (date(2025, 5, 31), date(2025, 6, 6))

    def test_month(self):
        assert month_boundaries(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------

class TestGenerate:
    def test_week_from_start_date(self, client, headers, db, user, use_gateway):
        gateway = use_gateway(period=PERIOD_RESULT)
        _complete(db, user, date(2025, 6, 1))
        _complete(db, user, date(2025, 6, 4), text="Early night")
        db.add(Journal(user_id=user.id, date=date(2025, 6, 5), status=JournalStatus.draft, initial_message="draft only"))
        db.commit()

        r = client.post("/journal-summaries/generate", json={"period": "week", "start_date": "2025-06-02"}, headers=headers)
        assert r.status_code == 201, r.text
        data = r.json()["data"]
        assert data["period"] == "week"
        assert (data["start_date"], data["end_date"]) == ("2025-05-31", "2025-06-06")
        assert data["summary"] == PERIOD_RESULT["summary"]
        assert data["tags"] == ["walking", "sleep"]

        prompt = gateway.calls[-1][1]["content"]
        assert "Walked by the river" in prompt
        assert "Early night" in prompt
        assert "draft only" not in prompt

    def test_attributes_filtered_and_upserted(self, client, headers, db, user, use_gateway):
        use_gateway(period=PERIOD_RESULT)
        db.add(UserAttribute(user_id=user.id, category="values", value="health", source="journal_analysis"))
        _complete(db, user, date(2025, 6, 1))
        db.commit()

        client.post(
            "/journal-summaries/generate",
            json={"period": "week", "start_date": "2025-05-31", "end_date": "2025-06-06"},
            headers=headers,
        )
        attrs = {(a.category, a.value): a.source for a in db.scalars(select(UserAttribute))}
        # "hobbies" is not a summary category; "health" is refreshed, not duplicated.
        assert attrs == {("values", "health"): "gpt_summary", ("priorities", "rest"): "gpt_summary"}

    def test_no_complete_journals_is_400(self, client, headers):
        r = client.post("/journal-summaries/generate", json={"period": "month", "start_date": "2025-06-01"}, headers=headers)
        assert r.status_code == 400
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_duplicate_window_is_409(self, client, headers, db, user):
        _complete(db, user, date(2025, 6, 1))
        db.commit()
        body = {"period": "month", "start_date": "2025-06-01"}
        assert client.post("/journal-summaries/generate", json=body, headers=headers).status_code == 201
        r = client.post("/journal-summaries/generate", json=body, headers=headers)
        assert r.status_code == 409
        assert r.json()["code"] == "SUMMARY_ALREADY_EXISTS"

    def test_end_before_start_is_422(self, client, headers):
        r = client.post(
            "/journal-summaries/generate",
            json={"period": "week", "start_date": "2025-06-06", "end_date": "2025-06-01"},
            headers=headers,
        )
        assert r.status_code == 422

    def test_missing_summary_field_is_502(self, client, headers, db, user, use_gateway):
        use_gateway(period={"tags": ["x"]})
        _complete(db, user, date(2025, 6, 1))
        db.commit()
        r = client.post("/journal-summaries/generate", json={"period": "week", "start_date": "2025-06-01"}, headers=headers)
        assert r.status_code == 502
        assert client.get("/journal-summaries", headers=headers).json()["data"]["total"] == 0


# ---------------------------------------------------------------------------
# List / get
# ---------------------------------------------------------------------------

class TestList:
    def _seed(self, client, headers, db, user):
        for day in (date(2024, 12, 2), date(2025, 5, 5), date(2025, 6, 2)):
            _complete(db, user, day)
        db.commit()
        client.post("/journal-summaries/generate", json={"period": "month", "start_date": "2024-12-01"}, headers=headers)
        client.post("/journal-summaries/generate", json={"period": "month", "start_date": "2025-05-01"}, headers=headers)
        client.post("/journal-summaries/generate", json={"period": "week", "start_date": "2025-06-02"}, headers=headers)

    def test_newest_first(self, client, headers, db, user):
        self._seed(client, headers, db, user)
        data = client.get("/journal-summaries", headers=headers).json()["data"]
        assert data["total"] == 3
        assert [i["start_date"] for i in data["items"]] == ["2025-05-31", "2025-05-01", "2024-12-01"]

    def test_filter_by_period_and_year(self, client, headers, db, user):
        self._seed(client, headers, db, user)
        data = client.get("/journal-summaries", params={"period": "month"}, headers=headers).json()["data"]
        assert data["total"] == 2
        data = client.get("/journal-summaries", params={"year": 2025}, headers=headers).json()["data"]
        assert data["total"] == 2

    def test_get_by_id_and_404(self, client, headers, db, user):
        self._seed(client, headers, db, user)
        first = client.get("/journal-summaries", headers=headers).json()["data"]["items"][0]
        r = client.get(f"/journal-summaries/{first['id']}", headers=headers)
        assert r.status_code == 200
        assert r.json()["data"]["period"] == "week"
        r = client.get("/journal-summaries/99999", headers=headers)
        assert r.status_code == 404
        assert r.json()["code"] == "SUMMARY_NOT_FOUND"

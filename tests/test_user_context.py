"""
Tests for the user context snapshot and its prompt rendering.
"""
import pytest

from app.core.errors import UserNotFoundError
from app.models.user_attribute import UserAttribute
from app.services.user_context import build_user_context, format_user_context


class TestBuildUserContext:
    def test_default_sections(self, db, user):
        ctx = build_user_context(db, user.id)
        assert ctx.name == "Sam"
        assert ctx.tone_preference == "playful"
        assert ctx.character.character_class == "Ranger"
        # Archived goals are left out.
        assert [g.title for g in ctx.goals] == ["Run a half marathon"]
        assert [m.name for m in ctx.family_members] == ["Alice"]
        assert [s.name for s in ctx.character_stats] == ["Strength", "Wisdom"]
        assert ctx.existing_tags is None
        assert ctx.attributes is None

    def test_sections_can_be_switched_off(self, db, user):
        ctx = build_user_context(
            db, user.id,
            include_character=False, include_goals=False,
            include_family=False, include_stats=False,
        )
        assert ctx.character is None
        assert ctx.goals is None
        assert ctx.family_members is None
        assert ctx.character_stats is None

    def test_tags_and_attributes_on_request(self, db, user):
        db.add(UserAttribute(user_id=user.id, category="values", value="honesty", source="user_set"))
        db.commit()
        ctx = build_user_context(db, user.id, include_tags=True, include_attributes=True)
        assert ctx.existing_tags == []
        assert ctx.attributes == {"values": ["honesty"]}

    def test_unknown_user(self, db):
        with pytest.raises(UserNotFoundError):
            build_user_context(db, 12345)


class TestFormatUserContext:
    def test_full_context(self, db, user):
        text = format_user_context(build_user_context(db, user.id))
        assert text.startswith("**Name:** Sam")
        assert "**Character:**\n- Class: Ranger" in text
        assert "- Motto: \"Keep going\"" in text
        assert "**Active goals:**\n- Run a half marathon: Before October" in text
        assert "- **Alice** (sister, Level 1, 0 XP)\n  - Likes: hiking" in text
        assert "- **Strength** (Level 1, 0 XP): Physical power" in text
        assert "    - Deadlift session (XP: 20)" in text
        assert "    - Reading" in text

    def test_omitted_sections_leave_no_headers(self, db, user):
        ctx = build_user_context(
            db, user.id,
            include_character=False, include_goals=False,
            include_family=False, include_stats=False,
        )
        text = format_user_context(ctx)
        for header in ("**Character:**", "**Active goals:**", "**Family members:**", "**Character stats:**"):
            assert header not in text
        assert text == "**Name:** Sam\n\n**Preferred tone:** playful"

    def test_empty_attributes_have_no_header(self, db, user):
        ctx = build_user_context(db, user.id, include_tags=True, include_attributes=True)
        text = format_user_context(ctx)
        assert "**Existing content tags:**" not in text
        assert "**Known attributes:**" not in text

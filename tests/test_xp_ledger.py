"""
Tests for the XP ledger: grants, cached totals and their consistency.
"""
from datetime import date

import pytest
from sqlalchemy import select

from app.core.errors import ValidationError
from app.models.character_stat import CharacterStat
from app.models.family_member import FamilyMember
from app.models.xp_grant import XpEntityType, XpGrant, XpSourceType
from app.services.tags import get_or_create_tag, list_tags_with_counts
from app.services.xp_ledger import (
    delete_grants_for_source,
    grant_family_xp,
    grant_stat_xp,
    grants_for_source,
    record_grant,
    recompute_entity_total,
    xp_earned_by_source,
)


@pytest.fixture()
def strength(db, user):
    return db.scalar(select(CharacterStat).where(CharacterStat.name == "Strength"))


@pytest.fixture()
def alice(db, user):
    return db.scalar(select(FamilyMember).where(FamilyMember.name == "Alice"))


def _ledger_sum(db, entity_type, entity_id) -> int:
    return sum(
        g.xp_amount
        for g in db.scalars(
            select(XpGrant).where(XpGrant.entity_type == entity_type, XpGrant.entity_id == entity_id)
        )
    )


class TestGrants:
    def test_stat_grant_updates_cached_total(self, db, strength):
        grant_stat_xp(db, strength, 20, XpSourceType.JOURNAL, 1, "Gym")
        grant_stat_xp(db, strength, 15, XpSourceType.JOURNAL, 2)
        db.commit()
        db.refresh(strength)
        assert strength.total_xp == 35
        assert _ledger_sum(db, "character_stat", strength.id) == 35

    def test_family_grant_sets_last_interaction(self, db, alice):
        grant_family_xp(db, alice, 10, date(2025, 6, 1), XpSourceType.JOURNAL, 1)
        db.commit()
        db.refresh(alice)
        assert alice.connection_xp == 10
        assert alice.last_interaction_date == date(2025, 6, 1)

    def test_negative_xp_is_rejected(self, db, strength):
        with pytest.raises(ValidationError):
            grant_stat_xp(db, strength, -5, XpSourceType.JOURNAL, 1)

    def test_content_tag_grant_is_always_zero(self, db, user):
        tag = get_or_create_tag(db, user.id, "Hiking")
        grant = record_grant(db, user.id, XpEntityType.content_tag, tag.id, 25, XpSourceType.JOURNAL, 1)
        db.commit()
        assert grant.xp_amount == 0
        assert grant.entity_type == "content_tag"


class TestReads:
    def test_grants_for_source_in_insert_order(self, db, strength, alice):
        grant_stat_xp(db, strength, 20, XpSourceType.JOURNAL, 7)
        grant_family_xp(db, alice, 10, date(2025, 6, 1), XpSourceType.JOURNAL, 7)
        grant_stat_xp(db, strength, 5, XpSourceType.JOURNAL, 8)
        db.commit()
        grants = grants_for_source(db, strength.user_id, XpSourceType.JOURNAL, 7)
        assert [(g.entity_type, g.xp_amount) for g in grants] == [
            ("character_stat", 20), ("family_member", 10),
        ]

    def test_xp_earned_excludes_content_tags(self, db, user, strength):
        tag = get_or_create_tag(db, user.id, "gym")
        record_grant(db, user.id, XpEntityType.content_tag, tag.id, 0, XpSourceType.JOURNAL, 7)
        grant_stat_xp(db, strength, 20, XpSourceType.JOURNAL, 7)
        db.commit()
        assert xp_earned_by_source(db, XpSourceType.JOURNAL, [7, 8]) == {7: 20, 8: 0}
        assert xp_earned_by_source(db, XpSourceType.JOURNAL, []) == {}


class TestDeleteAndRecompute:
    def test_delete_source_rebuilds_totals(self, db, strength, alice):
        grant_stat_xp(db, strength, 20, XpSourceType.JOURNAL, 1)
        grant_stat_xp(db, strength, 30, XpSourceType.JOURNAL, 2)
        grant_family_xp(db, alice, 10, date(2025, 6, 1), XpSourceType.JOURNAL, 1)
        db.commit()

        affected = delete_grants_for_source(db, strength.user_id, XpSourceType.JOURNAL, 1)
        db.commit()

        assert sorted(affected) == sorted([("character_stat", strength.id), ("family_member", alice.id)])
        db.refresh(strength)
        db.refresh(alice)
        assert strength.total_xp == 30
        assert alice.connection_xp == 0
        assert strength.total_xp == _ledger_sum(db, "character_stat", strength.id)

    def test_delete_unknown_source_is_noop(self, db, user):
        assert delete_grants_for_source(db, user.id, XpSourceType.JOURNAL, 999) == []

    def test_recompute_repairs_drifted_cache(self, db, strength):
        grant_stat_xp(db, strength, 20, XpSourceType.JOURNAL, 1)
        strength.total_xp = 999
        db.commit()

        assert recompute_entity_total(db, "character_stat", strength.id) == 20
        db.commit()
        db.refresh(strength)
        assert strength.total_xp == 20

    def test_recompute_content_tag_has_no_cache(self, db):
        assert recompute_entity_total(db, XpEntityType.content_tag, 1) is None


class TestTags:
    def test_get_or_create_normalizes_and_reuses(self, db, user):
        first = get_or_create_tag(db, user.id, "  Daily   Life ")
        second = get_or_create_tag(db, user.id, "daily life")
        db.commit()
        assert first.id == second.id
        assert first.name == "daily life"

    def test_empty_name_is_rejected(self, db, user):
        with pytest.raises(ValidationError):
            get_or_create_tag(db, user.id, "   ")

    def test_usage_counts_most_used_first(self, db, user):
        gym = get_or_create_tag(db, user.id, "gym")
        family = get_or_create_tag(db, user.id, "family")
        get_or_create_tag(db, user.id, "unused")
        for source_id in (1, 2):
            record_grant(db, user.id, XpEntityType.content_tag, family.id, 0, XpSourceType.JOURNAL, source_id)
        record_grant(db, user.id, XpEntityType.content_tag, gym.id, 0, XpSourceType.JOURNAL, 3)
        db.commit()

        usage = list_tags_with_counts(db, user.id)
        assert [(t.name, t.usage_count) for t in usage] == [("family", 2), ("gym", 1), ("unused", 0)]

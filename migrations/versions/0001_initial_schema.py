"""initial schema

Revision ID: 0001
Revises:
Create Date: 2025-06-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )


def upgrade() -> None:
    # --- ENUM types ---
    journal_status_enum = sa.Enum("draft", "in_review", "complete", name="journal_status_enum")
    journal_status_enum.create(op.get_bind(), checkfirst=True)

    attribute_source_enum = sa.Enum(
        "user_set", "gpt_summary", "journal_analysis", name="attribute_source_enum"
    )
    attribute_source_enum.create(op.get_bind(), checkfirst=True)

    summary_period_enum = sa.Enum("week", "month", name="summary_period_enum")
    summary_period_enum.create(op.get_bind(), checkfirst=True)

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("tone_preference", sa.String(64), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])

    # --- characters ---
    op.create_table(
        "characters",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("character_class", sa.String(64), nullable=True),
        sa.Column("backstory", sa.Text(), nullable=True),
        sa.Column("motto", sa.String(256), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index("ix_characters_id", "characters", ["id"])

    # --- goals ---
    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_goals_id", "goals", ["id"])
    op.create_index("ix_goals_user_id", "goals", ["user_id"])

    # --- character_stats ---
    op.create_table(
        "character_stats",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("example_activities", sa.JSON(), nullable=True),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_character_stats_id", "character_stats", ["id"])
    op.create_index("ix_character_stats_user_id", "character_stats", ["user_id"])

    # --- family_members ---
    op.create_table(
        "family_members",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("relationship", sa.String(64), nullable=False),
        sa.Column("likes", sa.Text(), nullable=True),
        sa.Column("dislikes", sa.Text(), nullable=True),
        sa.Column("connection_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("connection_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_interaction_date", sa.Date(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_family_members_id", "family_members", ["id"])
    op.create_index("ix_family_members_user_id", "family_members", ["user_id"])

    # --- journals ---
    op.create_table(
        "journals",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.Enum(
            "draft", "in_review", "complete", name="journal_status_enum", create_type=False,
        ), nullable=False),
        sa.Column("initial_message", sa.Text(), nullable=True),
        sa.Column("chat_session", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("title", sa.String(256), nullable=True),
        sa.Column("synopsis", sa.Text(), nullable=True),
        sa.Column("tone_tags", sa.JSON(), nullable=True),
        sa.Column("day_rating", sa.Integer(), nullable=True),
        sa.Column("inferred_day_rating", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "date", name="uq_journal_user_date"),
        sa.CheckConstraint("day_rating BETWEEN 1 AND 5", name="ck_journal_day_rating"),
        sa.CheckConstraint(
            "inferred_day_rating BETWEEN 1 AND 5", name="ck_journal_inferred_day_rating"
        ),
    )
    op.create_index("ix_journals_id", "journals", ["id"])
    op.create_index("ix_journals_user_id", "journals", ["user_id"])
    op.create_index("ix_journals_date", "journals", ["date"])
    op.create_index("ix_journals_status", "journals", ["status"])

    # --- tags ---
    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("name", sa.String(64), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "name", name="uq_tag_user_name"),
    )
    op.create_index("ix_tags_id", "tags", ["id"])
    op.create_index("ix_tags_user_id", "tags", ["user_id"])

    # --- user_attributes ---
    op.create_table(
        "user_attributes",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("value", sa.String(128), nullable=False),
        sa.Column("source", sa.Enum(
            "user_set", "gpt_summary", "journal_analysis",
            name="attribute_source_enum", create_type=False,
        ), nullable=False),
        sa.Column(
            "last_updated", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "category", "value", name="uq_user_attribute"),
    )
    op.create_index("ix_user_attributes_id", "user_attributes", ["id"])
    op.create_index("ix_user_attributes_user_id", "user_attributes", ["user_id"])

    # --- xp_grants ---
    op.create_table(
        "xp_grants",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("xp_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_type", sa.String(32), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("xp_amount >= 0", name="ck_xp_grant_non_negative"),
        sa.CheckConstraint(
            "entity_type <> 'content_tag' OR xp_amount = 0", name="ck_xp_grant_content_tag_zero"
        ),
    )
    op.create_index("ix_xp_grants_id", "xp_grants", ["id"])
    op.create_index("ix_xp_grants_user_id", "xp_grants", ["user_id"])
    op.create_index("ix_xp_grants_entity", "xp_grants", ["entity_type", "entity_id"])
    op.create_index("ix_xp_grants_source", "xp_grants", ["source_type", "source_id"])

    # --- journal_summaries ---
    op.create_table(
        "journal_summaries",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("period", sa.Enum(
            "week", "month", name="summary_period_enum", create_type=False,
        ), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "period", "start_date", "end_date", name="uq_journal_summary_window"
        ),
    )
    op.create_index("ix_journal_summaries_id", "journal_summaries", ["id"])
    op.create_index("ix_journal_summaries_user_id", "journal_summaries", ["user_id"])
    op.create_index("ix_journal_summaries_period", "journal_summaries", ["period"])
    op.create_index("ix_journal_summaries_end_date", "journal_summaries", ["end_date"])

    # --- todos ---
    op.create_table(
        "todos",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk(),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("source_type", sa.String(32), nullable=True),
        sa.Column("source_id", sa.Integer(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_todos_id", "todos", ["id"])
    op.create_index("ix_todos_user_id", "todos", ["user_id"])


def downgrade() -> None:
    for table in (
        "todos",
        "journal_summaries",
        "xp_grants",
        "user_attributes",
        "tags",
        "journals",
        "family_members",
        "character_stats",
        "goals",
        "characters",
        "users",
    ):
        op.drop_table(table)

    sa.Enum(name="summary_period_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="attribute_source_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="journal_status_enum").drop(op.get_bind(), checkfirst=True)

"""
User context aggregator — read-only snapshot used to ground prompts.

Each section is toggled by the caller so a prompt only pays for the
queries it needs. A section that was not requested is None; a requested
section with no rows is an empty list. format_user_context() omits both.

Public API
----------
build_user_context(db, user_id, include_*...) -> UserContext
format_user_context(ctx)                      -> str
format_stats_for_prompt(stats)                -> str
format_family_for_prompt(members)             -> str
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import UserNotFoundError
from app.models.character_stat import CharacterStat
from app.models.family_member import FamilyMember
from app.models.user import Character, Goal, User
from app.services.tags import TagUsage, list_tags_with_counts
from app.services.user_attributes import grouped_attributes


# ---------------------------------------------------------------------------
# Snapshot types
# ---------------------------------------------------------------------------

@dataclass
class CharacterInfo:
    character_class: Optional[str]
    backstory: Optional[str]
    motto: Optional[str]


@dataclass
class GoalInfo:
    id: int
    title: str
    description: Optional[str]


@dataclass
class FamilyMemberInfo:
    id: int
    name: str
    relationship: str
    likes: Optional[str]
    dislikes: Optional[str]
    connection_level: int
    connection_xp: int
    last_interaction_date: Optional[date] = None


@dataclass
class StatInfo:
    id: int
    name: str
    description: str
    current_level: int
    total_xp: int
    example_activities: list[Any] = field(default_factory=list)


@dataclass
class UserContext:
    user_id: int
    name: str
    tone_preference: Optional[str] = None
    character: Optional[CharacterInfo] = None
    goals: Optional[list[GoalInfo]] = None
    family_members: Optional[list[FamilyMemberInfo]] = None
    character_stats: Optional[list[StatInfo]] = None
    existing_tags: Optional[list[TagUsage]] = None
    attributes: Optional[dict[str, list[str]]] = None


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_user_context(
    db: Session,
    user_id: int,
    include_character: bool = True,
    include_goals: bool = True,
    include_family: bool = True,
    include_stats: bool = True,
    include_tags: bool = False,
    include_attributes: bool = False,
) -> UserContext:
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    ctx = UserContext(user_id=user.id, name=user.name, tone_preference=user.tone_preference)

    if include_character:
        character = db.scalar(select(Character).where(Character.user_id == user_id))
        if character is not None:
            ctx.character = CharacterInfo(
                character_class=character.character_class,
                backstory=character.backstory,
                motto=character.motto,
            )

    if include_goals:
        goals = db.scalars(
            select(Goal)
            .where(Goal.user_id == user_id, Goal.archived.is_(False))
            .order_by(Goal.id)
        )
        ctx.goals = [GoalInfo(id=g.id, title=g.title, description=g.description) for g in goals]

    if include_family:
        members = db.scalars(
            select(FamilyMember).where(FamilyMember.user_id == user_id).order_by(FamilyMember.name)
        )
        ctx.family_members = [
            FamilyMemberInfo(
                id=m.id,
                name=m.name,
                relationship=m.relationship,
                likes=m.likes,
                dislikes=m.dislikes,
                connection_level=m.connection_level,
                connection_xp=m.connection_xp,
                last_interaction_date=m.last_interaction_date,
            )
            for m in members
        ]

    if include_stats:
        stats = db.scalars(
            select(CharacterStat).where(CharacterStat.user_id == user_id).order_by(CharacterStat.name)
        )
        ctx.character_stats = [
            StatInfo(
                id=s.id,
                name=s.name,
                description=s.description or "",
                current_level=s.current_level,
                total_xp=s.total_xp,
                example_activities=list(s.example_activities or []),
            )
            for s in stats
        ]

    if include_tags:
        ctx.existing_tags = list_tags_with_counts(db, user_id)

    if include_attributes:
        ctx.attributes = grouped_attributes(db, user_id)

    return ctx


# ---------------------------------------------------------------------------
# Prompt formatting
# ---------------------------------------------------------------------------

def _activity_line(activity: Any) -> Optional[str]:
    if isinstance(activity, dict) and activity.get("description"):
        xp = activity.get("suggestedXp")
        return f"    - {activity['description']}" + (f" (XP: {xp})" if xp is not None else "")
    if isinstance(activity, str) and activity.strip():
        return f"    - {activity.strip()}"
    return None


def format_stats_for_prompt(stats: list[StatInfo]) -> str:
    lines: list[str] = []
    for stat in stats:
        lines.append(
            f"- **{stat.name}** (Level {stat.current_level}, {stat.total_xp} XP): {stat.description}".rstrip(": ")
        )
        activities = [line for line in map(_activity_line, stat.example_activities) if line]
        if activities:
            lines.append("  - Example activities:")
            lines.extend(activities)
    return "\n".join(lines)


def format_family_for_prompt(members: list[FamilyMemberInfo]) -> str:
    lines: list[str] = []
    for m in members:
        lines.append(
            f"- **{m.name}** ({m.relationship}, Level {m.connection_level}, {m.connection_xp} XP)"
        )
        if m.likes:
            lines.append(f"  - Likes: {m.likes}")
        if m.dislikes:
            lines.append(f"  - Dislikes: {m.dislikes}")
    return "\n".join(lines)


def format_user_context(ctx: UserContext) -> str:
    sections: list[str] = [f"**Name:** {ctx.name}"]
    if ctx.tone_preference:
        sections.append(f"**Preferred tone:** {ctx.tone_preference}")

    if ctx.character is not None:
        parts = []
        if ctx.character.character_class:
            parts.append(f"- Class: {ctx.character.character_class}")
        if ctx.character.backstory:
            parts.append(f"- Backstory: {ctx.character.backstory}")
        if ctx.character.motto:
            parts.append(f"- Motto: \"{ctx.character.motto}\"")
        if parts:
            sections.append("**Character:**\n" + "\n".join(parts))

    if ctx.goals:
        goal_lines = [
            f"- {g.title}" + (f": {g.description}" if g.description else "") for g in ctx.goals
        ]
        sections.append("**Active goals:**\n" + "\n".join(goal_lines))

    if ctx.family_members:
        sections.append("**Family members:**\n" + format_family_for_prompt(ctx.family_members))

    if ctx.character_stats:
        sections.append("**Character stats:**\n" + format_stats_for_prompt(ctx.character_stats))

    if ctx.existing_tags:
        tag_lines = [f"- \"{t.name}\" (used {t.usage_count}x)" for t in ctx.existing_tags]
        sections.append("**Existing content tags:**\n" + "\n".join(tag_lines))

    if ctx.attributes:
        attr_lines = [
            f"- {category.capitalize()}: {', '.join(values)}"
            for category, values in sorted(ctx.attributes.items())
            if values
        ]
        if attr_lines:
            sections.append("**Known attributes:**\n" + "\n".join(attr_lines))

    return "\n\n".join(sections)

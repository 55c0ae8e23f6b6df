"""
Metadata extraction pipeline.

Turns a finished conversation into structured suggestions:

  content analysis   title, synopsis, content tags, todos, attributes
  context analysis   tone tags, stat XP, family XP
  narrative summary  the user's messages rewritten as one first-person entry

The three model calls run concurrently on a small thread pool. Worker
threads only talk to the model; everything that touches the database
happens afterwards on the caller's session.

Names returned by the model are matched against the user's existing stats
and family members. Unmatched names are dropped; nothing is invented.

Public API
----------
run_analyses(gateway, chat_session, ctx)        -> RawAnalysis
resolve_metadata(raw, ctx)                      -> JournalMetadata
resolve_tag_ids(db, user_id, tag_names)         -> list[int]   (flush only)
generate_follow_up(gateway, chat_session, ctx, memory) -> str
match_stat / match_family_member / validate_tone_tags / clamp_xp
"""
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.errors import UpstreamParseError, ValidationError
from app.models.journal import MAX_TONE_TAGS, TONE_TAG_VALUES
from app.services.journal_memory import JournalMemory, memory_to_messages
from app.services.llm_gateway import (
    CONTENT_ANALYSIS_MARKER,
    CONTEXT_ANALYSIS_MARKER,
    NARRATIVE_SUMMARY_MARKER,
    LLMGateway,
    parse_json_content,
)
from app.services.tags import get_or_create_tag, normalize_tag_name
from app.services.user_context import (
    FamilyMemberInfo,
    StatInfo,
    UserContext,
    format_family_for_prompt,
    format_stats_for_prompt,
    format_user_context,
)

logger = logging.getLogger(__name__)

MIN_XP = 5
MAX_XP = 50
MAX_TODOS = 5
MAX_TODO_LENGTH = 100
MAX_ATTRIBUTES = 3
MAX_CONTENT_TAGS = 6
FOLLOW_UP_HISTORY = 6
OFFER_SAVE_AFTER = 3

FOLLOW_UP_TEMPERATURE = 0.8
ANALYSIS_TEMPERATURE = 0.3
SUMMARY_TEMPERATURE = 0.7


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class RawAnalysis:
    content: dict[str, Any]
    context: dict[str, Any]
    summary: str


@dataclass
class XpAward:
    entity_id: int
    name: str
    xp: int
    reason: str = ""


@dataclass
class JournalMetadata:
    title: str
    synopsis: str
    summary: str
    tag_names: list[str] = field(default_factory=list)
    tone_tags: list[str] = field(default_factory=list)
    stat_awards: list[XpAward] = field(default_factory=list)
    family_awards: list[XpAward] = field(default_factory=list)
    todos: list[str] = field(default_factory=list)
    attributes: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def _user_messages(chat_session: Sequence[dict]) -> list[dict[str, str]]:
    return [
        {"role": "user", "content": m["content"]}
        for m in chat_session
        if m.get("role") == "user" and (m.get("content") or "").strip()
    ]


def build_content_messages(chat_session: Sequence[dict], ctx: UserContext) -> list[dict[str, str]]:
    system = (
        "You are analyzing a conversational journal session to extract metadata.\n\n"
        "Produce:\n"
        "1. title: 6-10 words capturing the main theme\n"
        "2. synopsis: 1-2 sentences covering the key points\n"
        "3. suggestedTags: 3-6 lowercase content tags (topics, activities, themes)\n"
        f"4. suggestedTodos: 0-{MAX_TODOS} actionable items the user explicitly mentioned, "
        f"verb first, under {MAX_TODO_LENGTH} characters each\n"
        f"5. suggestedAttributes: 0-{MAX_ATTRIBUTES} short traits, values or priorities the "
        "user clearly expressed about themselves\n"
    )
    if ctx.existing_tags:
        system += (
            "\nPrefer these existing tags when they fit (most used first):\n"
            + "\n".join(f"- \"{t.name}\"" for t in ctx.existing_tags)
            + "\n"
        )
    if ctx.attributes:
        known = sorted({v for values in ctx.attributes.values() for v in values})
        if known:
            system += "\nAlready known about the user (do not repeat):\n" + "\n".join(
                f"- {v}" for v in known
            ) + "\n"
    system += (
        "\nDo not guess. Leave a field empty when the conversation does not support it.\n"
        "Respond with a single JSON object with exactly these keys: "
        "title, synopsis, suggestedTags, suggestedTodos, suggestedAttributes."
    )
    return [
        {"role": "system", "content": system},
        *_user_messages(chat_session),
        {"role": "user", "content": CONTENT_ANALYSIS_MARKER},
    ]


def build_context_messages(chat_session: Sequence[dict], ctx: UserContext) -> list[dict[str, str]]:
    system = (
        "You are analyzing a conversational journal session for mood and growth.\n\n"
        f"1. toneTags: up to {MAX_TONE_TAGS} tones from this exact list: "
        f"{', '.join(sorted(TONE_TAG_VALUES))}. Only tones clearly expressed or strongly implied.\n"
        f"2. suggestedStatTags: stat name -> {{\"xp\": {MIN_XP}-{MAX_XP}, \"reason\": \"...\"}} "
        "for stats the conversation genuinely developed. Use the exact stat names below.\n"
        f"3. suggestedFamilyTags: family member name -> {{\"xp\": {MIN_XP}-{MAX_XP}, "
        "\"reason\": \"...\"}} for people the user spent time with or discussed. "
        "Use the exact names below.\n"
    )
    if ctx.character_stats:
        system += "\nCharacter stats:\n" + format_stats_for_prompt(ctx.character_stats) + "\n"
    if ctx.family_members:
        system += "\nFamily members:\n" + format_family_for_prompt(ctx.family_members) + "\n"
    system += (
        "\nRespond with a single JSON object with exactly these keys: "
        "toneTags, suggestedStatTags, suggestedFamilyTags."
    )
    return [
        {"role": "system", "content": system},
        *_user_messages(chat_session),
        {"role": "user", "content": CONTEXT_ANALYSIS_MARKER},
    ]


def build_summary_messages(chat_session: Sequence[dict], ctx: UserContext) -> list[dict[str, str]]:
    system = (
        f"You are a skilled writer turning {ctx.name}'s journal conversation into one "
        "cohesive journal entry.\n\n"
        "- Keep the user's voice, style and key phrases.\n"
        "- Write in first person, only the user's thoughts and experiences.\n"
        "- Use a dry, fact-based tone. No commentary.\n"
        "- Paragraphs and light markdown are fine."
    )
    return [
        {"role": "system", "content": system},
        *_user_messages(chat_session),
        {"role": "user", "content": NARRATIVE_SUMMARY_MARKER},
    ]


def build_follow_up_messages(
    chat_session: Sequence[dict],
    ctx: UserContext,
    memory: Optional[JournalMemory] = None,
) -> list[dict[str, str]]:
    user_turns = sum(1 for m in chat_session if m.get("role") == "user")
    system = (
        f"You are a warm, emotionally intelligent friend to {ctx.name}. Read their latest "
        "journal message and reply with curiosity and insight. Reflect back what you notice; "
        "do not fix or lecture. Keep it short and end with a question or a warm line.\n\n"
        "## What you know about the user\n\n"
        + format_user_context(ctx)
    )
    if user_turns >= OFFER_SAVE_AFTER:
        system += (
            f"\n\nThe conversation has good depth ({user_turns} user messages). "
            "Gently suggest finishing and saving the entry."
        )

    messages: list[dict[str, str]] = [{"role": "system", "content": system}]
    if memory is not None:
        messages.extend(memory_to_messages(memory))
    messages.extend(
        {"role": m["role"], "content": m["content"]}
        for m in list(chat_session)[-FOLLOW_UP_HISTORY:]
    )
    return messages


# ---------------------------------------------------------------------------
# Model calls
# ---------------------------------------------------------------------------

def run_analyses(gateway: LLMGateway, chat_session: Sequence[dict], ctx: UserContext) -> RawAnalysis:
    """
    Run content analysis, context analysis and the narrative summary in
    parallel. Raises UpstreamCallError / UpstreamParseError; nothing is
    written by this function.
    """
    if not _user_messages(chat_session):
        raise ValidationError("Conversation has no user messages to analyze.")

    content_msgs = build_content_messages(chat_session, ctx)
    context_msgs = build_context_messages(chat_session, ctx)
    summary_msgs = build_summary_messages(chat_session, ctx)

    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="journal-analysis") as pool:
        content_f = pool.submit(gateway.call_model, content_msgs, temperature=ANALYSIS_TEMPERATURE)
        context_f = pool.submit(gateway.call_model, context_msgs, temperature=ANALYSIS_TEMPERATURE)
        summary_f = pool.submit(gateway.call_model, summary_msgs, temperature=SUMMARY_TEMPERATURE)
        content_resp = content_f.result()
        context_resp = context_f.result()
        summary_resp = summary_f.result()

    return RawAnalysis(
        content=parse_json_content(content_resp.content),
        context=parse_json_content(context_resp.content),
        summary=summary_resp.content.strip(),
    )


def generate_follow_up(
    gateway: LLMGateway,
    chat_session: Sequence[dict],
    ctx: UserContext,
    memory: Optional[JournalMemory] = None,
) -> str:
    messages = build_follow_up_messages(chat_session, ctx, memory)
    reply = gateway.call_model(messages, temperature=FOLLOW_UP_TEMPERATURE).content.strip()
    if not reply:
        raise UpstreamParseError("Model returned an empty follow-up response.")
    return reply


# ---------------------------------------------------------------------------
# Validation / matching
# ---------------------------------------------------------------------------

def clamp_xp(value: Any) -> Optional[int]:
    """Coerce to int and clamp to [MIN_XP, MAX_XP]; None when not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    xp = int(round(number))
    return max(MIN_XP, min(MAX_XP, xp))


def validate_tone_tags(values: Any) -> list[str]:
    """Keep known tones only, lowercased, de-duplicated, at most MAX_TONE_TAGS."""
    if not isinstance(values, list):
        return []
    tones: list[str] = []
    for v in values:
        if not isinstance(v, str):
            continue
        tone = v.strip().lower()
        if tone in TONE_TAG_VALUES and tone not in tones:
            tones.append(tone)
        if len(tones) == MAX_TONE_TAGS:
            break
    return tones


def match_stat(key: str, stats: Sequence[StatInfo]) -> Optional[StatInfo]:
    """Id, then case-insensitive name, then substring either way."""
    needle = key.strip().lower()
    if not needle:
        return None
    for stat in stats:
        if str(stat.id) == needle:
            return stat
    for stat in stats:
        if stat.name.lower() == needle:
            return stat
    for stat in stats:
        name = stat.name.lower()
        if needle in name or name in needle:
            return stat
    return None


def match_family_member(key: str, members: Sequence[FamilyMemberInfo]) -> Optional[FamilyMemberInfo]:
    needle = key.strip().lower()
    for member in members:
        if member.name.lower() == needle:
            return member
    return None


def _award_items(raw: Any) -> list[tuple[str, Any, str]]:
    """Accept {name: {xp, reason}} or {name: xp}."""
    if not isinstance(raw, dict):
        return []
    items = []
    for name, data in raw.items():
        if not isinstance(name, str):
            continue
        if isinstance(data, dict):
            items.append((name, data.get("xp"), str(data.get("reason") or "")))
        else:
            items.append((name, data, ""))
    return items


def _string_list(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [v.strip() for v in raw if isinstance(v, str) and v.strip()]


def _clean_todos(raw: Any) -> list[str]:
    todos: list[str] = []
    for item in _string_list(raw):
        todo = item[:MAX_TODO_LENGTH].rstrip()
        if todo not in todos:
            todos.append(todo)
    return todos[:MAX_TODOS]


def _clean_attributes(raw: Any, ctx: UserContext) -> list[str]:
    known = {
        v.lower() for values in (ctx.attributes or {}).values() for v in values
    }
    picked: list[str] = []
    for item in _string_list(raw):
        if item.lower() in known or item.lower() in (p.lower() for p in picked):
            continue
        picked.append(item)
    return picked[:MAX_ATTRIBUTES]


def resolve_metadata(raw: RawAnalysis, ctx: UserContext) -> JournalMetadata:
    """Validate and match the raw model output against the user's entities."""
    content, context = raw.content, raw.context

    tag_names: list[str] = []
    for name in _string_list(content.get("suggestedTags") or content.get("contentTags")):
        normalized = normalize_tag_name(name)
        if normalized and normalized not in tag_names:
            tag_names.append(normalized)

    stat_awards: dict[int, XpAward] = {}
    for name, xp_raw, reason in _award_items(context.get("suggestedStatTags")):
        stat = match_stat(name, ctx.character_stats or [])
        xp = clamp_xp(xp_raw)
        if stat is None or xp is None:
            logger.debug("Dropping stat suggestion %r (xp=%r)", name, xp_raw)
            continue
        # First suggestion wins when two names resolve to the same stat.
        stat_awards.setdefault(stat.id, XpAward(stat.id, stat.name, xp, reason))

    family_awards: dict[int, XpAward] = {}
    for name, xp_raw, reason in _award_items(context.get("suggestedFamilyTags")):
        member = match_family_member(name, ctx.family_members or [])
        xp = clamp_xp(xp_raw)
        if member is None or xp is None:
            logger.debug("Dropping family suggestion %r (xp=%r)", name, xp_raw)
            continue
        family_awards.setdefault(member.id, XpAward(member.id, member.name, xp, reason))

    title = content.get("title")
    synopsis = content.get("synopsis")
    return JournalMetadata(
        title=(title.strip() if isinstance(title, str) else "")[:256],
        synopsis=synopsis.strip() if isinstance(synopsis, str) else "",
        summary=raw.summary,
        tag_names=tag_names[:MAX_CONTENT_TAGS],
        tone_tags=validate_tone_tags(context.get("toneTags")),
        stat_awards=list(stat_awards.values()),
        family_awards=list(family_awards.values()),
        todos=_clean_todos(content.get("suggestedTodos")),
        attributes=_clean_attributes(content.get("suggestedAttributes"), ctx),
    )


def resolve_tag_ids(db: Session, user_id: int, tag_names: Sequence[str]) -> list[int]:
    """Get-or-create each tag; flush only."""
    ids: list[int] = []
    for name in tag_names:
        tag = get_or_create_tag(db, user_id, name)
        if tag.id not in ids:
            ids.append(tag.id)
    return ids

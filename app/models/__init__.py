from .user import User, Character, Goal
from .character_stat import CharacterStat
from .family_member import FamilyMember
from .journal import Journal, JournalStatus, ToneTag
from .tag import Tag
from .user_attribute import UserAttribute, AttributeSource
from .xp_grant import XpGrant, XpEntityType
from .journal_summary import JournalSummary, SummaryPeriod
from .todo import Todo

__all__ = [
    "User",
    "Character",
    "Goal",
    "CharacterStat",
    "FamilyMember",
    "Journal",
    "JournalStatus",
    "ToneTag",
    "Tag",
    "UserAttribute",
    "AttributeSource",
    "XpGrant",
    "XpEntityType",
    "JournalSummary",
    "SummaryPeriod",
    "Todo",
]

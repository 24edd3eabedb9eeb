"""Data models for the username spam filter."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ConfigObjectType(StrEnum):
    """Kinds of spam filter configuration records.

    The persisted values are canonical. ``HIGH_RANKING_ROLE`` is the legacy
    name of :attr:`PROTECTED_ROLE` and is only accepted on input.
    """

    PROTECTED_ROLE = "PROTECTED_ROLE"
    ALLOWLIST_ROLE = "ALLOWLIST_ROLE"
    ALLOWLIST_USER = "ALLOWLIST_USER"

    @classmethod
    def parse(cls, value: str) -> ConfigObjectType:
        """Parse a persisted or user-supplied value, resolving legacy aliases."""
        normalized = value.strip().upper().replace("-", "_")
        if normalized in _LEGACY_ALIASES:
            return _LEGACY_ALIASES[normalized]
        return cls(normalized)

    @property
    def persisted_aliases(self) -> tuple[str, ...]:
        """All stored values that mean this type (canonical first)."""
        legacy = tuple(alias for alias, target in _LEGACY_ALIASES.items() if target is self)
        return (self.value, *legacy)


_LEGACY_ALIASES: dict[str, ConfigObjectType] = {
    "HIGH_RANKING_ROLE": ConfigObjectType.PROTECTED_ROLE,
}


class FilterState(StrEnum):
    """States of a single spam filter evaluation."""

    START = "start"
    SKIP_CHECK = "skip_check"
    SKIPPED = "skipped"
    EVALUATE = "evaluate"
    NOT_CONFIGURED = "not_configured"
    NO_MATCH = "no_match"
    MATCH = "match"
    BANNED = "banned"
    BAN_FAILED = "ban_failed"


class SkipReason(StrEnum):
    """Why a member was exempt from evaluation."""

    NOT_BANNABLE = "not_bannable"
    ALLOWLISTED_USER = "allowlisted_user"
    ALLOWLISTED_ROLE = "allowlisted_role"


@dataclass(frozen=True)
class ConfigRecord:
    """One protection or exemption entry, scoped to a single server.

    ``discord_object_name`` and ``discord_server_name`` are kept for
    reporting only and never take part in matching.
    """

    object_type: ConfigObjectType
    discord_object_id: int
    discord_object_name: str
    discord_server_id: int
    discord_server_name: str

    @property
    def key(self) -> tuple[ConfigObjectType, int, int]:
        """Uniqueness key of the record."""
        return (self.object_type, self.discord_object_id, self.discord_server_id)


@dataclass(frozen=True)
class InsertSummary:
    """Outcome of a batch of configuration inserts."""

    inserted: int = 0
    duplicates: int = 0
    failed: int = 0


@dataclass(frozen=True)
class CandidateIdentity:
    """The member whose identity change is being evaluated."""

    guild_id: int
    user_id: int
    username: str
    nickname: str | None = None
    role_ids: frozenset[int] = frozenset()
    bannable: bool = True
    guild_name: str = ""
    discriminator: str = "0"

    @property
    def display_name(self) -> str:
        """Nickname when set, otherwise the username."""
        return self.nickname or self.username

    @property
    def tag(self) -> str:
        """``username#discriminator``, or the bare username on the new name system."""
        if self.discriminator and self.discriminator != "0":
            return f"{self.username}#{self.discriminator}"
        return self.username


@dataclass(frozen=True)
class ProtectedMember:
    """A current member of a protected role, resolved at evaluation time."""

    user_id: int
    username: str
    nickname: str | None = None

    @property
    def display_name(self) -> str:
        """Nickname when set, otherwise the username."""
        return self.nickname or self.username


@dataclass
class FilterResult:
    """Outcome of one spam filter evaluation."""

    verdict: bool
    state: FilterState
    skip_reason: SkipReason | None = None
    matched_name: str | None = None
    dm_sent: bool = False
    processing_time_ms: float = 0.0

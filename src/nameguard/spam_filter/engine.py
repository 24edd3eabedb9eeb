"""Username impersonation spam filter.

Decides, for one identity-change event, whether a guild member must be
auto-banned because their nickname or username normalizes to the same
canonical name as a current member of a protected role.

States per event::

    start -> skip_check -> skipped
                        -> evaluate -> not_configured
                                    -> no_match
                                    -> match -> banned | ban_failed

The verdict is ``True`` whenever a match occurred, whether or not the ban
itself succeeded. Configuration and role membership are re-read on every
evaluation.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Protocol

from nameguard.logging import get_logger
from nameguard.spam_filter.config_store import ConfigStore
from nameguard.spam_filter.forensics import log_ban_event
from nameguard.spam_filter.models import (
    CandidateIdentity,
    ConfigObjectType,
    FilterResult,
    FilterState,
    ProtectedMember,
    SkipReason,
)
from nameguard.spam_filter.normalizer import canonical_names, normalize

log = get_logger("nameguard.spam_filter.engine")

# Discord rejects audit log reasons longer than this
_MAX_BAN_REASON_LENGTH = 512


class SpamFilterError(Exception):
    """Base exception for spam filter errors."""

    pass


class DirectoryUnavailableError(SpamFilterError):
    """Raised when guild membership cannot be read; no verdict is made."""

    pass


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


class Directory(Protocol):
    """Read access to the current membership of a guild."""

    async def members_with_roles(
        self, guild_id: int, role_ids: Sequence[int]
    ) -> list[ProtectedMember]:
        """Return current members holding any of *role_ids*.

        Raises:
            DirectoryUnavailableError: If the guild cannot be read.
        """
        ...

    def is_bannable(self, guild_id: int, user_id: int) -> bool:
        """Return whether the bot may ban *user_id* in *guild_id*."""
        ...


class Actor(Protocol):
    """Side effects executed on a match."""

    async def send_direct_message(self, user_id: int, text: str) -> bool:
        """Send a DM. Returns ``False`` on failure."""
        ...

    async def ban(self, guild_id: int, user_id: int, reason: str) -> bool:
        """Ban a member. Returns ``False`` on failure."""
        ...


# ---------------------------------------------------------------------------
# Decision engine
# ---------------------------------------------------------------------------


class UsernameSpamFilter:
    """Ban members impersonating protected members of their guild."""

    def __init__(
        self,
        store: ConfigStore,
        directory: Directory,
        actor: Actor,
        *,
        appeal_contact_ids: Sequence[int] = (),
        concurrent_role_lookups: bool = True,
    ) -> None:
        """Initialize the filter.

        Args:
            store: Source of protected role and allowlist records.
            directory: Resolves current members of protected roles.
            actor: Sends the warning DM and executes the ban.
            appeal_contact_ids: Users named in the warning DM for appeals.
            concurrent_role_lookups: Resolve each protected role with its
                own concurrent directory read.
        """
        self._store = store
        self._directory = directory
        self._actor = actor
        self._appeal_contact_ids = tuple(appeal_contact_ids)
        self._concurrent_role_lookups = concurrent_role_lookups

    async def run(self, candidate: CandidateIdentity, *, request_id: str = "") -> bool:
        """Evaluate *candidate* and return whether they matched a protected name."""
        result = await self.evaluate(candidate, request_id=request_id)
        return result.verdict

    async def evaluate(
        self, candidate: CandidateIdentity, *, request_id: str = ""
    ) -> FilterResult:
        """Run the full filter for one identity-change event.

        Args:
            candidate: The member whose identity changed.
            request_id: Correlation ID for logs.

        Returns:
            A :class:`FilterResult` describing the terminal state.

        Raises:
            DirectoryUnavailableError: Membership could not be resolved.
            asyncpg.PostgresError: Configuration could not be read.
        """
        start = time.perf_counter()

        skip_reason = await self.should_skip(candidate)
        if skip_reason is not None:
            log.info(
                "spam_filter_skipped",
                reason=skip_reason.value,
                guild_id=candidate.guild_id,
                user_id=candidate.user_id,
                tag=candidate.tag,
            )
            return FilterResult(
                verdict=False,
                state=FilterState.SKIPPED,
                skip_reason=skip_reason,
                processing_time_ms=_elapsed_ms(start),
            )

        protected = await self.protected_names(
            candidate.guild_id, exclude_user_id=candidate.user_id
        )
        if protected is None:
            log.info("spam_filter_not_configured", guild_id=candidate.guild_id)
            return FilterResult(
                verdict=False,
                state=FilterState.NOT_CONFIGURED,
                processing_time_ms=_elapsed_ms(start),
            )

        matched = self.is_match(candidate, protected)
        if matched is None:
            return FilterResult(
                verdict=False,
                state=FilterState.NO_MATCH,
                processing_time_ms=_elapsed_ms(start),
            )

        result = FilterResult(verdict=True, state=FilterState.MATCH, matched_name=matched)
        await self._execute_ban(candidate, result)
        result.processing_time_ms = _elapsed_ms(start)
        log_ban_event(candidate=candidate, result=result, request_id=request_id)
        return result

    async def should_skip(self, candidate: CandidateIdentity) -> SkipReason | None:
        """Return why *candidate* is exempt from the filter, or ``None``."""
        if not candidate.bannable or not self._directory.is_bannable(
            candidate.guild_id, candidate.user_id
        ):
            return SkipReason.NOT_BANNABLE

        if await self._store.is_allowlisted_user(candidate.user_id, candidate.guild_id):
            return SkipReason.ALLOWLISTED_USER

        allowlist_roles = await self._store.list_by_type_and_server(
            ConfigObjectType.ALLOWLIST_ROLE, candidate.guild_id
        )
        if any(record.discord_object_id in candidate.role_ids for record in allowlist_roles):
            return SkipReason.ALLOWLISTED_ROLE

        return None

    async def protected_names(
        self, guild_id: int, *, exclude_user_id: int | None = None
    ) -> set[str] | None:
        """Return canonical display names of current protected members.

        Args:
            guild_id: Guild to resolve.
            exclude_user_id: Member left out of the set, normally the
                candidate, who cannot impersonate themselves.

        Returns:
            The set of canonical names, or ``None`` when no protected role is
            configured for the guild.
        """
        records = await self._store.list_by_type_and_server(
            ConfigObjectType.PROTECTED_ROLE, guild_id
        )
        if not records:
            return None

        role_ids = [record.discord_object_id for record in records]
        members = await self._resolve_members(guild_id, role_ids)

        seen: set[int] = set()
        display_names: list[str] = []
        for member in members:
            if member.user_id == exclude_user_id or member.user_id in seen:
                continue
            seen.add(member.user_id)
            display_names.append(member.display_name)
        return canonical_names(display_names)

    @staticmethod
    def is_match(candidate: CandidateIdentity, protected: set[str]) -> str | None:
        """Return the protected canonical name *candidate* collides with, if any.

        Matching is exact set membership of the normalized nickname (when
        set) or username.
        """
        for name in (candidate.nickname, candidate.username):
            if not name:
                continue
            canonical = normalize(name)
            if canonical and canonical in protected:
                return canonical
        return None

    def warning_message(self, candidate: CandidateIdentity) -> str:
        """Build the DM sent to a member right before the auto-ban."""
        server = candidate.guild_name or "Discord"
        message = f"You were auto-banned from the {server} server."
        if self._appeal_contact_ids:
            mentions = [f"<@{user_id}>" for user_id in self._appeal_contact_ids]
            contacts = (
                mentions[0]
                if len(mentions) == 1
                else f"{', '.join(mentions[:-1])} or {mentions[-1]}"
            )
            message += f" If you believe this was a mistake, please contact {contacts}."
        return message

    @staticmethod
    def ban_reason(candidate: CandidateIdentity) -> str:
        """Audit log reason recorded with the ban."""
        reason = (
            "Auto-banned by username spam filter. "
            f"Nickname: {candidate.display_name}. Username: {candidate.tag}."
        )
        return reason[:_MAX_BAN_REASON_LENGTH]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_members(
        self, guild_id: int, role_ids: list[int]
    ) -> list[ProtectedMember]:
        try:
            if self._concurrent_role_lookups and len(role_ids) > 1:
                per_role = await asyncio.gather(
                    *(
                        self._directory.members_with_roles(guild_id, [role_id])
                        for role_id in role_ids
                    )
                )
                return [member for members in per_role for member in members]
            return await self._directory.members_with_roles(guild_id, role_ids)
        except DirectoryUnavailableError:
            log.error("protected_members_unavailable", guild_id=guild_id, role_ids=role_ids)
            raise
        except Exception as exc:
            log.error(
                "protected_members_unavailable",
                guild_id=guild_id,
                role_ids=role_ids,
                error=str(exc),
            )
            raise DirectoryUnavailableError(
                f"Could not resolve protected members of guild {guild_id}"
            ) from exc

    async def _execute_ban(self, candidate: CandidateIdentity, result: FilterResult) -> None:
        """Warn then ban *candidate*, recording the terminal state on *result*.

        The DM goes first because the bot can no longer message the member
        once they are banned.
        """
        debug_context = {
            "guild_id": candidate.guild_id,
            "user_id": candidate.user_id,
            "nickname": candidate.display_name,
            "tag": candidate.tag,
        }

        try:
            result.dm_sent = await self._actor.send_direct_message(
                candidate.user_id, self.warning_message(candidate)
            )
        except Exception as exc:
            log.warning("ban_warning_dm_failed", error=str(exc), **debug_context)
            result.dm_sent = False
        else:
            if not result.dm_sent:
                log.warning("ban_warning_dm_failed", **debug_context)

        error: str | None = None
        try:
            banned = await self._actor.ban(
                candidate.guild_id, candidate.user_id, self.ban_reason(candidate)
            )
        except asyncio.CancelledError:
            # Only a cancelled ban request is a failure; our own cancellation propagates
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                log.warning("auto_ban_cancelled", **debug_context)
                raise
            banned = False
            error = "ban request cancelled"
        except Exception as exc:
            banned = False
            error = str(exc)

        if banned:
            result.state = FilterState.BANNED
            log.info("auto_banned", **debug_context)
        else:
            result.state = FilterState.BAN_FAILED
            log.error("auto_ban_failed", error=error, **debug_context)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000

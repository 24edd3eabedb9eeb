"""Discord-backed collaborators for the username spam filter.

:class:`DiscordDirectory` resolves guild membership and ban capability from
the gateway cache; :class:`DiscordActor` sends the warning DM and executes
the ban through the REST API.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import discord

from nameguard.logging import get_logger
from nameguard.spam_filter.engine import DirectoryUnavailableError
from nameguard.spam_filter.models import CandidateIdentity, ProtectedMember

log = get_logger("nameguard.discord.directory")


def display_override(member: discord.Member | discord.User) -> str | None:
    """Return the name shown instead of the username, if any.

    Guild nickname first, then the account-wide display name.
    """
    nick = getattr(member, "nick", None)
    if nick:
        return nick
    global_name = getattr(member, "global_name", None)
    return global_name or None


def can_ban(guild: discord.Guild, member: discord.Member) -> bool:
    """Return whether the bot may ban *member* given the role hierarchy."""
    me = guild.me
    if me is None or member.id == guild.owner_id or member.id == me.id:
        return False
    if not me.guild_permissions.ban_members:
        return False
    return me.top_role > member.top_role


def candidate_from_member(member: discord.Member) -> CandidateIdentity:
    """Snapshot the identity fields the spam filter needs from *member*."""
    guild = member.guild
    return CandidateIdentity(
        guild_id=guild.id,
        guild_name=guild.name,
        user_id=member.id,
        username=member.name,
        nickname=display_override(member),
        discriminator=str(member.discriminator),
        role_ids=frozenset(role.id for role in member.roles),
        bannable=can_ban(guild, member),
    )


class DiscordDirectory:
    """Guild membership lookups backed by the discord.py member cache."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def members_with_roles(
        self, guild_id: int, role_ids: Sequence[int]
    ) -> list[ProtectedMember]:
        """Return current members holding any of *role_ids*.

        Chunks the guild first when the member cache is incomplete so role
        membership reflects the live guild.

        Raises:
            DirectoryUnavailableError: The guild is not reachable.
        """
        guild = self._get_guild(guild_id)

        if not guild.chunked:
            try:
                await guild.chunk()
            except (discord.HTTPException, discord.ClientException, asyncio.TimeoutError) as exc:
                log.error("guild_chunk_failed", guild_id=guild_id, error=str(exc))
                raise DirectoryUnavailableError(
                    f"Could not load members of guild {guild_id}"
                ) from exc

        members: dict[int, ProtectedMember] = {}
        for role_id in role_ids:
            role = guild.get_role(role_id)
            if role is None:
                # Deleted roles stay configured until an admin removes them
                log.warning("protected_role_not_found", guild_id=guild_id, role_id=role_id)
                continue
            for member in role.members:
                members.setdefault(
                    member.id,
                    ProtectedMember(
                        user_id=member.id,
                        username=member.name,
                        nickname=display_override(member),
                    ),
                )
        return list(members.values())

    def is_bannable(self, guild_id: int, user_id: int) -> bool:
        """Return whether the bot may ban *user_id* in *guild_id*.

        Members missing from the cache are reported as not bannable.
        """
        guild = self._get_guild(guild_id)
        member = guild.get_member(user_id)
        if member is None:
            return False
        return can_ban(guild, member)

    def _get_guild(self, guild_id: int) -> discord.Guild:
        guild = self._client.get_guild(guild_id)
        if guild is None or guild.unavailable:
            raise DirectoryUnavailableError(f"Guild {guild_id} is not available")
        return guild


class DiscordActor:
    """Executes spam filter side effects through the Discord API."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def send_direct_message(self, user_id: int, text: str) -> bool:
        """DM *user_id*. Members who blocked the bot or closed DMs return ``False``."""
        try:
            user = self._client.get_user(user_id)
            if user is None:
                user = await self._client.fetch_user(user_id)
            await user.send(text)
            return True
        except (discord.HTTPException, asyncio.TimeoutError) as exc:
            log.warning("direct_message_failed", user_id=user_id, error=str(exc))
            return False

    async def ban(self, guild_id: int, user_id: int, reason: str) -> bool:
        """Ban *user_id* from *guild_id*. Never retried."""
        guild = self._client.get_guild(guild_id)
        if guild is None:
            log.error("ban_guild_not_found", guild_id=guild_id, user_id=user_id)
            return False
        try:
            await guild.ban(discord.Object(id=user_id), reason=reason)
            return True
        except (discord.HTTPException, asyncio.TimeoutError) as exc:
            log.error("ban_request_failed", guild_id=guild_id, user_id=user_id, error=str(exc))
            return False

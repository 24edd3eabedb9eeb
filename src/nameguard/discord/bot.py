"""Discord bot implementation."""

from uuid import uuid4

import asyncpg  # type: ignore[import-not-found,import-untyped]
import discord
import structlog
from discord import app_commands

from nameguard.config import get_settings
from nameguard.discord.directory import (
    DiscordActor,
    DiscordDirectory,
    candidate_from_member,
    display_override,
)
from nameguard.logging import get_logger
from nameguard.spam_filter.config_store import ConfigStore
from nameguard.spam_filter.engine import DirectoryUnavailableError, UsernameSpamFilter
from nameguard.spam_filter.models import ConfigObjectType, ConfigRecord

log = get_logger("nameguard.discord.bot")

_GENERIC_ERROR = "Sorry something is not working and our devs are looking into it."

_ADDED_MESSAGES: dict[ConfigObjectType, str] = {
    ConfigObjectType.PROTECTED_ROLE: "The roles are now protected by the username spam filter.",
    ConfigObjectType.ALLOWLIST_ROLE: "The roles are now on the allowlist.",
    ConfigObjectType.ALLOWLIST_USER: "The user is now on the allowlist.",
}

_REMOVED_MESSAGES: dict[ConfigObjectType, str] = {
    ConfigObjectType.PROTECTED_ROLE: (
        "The roles are no longer protected by the username spam filter."
    ),
    ConfigObjectType.ALLOWLIST_ROLE: "The roles are no longer on the allowlist.",
    ConfigObjectType.ALLOWLIST_USER: "The user is no longer on the allowlist.",
}


class NameGuardBot(discord.Client):
    """NameGuard Discord bot."""

    def __init__(
        self,
        config_store: ConfigStore,
        spam_filter: UsernameSpamFilter | None = None,
    ) -> None:
        """Initialize the bot.

        Args:
            config_store: Store holding the spam filter configuration.
            spam_filter: Filter to run on identity changes. Built from the
                store and this client when omitted.
        """
        intents = discord.Intents.default()
        intents.members = True

        super().__init__(intents=intents)

        settings = get_settings()
        self._config_store = config_store
        self._spam_filter = spam_filter or UsernameSpamFilter(
            config_store,
            DiscordDirectory(self),
            DiscordActor(self),
            appeal_contact_ids=settings.appeal_contact_ids,
            concurrent_role_lookups=settings.spam_filter_concurrent_lookups,
        )
        self._tree = app_commands.CommandTree(self)

        self._setup_commands()

    def _setup_commands(self) -> None:
        """Set up slash commands."""
        group = app_commands.Group(
            name="spam-filter",
            description="Configure username spam filter",
            guild_only=True,
        )

        @group.command(name="protect", description="Protect roles from impersonation")
        @app_commands.describe(
            role_1="Role with high-ranking members",
            role_2="Role with high-ranking members",
            role_3="Role with high-ranking members",
        )
        async def protect_command(
            interaction: discord.Interaction[discord.Client],
            role_1: discord.Role,
            role_2: discord.Role | None = None,
            role_3: discord.Role | None = None,
        ) -> None:
            await self._handle_add_roles(
                interaction, [role_1, role_2, role_3], ConfigObjectType.PROTECTED_ROLE
            )

        @group.command(name="unprotect", description="Remove roles from protection")
        async def unprotect_command(
            interaction: discord.Interaction[discord.Client],
            role_1: discord.Role,
            role_2: discord.Role | None = None,
            role_3: discord.Role | None = None,
        ) -> None:
            await self._handle_remove_roles(
                interaction, [role_1, role_2, role_3], ConfigObjectType.PROTECTED_ROLE
            )

        @group.command(name="allow-role", description="Exempt roles from the spam filter")
        async def allow_role_command(
            interaction: discord.Interaction[discord.Client],
            role_1: discord.Role,
            role_2: discord.Role | None = None,
            role_3: discord.Role | None = None,
        ) -> None:
            await self._handle_add_roles(
                interaction, [role_1, role_2, role_3], ConfigObjectType.ALLOWLIST_ROLE
            )

        @group.command(name="disallow-role", description="Remove roles from the allowlist")
        async def disallow_role_command(
            interaction: discord.Interaction[discord.Client],
            role_1: discord.Role,
            role_2: discord.Role | None = None,
            role_3: discord.Role | None = None,
        ) -> None:
            await self._handle_remove_roles(
                interaction, [role_1, role_2, role_3], ConfigObjectType.ALLOWLIST_ROLE
            )

        @group.command(name="allow-user", description="Exempt a user from the spam filter")
        @app_commands.describe(user="User to exempt")
        async def allow_user_command(
            interaction: discord.Interaction[discord.Client],
            user: discord.User,
        ) -> None:
            await self._handle_add_user(interaction, user)

        @group.command(name="disallow-user", description="Remove a user from the allowlist")
        @app_commands.describe(user="User to remove")
        async def disallow_user_command(
            interaction: discord.Interaction[discord.Client],
            user: discord.User,
        ) -> None:
            await self._handle_remove_user(interaction, user)

        @group.command(name="show", description="Show the spam filter configuration")
        async def show_command(interaction: discord.Interaction[discord.Client]) -> None:
            await self._handle_show(interaction)

        self._tree.add_command(group)

    async def setup_hook(self) -> None:
        """Sync slash commands once the client is logged in."""
        await self._tree.sync()
        log.info("commands_synced")

    async def on_ready(self) -> None:
        """Called when the bot is fully ready."""
        log.info(
            "bot_ready",
            user=str(self.user),
            guilds=len(self.guilds),
        )

    # ------------------------------------------------------------------
    # Identity change events
    # ------------------------------------------------------------------

    async def on_member_join(self, member: discord.Member) -> None:
        """Check members joining with a protected member's name."""
        await self._run_spam_filter(member, trigger="member_join")

    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        """Check members whose guild nickname changed."""
        if before.nick == after.nick:
            return
        await self._run_spam_filter(after, trigger="nickname_change")

    async def on_user_update(self, before: discord.User, after: discord.User) -> None:
        """Check every mutual guild when a username or display name changed."""
        if before.name == after.name and display_override(before) == display_override(after):
            return

        for guild in self.guilds:
            member = guild.get_member(after.id)
            if member is None:
                continue
            # Each guild judges the member against its own configuration
            await self._run_spam_filter(member, trigger="username_change")

    def _spam_filter_enabled(self, guild_id: int) -> bool:
        guild_ids = get_settings().spam_filter_guild_ids
        return not guild_ids or guild_id in guild_ids

    async def _run_spam_filter(self, member: discord.Member, *, trigger: str) -> bool:
        """Run the spam filter for *member*, logging instead of raising.

        Returns:
            The filter verdict, ``False`` when evaluation was aborted.
        """
        if member.bot or not self._spam_filter_enabled(member.guild.id):
            return False

        structlog.contextvars.bind_contextvars(
            request_id=str(uuid4())[:12],
            guild_id=member.guild.id,
            user_id=member.id,
            trigger=trigger,
        )
        try:
            candidate = candidate_from_member(member)
            return await self._spam_filter.run(candidate)
        except (DirectoryUnavailableError, asyncpg.PostgresError) as exc:
            log.error("spam_filter_aborted", error=str(exc))
            return False
        except Exception:
            log.exception("spam_filter_failed")
            return False
        finally:
            structlog.contextvars.clear_contextvars()

    # ------------------------------------------------------------------
    # Admin permission helper
    # ------------------------------------------------------------------

    async def _require_manager(
        self,
        interaction: discord.Interaction[discord.Client],
    ) -> bool:
        """Check the caller is a server admin or manager. Sends ephemeral error if not."""
        if interaction.guild is None or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message(
                "Please try /spam-filter within discord channel.", ephemeral=True
            )
            return False

        permissions = interaction.user.guild_permissions
        if not (permissions.administrator or permissions.manage_guild):
            await interaction.response.send_message(
                "Sorry, only discord admins and managers can configure spam filter settings.",
                ephemeral=True,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Configuration command handlers
    # ------------------------------------------------------------------

    async def _handle_add_roles(
        self,
        interaction: discord.Interaction[discord.Client],
        roles: list[discord.Role | None],
        object_type: ConfigObjectType,
    ) -> None:
        """Handle /spam-filter protect and allow-role."""
        if not await self._require_manager(interaction):
            return

        guild = interaction.guild
        assert guild is not None  # guarded by _require_manager
        await interaction.response.defer(ephemeral=True)

        selected = _unique_roles(roles)
        records = [
            ConfigRecord(
                object_type=object_type,
                discord_object_id=role.id,
                discord_object_name=role.name,
                discord_server_id=guild.id,
                discord_server_name=guild.name,
            )
            for role in selected
        ]
        try:
            summary = await self._config_store.add_records(records)
        except Exception:
            log.exception("spam_filter_config_add_failed", guild_id=guild.id)
            await interaction.followup.send(_GENERIC_ERROR)
            return

        if summary.failed:
            await interaction.followup.send(_GENERIC_ERROR)
            return

        message = _ADDED_MESSAGES[object_type]
        if summary.duplicates:
            message += f" ({summary.duplicates} already configured)"
        await interaction.followup.send(message)

    async def _handle_remove_roles(
        self,
        interaction: discord.Interaction[discord.Client],
        roles: list[discord.Role | None],
        object_type: ConfigObjectType,
    ) -> None:
        """Handle /spam-filter unprotect and disallow-role."""
        if not await self._require_manager(interaction):
            return

        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer(ephemeral=True)

        try:
            for role in _unique_roles(roles):
                await self._config_store.remove_record(object_type, role.id, guild.id)
        except Exception:
            log.exception("spam_filter_config_remove_failed", guild_id=guild.id)
            await interaction.followup.send(_GENERIC_ERROR)
            return

        await interaction.followup.send(_REMOVED_MESSAGES[object_type])

    async def _handle_add_user(
        self,
        interaction: discord.Interaction[discord.Client],
        user: discord.User,
    ) -> None:
        """Handle /spam-filter allow-user."""
        if not await self._require_manager(interaction):
            return

        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer(ephemeral=True)

        record = ConfigRecord(
            object_type=ConfigObjectType.ALLOWLIST_USER,
            discord_object_id=user.id,
            discord_object_name=user.name,
            discord_server_id=guild.id,
            discord_server_name=guild.name,
        )
        try:
            summary = await self._config_store.add_records([record])
        except Exception:
            log.exception("spam_filter_config_add_failed", guild_id=guild.id)
            await interaction.followup.send(_GENERIC_ERROR)
            return

        if summary.inserted:
            await interaction.followup.send(_ADDED_MESSAGES[ConfigObjectType.ALLOWLIST_USER])
        elif summary.duplicates:
            await interaction.followup.send(f"{user.mention} is already on the allowlist.")
        else:
            await interaction.followup.send(_GENERIC_ERROR)

    async def _handle_remove_user(
        self,
        interaction: discord.Interaction[discord.Client],
        user: discord.User,
    ) -> None:
        """Handle /spam-filter disallow-user."""
        if not await self._require_manager(interaction):
            return

        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer(ephemeral=True)

        try:
            await self._config_store.remove_record(
                ConfigObjectType.ALLOWLIST_USER, user.id, guild.id
            )
        except Exception:
            log.exception("spam_filter_config_remove_failed", guild_id=guild.id)
            await interaction.followup.send(_GENERIC_ERROR)
            return

        await interaction.followup.send(_REMOVED_MESSAGES[ConfigObjectType.ALLOWLIST_USER])

    async def _handle_show(self, interaction: discord.Interaction[discord.Client]) -> None:
        """Handle /spam-filter show."""
        if not await self._require_manager(interaction):
            return

        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer(ephemeral=True)

        try:
            records = await self._config_store.list_by_server(guild.id)
        except Exception:
            log.exception("spam_filter_show_failed", guild_id=guild.id)
            await interaction.followup.send(_GENERIC_ERROR)
            return

        sections = [
            ("Roles protected by filter", ConfigObjectType.PROTECTED_ROLE),
            ("Roles on allowlist", ConfigObjectType.ALLOWLIST_ROLE),
            ("Users on allowlist", ConfigObjectType.ALLOWLIST_USER),
        ]
        lines = ["**Username Spam Filter Configuration**\n"]
        for title, object_type in sections:
            names = [r.discord_object_name for r in records if r.object_type is object_type]
            lines.append(f"**{title}:**")
            lines.extend(names or ["None"])
            lines.append("")

        await interaction.followup.send("\n".join(lines).rstrip())


def _unique_roles(roles: list[discord.Role | None]) -> list[discord.Role]:
    """Drop unset role options and repeats, keeping the given order."""
    unique: dict[int, discord.Role] = {}
    for role in roles:
        if role is not None:
            unique.setdefault(role.id, role)
    return list(unique.values())

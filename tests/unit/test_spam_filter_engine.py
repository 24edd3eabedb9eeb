"""Unit tests for the username spam filter decision engine."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from unittest.mock import patch

import asyncpg
import pytest

from nameguard.spam_filter.engine import (
    DirectoryUnavailableError,
    SpamFilterError,
    UsernameSpamFilter,
)
from nameguard.spam_filter.models import (
    CandidateIdentity,
    ConfigObjectType,
    FilterState,
    ProtectedMember,
    SkipReason,
)
from tests.factories import ALLOWLIST_ROLE_ID, GUILD_ID, PROTECTED_ROLE_ID, make_record

APPEAL_CONTACTS = (198981821147381760, 197852493537869824)

# Cyrillic o in place of the Latin one
CONFUSABLE_FROGMONKEE = "Frоgmonkee"

FROGMONKEE = ProtectedMember(user_id=100, username="frogmonkee_", nickname="Frogmonkee")
JOE = ProtectedMember(user_id=101, username="above_average_joe")


def _configure(store, *, protected=(), allowlisted_roles=()):
    """Make ``list_by_type_and_server`` answer per object type."""
    records = {
        ConfigObjectType.PROTECTED_ROLE: [
            make_record(ConfigObjectType.PROTECTED_ROLE, role_id) for role_id in protected
        ],
        ConfigObjectType.ALLOWLIST_ROLE: [
            make_record(ConfigObjectType.ALLOWLIST_ROLE, role_id) for role_id in allowlisted_roles
        ],
    }

    async def _list(object_type, discord_server_id):
        return records.get(object_type, [])

    store.list_by_type_and_server.side_effect = _list


@pytest.fixture
def spam_filter(mock_store, mock_directory, mock_actor):
    return UsernameSpamFilter(
        mock_store,
        mock_directory,
        mock_actor,
        appeal_contact_ids=APPEAL_CONTACTS,
    )


@pytest.fixture
def impostor(candidate):
    """Candidate whose username is a confusable copy of a protected name."""
    return replace(candidate, username=CONFUSABLE_FROGMONKEE, discriminator="0001")


@pytest.fixture
def protected_frogmonkee(mock_store, mock_directory):
    _configure(mock_store, protected=[PROTECTED_ROLE_ID])
    mock_directory.members_with_roles.return_value = [FROGMONKEE, JOE]


# =========================================================================
# 1. Skip conditions
# =========================================================================


class TestShouldSkip:
    """Tests for UsernameSpamFilter.should_skip."""

    @pytest.mark.asyncio
    async def test_not_skipped_by_default(self, spam_filter, candidate):
        assert await spam_filter.should_skip(candidate) is None

    @pytest.mark.asyncio
    async def test_candidate_flag_not_bannable(self, spam_filter, candidate, mock_store):
        reason = await spam_filter.should_skip(replace(candidate, bannable=False))

        assert reason is SkipReason.NOT_BANNABLE
        mock_store.is_allowlisted_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_directory_reports_not_bannable(self, spam_filter, candidate, mock_directory):
        mock_directory.is_bannable.return_value = False

        assert await spam_filter.should_skip(candidate) is SkipReason.NOT_BANNABLE
        mock_directory.is_bannable.assert_called_once_with(GUILD_ID, candidate.user_id)

    @pytest.mark.asyncio
    async def test_allowlisted_user(self, spam_filter, candidate, mock_store):
        mock_store.is_allowlisted_user.return_value = True

        assert await spam_filter.should_skip(candidate) is SkipReason.ALLOWLISTED_USER
        mock_store.is_allowlisted_user.assert_awaited_once_with(candidate.user_id, GUILD_ID)

    @pytest.mark.asyncio
    async def test_allowlisted_role(self, spam_filter, candidate, mock_store):
        _configure(mock_store, allowlisted_roles=[ALLOWLIST_ROLE_ID])
        member = replace(candidate, role_ids=frozenset({7, ALLOWLIST_ROLE_ID}))

        assert await spam_filter.should_skip(member) is SkipReason.ALLOWLISTED_ROLE

    @pytest.mark.asyncio
    async def test_other_roles_not_allowlisted(self, spam_filter, candidate, mock_store):
        _configure(mock_store, allowlisted_roles=[ALLOWLIST_ROLE_ID])
        member = replace(candidate, role_ids=frozenset({7, 8}))

        assert await spam_filter.should_skip(member) is None


# =========================================================================
# 2. Protected name resolution
# =========================================================================


class TestProtectedNames:
    """Tests for UsernameSpamFilter.protected_names."""

    @pytest.mark.asyncio
    async def test_none_when_not_configured(self, spam_filter, mock_directory):
        assert await spam_filter.protected_names(GUILD_ID) is None
        mock_directory.members_with_roles.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_canonical_display_names(self, spam_filter, protected_frogmonkee):
        names = await spam_filter.protected_names(GUILD_ID)
        assert names == {"frogmonkee", "above_average_joe"}

    @pytest.mark.asyncio
    async def test_configured_role_without_members(self, spam_filter, mock_store):
        _configure(mock_store, protected=[PROTECTED_ROLE_ID])
        assert await spam_filter.protected_names(GUILD_ID) == set()

    @pytest.mark.asyncio
    async def test_excludes_candidate(self, spam_filter, protected_frogmonkee):
        names = await spam_filter.protected_names(GUILD_ID, exclude_user_id=FROGMONKEE.user_id)
        assert names == {"above_average_joe"}

    @pytest.mark.asyncio
    async def test_one_directory_read_per_role(self, spam_filter, mock_store, mock_directory):
        _configure(mock_store, protected=[1, 2, 3])
        mock_directory.members_with_roles.side_effect = [[FROGMONKEE], [JOE], [FROGMONKEE]]

        names = await spam_filter.protected_names(GUILD_ID)

        assert names == {"frogmonkee", "above_average_joe"}
        assert [c.args for c in mock_directory.members_with_roles.await_args_list] == [
            (GUILD_ID, [1]),
            (GUILD_ID, [2]),
            (GUILD_ID, [3]),
        ]

    @pytest.mark.asyncio
    async def test_sequential_lookup_reads_once(
        self, mock_store, mock_directory, mock_actor
    ):
        spam_filter = UsernameSpamFilter(
            mock_store, mock_directory, mock_actor, concurrent_role_lookups=False
        )
        _configure(mock_store, protected=[1, 2])

        await spam_filter.protected_names(GUILD_ID)

        mock_directory.members_with_roles.assert_awaited_once_with(GUILD_ID, [1, 2])

    @pytest.mark.asyncio
    async def test_directory_error_propagates(self, spam_filter, mock_store, mock_directory):
        _configure(mock_store, protected=[PROTECTED_ROLE_ID])
        mock_directory.members_with_roles.side_effect = DirectoryUnavailableError("gone")

        with pytest.raises(DirectoryUnavailableError, match="gone"):
            await spam_filter.protected_names(GUILD_ID)

    @pytest.mark.asyncio
    async def test_unexpected_directory_error_is_wrapped(
        self, spam_filter, mock_store, mock_directory
    ):
        _configure(mock_store, protected=[1, 2])
        mock_directory.members_with_roles.side_effect = RuntimeError("gateway closed")

        with pytest.raises(DirectoryUnavailableError) as exc_info:
            await spam_filter.protected_names(GUILD_ID)

        assert isinstance(exc_info.value, SpamFilterError)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# =========================================================================
# 3. Matching
# =========================================================================


class TestIsMatch:
    """Tests for UsernameSpamFilter.is_match."""

    def test_confusable_username(self, impostor):
        assert UsernameSpamFilter.is_match(impostor, {"frogmonkee"}) == "frogmonkee"

    def test_nickname_checked(self, candidate):
        member = replace(candidate, nickname="Above Average Joe")
        assert UsernameSpamFilter.is_match(member, {"aboveaveragejoe"}) == "aboveaveragejoe"

    def test_username_checked_when_nickname_differs(self, candidate):
        member = replace(candidate, username="Frogmonkee", nickname="totally different")
        assert UsernameSpamFilter.is_match(member, {"frogmonkee"}) == "frogmonkee"

    def test_no_match(self, candidate):
        assert UsernameSpamFilter.is_match(candidate, {"frogmonkee"}) is None

    def test_near_miss_is_not_a_match(self, candidate):
        member = replace(candidate, username="Frogmonke")
        assert UsernameSpamFilter.is_match(member, {"frogmonkee"}) is None

    def test_empty_canonical_never_matches(self, candidate):
        member = replace(candidate, username="\U0001f438")
        assert UsernameSpamFilter.is_match(member, {""}) is None


# =========================================================================
# 4. Full evaluation
# =========================================================================


class TestEvaluate:
    """Tests for UsernameSpamFilter.run / evaluate."""

    @pytest.mark.asyncio
    async def test_confusable_impostor_is_banned(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        assert await spam_filter.run(impostor) is True

        mock_actor.send_direct_message.assert_awaited_once()
        mock_actor.ban.assert_awaited_once_with(
            GUILD_ID,
            impostor.user_id,
            spam_filter.ban_reason(impostor),
        )

    @pytest.mark.asyncio
    async def test_dm_sent_before_ban(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        calls = []
        mock_actor.send_direct_message.side_effect = lambda *a: calls.append("dm") or True
        mock_actor.ban.side_effect = lambda *a: calls.append("ban") or True

        await spam_filter.run(impostor)

        assert calls == ["dm", "ban"]

    @pytest.mark.asyncio
    async def test_result_details_on_ban(self, spam_filter, impostor, protected_frogmonkee):
        result = await spam_filter.evaluate(impostor)

        assert result.verdict is True
        assert result.state is FilterState.BANNED
        assert result.matched_name == "frogmonkee"
        assert result.dm_sent is True
        assert result.processing_time_ms >= 0

    @pytest.mark.asyncio
    async def test_ban_event_logged(self, spam_filter, impostor, protected_frogmonkee):
        with patch("nameguard.spam_filter.engine.log_ban_event") as mock_log:
            result = await spam_filter.evaluate(impostor, request_id="req-1")

        mock_log.assert_called_once_with(candidate=impostor, result=result, request_id="req-1")

    @pytest.mark.asyncio
    async def test_non_match_has_no_side_effects(
        self, spam_filter, candidate, mock_actor, protected_frogmonkee
    ):
        result = await spam_filter.evaluate(candidate)

        assert result.verdict is False
        assert result.state is FilterState.NO_MATCH
        mock_actor.send_direct_message.assert_not_awaited()
        mock_actor.ban.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_configured(self, spam_filter, impostor, mock_actor):
        result = await spam_filter.evaluate(impostor)

        assert result.verdict is False
        assert result.state is FilterState.NOT_CONFIGURED
        mock_actor.ban.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_configured_logged_at_info(self, spam_filter, impostor):
        with patch("nameguard.spam_filter.engine.log") as mock_log:
            await spam_filter.evaluate(impostor)

        mock_log.info.assert_any_call("spam_filter_not_configured", guild_id=GUILD_ID)

    @pytest.mark.asyncio
    async def test_allowlisted_user_never_banned(
        self, spam_filter, mock_store, mock_actor, candidate, protected_frogmonkee
    ):
        mock_store.is_allowlisted_user.return_value = True
        exact = replace(candidate, username="Frogmonkee")

        result = await spam_filter.evaluate(exact)

        assert result.verdict is False
        assert result.state is FilterState.SKIPPED
        assert result.skip_reason is SkipReason.ALLOWLISTED_USER
        mock_actor.ban.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allowlisted_role_suppresses_matching(
        self, spam_filter, mock_store, mock_directory, mock_actor, impostor
    ):
        _configure(
            mock_store, protected=[PROTECTED_ROLE_ID], allowlisted_roles=[ALLOWLIST_ROLE_ID]
        )
        mock_directory.members_with_roles.return_value = [FROGMONKEE]

        verdict = await spam_filter.run(replace(impostor, role_ids=frozenset({ALLOWLIST_ROLE_ID})))

        assert verdict is False
        mock_directory.members_with_roles.assert_not_awaited()
        mock_actor.ban.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_protected_member_does_not_match_themselves(
        self, spam_filter, mock_actor, protected_frogmonkee
    ):
        same_member = CandidateIdentity(
            guild_id=GUILD_ID,
            user_id=FROGMONKEE.user_id,
            username=FROGMONKEE.username,
            nickname=FROGMONKEE.nickname,
        )

        assert await spam_filter.run(same_member) is False
        mock_actor.ban.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dm_failure_still_bans(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        mock_actor.send_direct_message.return_value = False

        result = await spam_filter.evaluate(impostor)

        assert result.state is FilterState.BANNED
        assert result.dm_sent is False
        mock_actor.ban.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dm_exception_still_bans(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        mock_actor.send_direct_message.side_effect = RuntimeError("closed")

        result = await spam_filter.evaluate(impostor)

        assert result.state is FilterState.BANNED
        assert result.dm_sent is False

    @pytest.mark.asyncio
    async def test_ban_failure_keeps_verdict(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        mock_actor.ban.return_value = False

        result = await spam_filter.evaluate(impostor)

        assert result.verdict is True
        assert result.state is FilterState.BAN_FAILED
        mock_actor.ban.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ban_exception_keeps_verdict(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        mock_actor.ban.side_effect = TimeoutError()

        result = await spam_filter.evaluate(impostor)

        assert result.verdict is True
        assert result.state is FilterState.BAN_FAILED

    @pytest.mark.asyncio
    async def test_cancelled_ban_request_is_a_failure(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        mock_actor.ban.side_effect = asyncio.CancelledError()

        result = await spam_filter.evaluate(impostor)

        assert result.verdict is True
        assert result.state is FilterState.BAN_FAILED

    @pytest.mark.asyncio
    async def test_cancelling_the_evaluation_propagates(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        ban_started = asyncio.Event()

        async def _hanging_ban(*args):
            ban_started.set()
            await asyncio.Event().wait()

        mock_actor.ban.side_effect = _hanging_ban

        task = asyncio.create_task(spam_filter.run(impostor))
        await ban_started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_directory_failure_gives_no_verdict(
        self, spam_filter, impostor, mock_store, mock_directory, mock_actor
    ):
        _configure(mock_store, protected=[PROTECTED_ROLE_ID])
        mock_directory.members_with_roles.side_effect = DirectoryUnavailableError("down")

        with pytest.raises(DirectoryUnavailableError):
            await spam_filter.run(impostor)
        mock_actor.ban.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, spam_filter, impostor, mock_store, mock_actor):
        mock_store.is_allowlisted_user.side_effect = asyncpg.PostgresError("db down")

        with pytest.raises(asyncpg.PostgresError):
            await spam_filter.run(impostor)
        mock_actor.ban.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_configuration_reread_every_time(
        self, spam_filter, impostor, mock_store, protected_frogmonkee
    ):
        await spam_filter.run(impostor)
        await spam_filter.run(impostor)

        # allowlist roles + protected roles, per evaluation
        assert mock_store.list_by_type_and_server.await_count == 4


# =========================================================================
# 5. Messages
# =========================================================================


class TestMessages:
    """Tests for the warning DM and ban reason."""

    def test_warning_names_appeal_contacts(self, spam_filter, impostor):
        assert spam_filter.warning_message(impostor) == (
            "You were auto-banned from the Bankless DAO server. "
            "If you believe this was a mistake, please contact "
            "<@198981821147381760> or <@197852493537869824>."
        )

    def test_warning_without_contacts(self, mock_store, mock_directory, mock_actor, impostor):
        spam_filter = UsernameSpamFilter(mock_store, mock_directory, mock_actor)
        message = spam_filter.warning_message(replace(impostor, guild_name=""))
        assert message == "You were auto-banned from the Discord server."

    def test_warning_with_three_contacts(self, mock_store, mock_directory, mock_actor, impostor):
        spam_filter = UsernameSpamFilter(
            mock_store, mock_directory, mock_actor, appeal_contact_ids=(1, 2, 3)
        )
        assert spam_filter.warning_message(impostor).endswith("contact <@1>, <@2> or <@3>.")

    @pytest.mark.asyncio
    async def test_warning_dm_text_sent(
        self, spam_filter, impostor, mock_actor, protected_frogmonkee
    ):
        await spam_filter.run(impostor)

        mock_actor.send_direct_message.assert_awaited_once_with(
            impostor.user_id, spam_filter.warning_message(impostor)
        )

    def test_ban_reason(self, impostor):
        member = replace(impostor, nickname="Frog")
        assert UsernameSpamFilter.ban_reason(member) == (
            "Auto-banned by username spam filter. "
            f"Nickname: Frog. Username: {CONFUSABLE_FROGMONKEE}#0001."
        )

    def test_ban_reason_truncated(self, candidate):
        member = replace(candidate, nickname="x" * 600)
        assert len(UsernameSpamFilter.ban_reason(member)) == 512

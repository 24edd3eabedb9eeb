"""Forensic logging for auto-ban decisions.

Each match produces one WARNING record, so the rotating JSON log file keeps
an audit trail of every auto-ban decision when file logging is enabled.
"""

from __future__ import annotations

from datetime import UTC, datetime

from nameguard.logging import get_logger
from nameguard.spam_filter.models import CandidateIdentity, FilterResult

log = get_logger("nameguard.spam_filter.forensics")


def log_ban_event(
    *,
    candidate: CandidateIdentity,
    result: FilterResult,
    request_id: str = "",
) -> None:
    """Log a detailed record for an impersonation match."""
    log.warning(
        "auto_ban_event",
        event_type="impersonation_detected",
        request_id=request_id,
        guild_id=candidate.guild_id,
        user_id=candidate.user_id,
        username=candidate.username,
        nickname=candidate.nickname,
        timestamp=datetime.now(UTC).isoformat(),
        state=result.state.value,
        matched_name=result.matched_name,
        dm_sent=result.dm_sent,
        processing_ms=round(result.processing_time_ms, 2),
    )

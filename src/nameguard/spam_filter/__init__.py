"""Username spam filter package: impersonation detection and auto-ban.

Public API
----------
- :class:`UsernameSpamFilter`: decision engine run on identity changes
- :class:`PostgresConfigStore`: protected role and allowlist records
- :func:`normalize`: canonical form of a display name
- :class:`ConfigObjectType`, :class:`ConfigRecord`, :class:`CandidateIdentity`
"""

from nameguard.spam_filter.config_store import ConfigStore, PostgresConfigStore
from nameguard.spam_filter.engine import (
    Actor,
    Directory,
    DirectoryUnavailableError,
    SpamFilterError,
    UsernameSpamFilter,
)
from nameguard.spam_filter.models import (
    CandidateIdentity,
    ConfigObjectType,
    ConfigRecord,
    FilterResult,
    FilterState,
    ProtectedMember,
    SkipReason,
)
from nameguard.spam_filter.normalizer import canonical_names, normalize

__all__ = [
    "Actor",
    "CandidateIdentity",
    "ConfigObjectType",
    "ConfigRecord",
    "ConfigStore",
    "Directory",
    "DirectoryUnavailableError",
    "FilterResult",
    "FilterState",
    "PostgresConfigStore",
    "ProtectedMember",
    "SkipReason",
    "SpamFilterError",
    "UsernameSpamFilter",
    "canonical_names",
    "normalize",
]

"""NameGuard: Discord username impersonation filter."""

__version__ = "0.1.0"

"""Channel naming policy.

The store trusts the names it is given; everything arriving from the outside
world passes through :class:`ChannelPolicy` first.
"""
import re
import structlog
from .config import Settings
from .errors import InvalidChannel

log = structlog.get_logger()

WILDCARD = "*"
CHANNEL_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,63}")


class ChannelPolicy:
    """Validates channel names against the charset rule and an optional allowlist."""

    def __init__(self, allowed: set[str] | None = None):
        self._allowed = set(allowed or ())

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChannelPolicy":
        policy = cls(settings.allowed_channels())
        log.info("channels.policy_loaded", allowlist_size=len(policy._allowed))
        return policy

    def is_allowed(self, name: str) -> bool:
        """True if ``name`` is a concrete channel this deployment accepts."""
        if not name or not CHANNEL_NAME_RE.fullmatch(name):
            return False
        if self._allowed and name not in self._allowed:
            return False
        return True

    def is_scope(self, name: str) -> bool:
        """True for the wildcard or any allowed channel."""
        return name == WILDCARD or self.is_allowed(name)

    def require(self, name: str) -> str:
        """Return ``name`` or raise :class:`InvalidChannel`."""
        if not self.is_allowed(name):
            raise InvalidChannel(name)
        return name

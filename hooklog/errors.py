"""Exception types shared across the store, service and API layers."""


class HooklogError(Exception):
    """Base class for hooklog errors."""


class StorageError(HooklogError):
    """
    Raised when an event could not be durably written to its channel log.

    The event is not visible in the recency cache when this is raised.
    """

    def __init__(self, channel: str, path, cause: Exception | None = None):
        self.channel = channel
        self.path = str(path)
        self.cause = cause
        msg = f"Failed to append to log for channel '{channel}' ({self.path})"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class InvalidChannel(HooklogError):
    """Raised when a channel name fails the naming policy."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid channel name: {name!r}")


class UnserializablePayload(HooklogError):
    """
    Raised when a payload cannot be encoded as a log line.

    orjson only encodes integers within the signed/unsigned 64-bit range;
    wider integers (and non-JSON Python objects) end up here. Nothing is
    written and the cache is unchanged.
    """

    def __init__(self, channel: str, cause: Exception | None = None):
        self.channel = channel
        self.cause = cause
        msg = f"Payload for channel '{channel}' cannot be encoded as JSON"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)

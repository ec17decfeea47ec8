"""Error codes reported by the key-value servers."""

from __future__ import annotations

from enum import IntEnum


class KvError(IntEnum):
    """Status code carried in server replies."""

    SUCCESS = 0
    EXIST = 1
    NO_ENTRY = 2
    SERVER_DOWN = 3
    LOOKUP = 4
    NO_MEMORY = 5
    NOT_SUPPORTED = 6
    TOO_LONG = 7
    BULK_CREATE = 8
    BULK_TRANSFER = 9
    OUT_OF_RANGE = 10
    METADATA_SIZE_MISMATCH = 11
    NO_SPACE = 12
    UNKNOWN = 13

    @property
    def label(self) -> str:
        """The symbolic name used in diagnostics, e.g. ``KV_ERR_EXIST``."""
        if self is KvError.SUCCESS:
            return "KV_SUCCESS"
        return f"KV_ERR_{self.name}"


def kv_err_string(err: int) -> str:
    """Return the symbolic name of ``err``; unknown codes map to ``KV_ERR_UNKNOWN``."""
    try:
        return KvError(err).label
    except ValueError:
        return KvError.UNKNOWN.label
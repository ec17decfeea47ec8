"""Mapping of transport and server status codes onto OSError."""

from __future__ import annotations

import errno
import os

from .kv_err import KvError, kv_err_string
from .log import log_notice

_EUCLEAN = getattr(errno, "EUCLEAN", errno.EIO)

_CONNECTION_ERRORS = frozenset(
    {KvError.SERVER_DOWN, KvError.LOOKUP, KvError.BULK_CREATE, KvError.BULK_TRANSFER}
)

_KV_ERRNO = {
    KvError.SUCCESS: 0,
    KvError.EXIST: errno.EEXIST,
    KvError.NO_ENTRY: errno.ENOENT,
    KvError.SERVER_DOWN: errno.ENOTCONN,
    KvError.LOOKUP: errno.ENOTCONN,
    KvError.BULK_CREATE: errno.ENOTCONN,
    KvError.BULK_TRANSFER: errno.ENOTCONN,
    KvError.NO_MEMORY: errno.ENOMEM,
    KvError.NOT_SUPPORTED: errno.ENOTSUP,
    KvError.TOO_LONG: errno.E2BIG,
    KvError.OUT_OF_RANGE: errno.E2BIG,
    KvError.METADATA_SIZE_MISMATCH: _EUCLEAN,
    KvError.NO_SPACE: errno.ENOSPC,
}


class RpcError(OSError):
    """A remote call failed at the transport level; reported as ENOTCONN."""

    def __init__(self, status: str = "RPC failed") -> None:
        super().__init__(errno.ENOTCONN, f"{os.strerror(errno.ENOTCONN)}: {status}")
        self.status = status


def _as_kv(err: int) -> KvError | None:
    try:
        return KvError(err)
    except ValueError:
        return None


def errno_from_kv(err: int) -> int:
    """Return the errno value for a server status; 0 for success."""
    kv = _as_kv(err)
    if kv is None:
        return errno.EPERM
    return _KV_ERRNO.get(kv, errno.EPERM)


def raise_for_kv(err: int) -> None:
    """Raise the matching ``OSError`` unless ``err`` is success."""
    code = errno_from_kv(err)
    if code == 0:
        return
    kv = _as_kv(err)
    if kv is None or kv in _CONNECTION_ERRORS or kv not in _KV_ERRNO:
        log_notice(f"chfs_err: {kv_err_string(err)}")
    raise OSError(code, os.strerror(code))
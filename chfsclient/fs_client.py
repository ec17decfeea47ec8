"""Client side of the inode calls: create, stat, read, write, truncate, remove, readdir.

Every method returns the server's status code (a :class:`~chfsclient.kv_err.KvError`
value) together with its result, so callers can tell a missing entry from a
failure. A call that cannot be delivered raises :class:`~chfsclient.errors.RpcError`.

Replies are expected in these shapes:

* ``inode_create``, ``inode_copy_rdma``, ``inode_truncate``, ``inode_remove``: ``err``
* ``inode_stat``: ``(err, FsStat)``
* ``inode_write``, ``inode_write_rdma``, ``inode_read_rdma``: ``(err, value_size)``
* ``inode_read``: ``(err, bytes)``
* ``inode_readdir``: ``(err, [FileInfo, ...])``
* ``inode_unlink_chunk_all``: no reply is awaited.

For the bulk variants the data travels in the ``value`` field of the request:
read-only ``bytes`` for writes and copies, a writable ``bytearray`` of
``value_size`` bytes that the server fills for reads.
"""

from __future__ import annotations

from typing import Any, Callable

from .errors import RpcError
from .kv_err import KvError
from .log import log_error
from .types import (
    INODE_COPY_RDMA_RPC,
    INODE_CREATE_RPC,
    INODE_READ_RDMA_RPC,
    INODE_READ_RPC,
    INODE_READDIR_RPC,
    INODE_REMOVE_RPC,
    INODE_STAT_RPC,
    INODE_TRUNCATE_RPC,
    INODE_UNLINK_CHUNK_ALL_RPC,
    INODE_WRITE_RDMA_RPC,
    INODE_WRITE_RPC,
    FileInfo,
    FsStat,
    Transport,
    is_replica,
)

DEFAULT_TIMEOUT_MSEC = 30000

Filler = Callable[[str, FsStat], Any]


def _key_bytes(key: bytes | str) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


def _malformed(diag: str) -> RpcError:
    log_error(f"{diag} (get_output): malformed reply")
    return RpcError(f"{diag}: malformed reply")


def _status(reply: Any, diag: str) -> int:
    try:
        return int(reply)
    except (TypeError, ValueError):
        raise _malformed(diag) from None


def _pair(reply: Any, diag: str) -> tuple[int, Any]:
    try:
        err, value = reply
        return int(err), value
    except (TypeError, ValueError):
        raise _malformed(diag) from None


class FsRequest:
    """An issued call whose reply is collected by :meth:`wait`."""

    def __init__(self, finish: Callable[[], Any]) -> None:
        self._finish = finish
        self._done = False
        self._result: Any = None

    @classmethod
    def completed(cls, result: Any) -> "FsRequest":
        """A request that needed no call and yields ``result``."""
        return cls(lambda: result)

    def wait(self) -> Any:
        """Return the decoded reply; repeated waits return the same result."""
        if not self._done:
            self._result = self._finish()
            self._done = True
        return self._result


class FsClient:
    """Issues inode calls to named servers over a :class:`Transport`."""

    def __init__(self, transport: Transport, timeout_msec: int = DEFAULT_TIMEOUT_MSEC) -> None:
        self.transport = transport
        self.timeout_msec = timeout_msec

    def _call(self, server: str, rpc: str, payload: Any, diag: str) -> Any:
        try:
            return self.transport.call(server, rpc, payload, self.timeout_msec)
        except RpcError as e:
            log_error(f"{diag} (forward): {e.status}")
            raise

    def inode_create(
        self,
        server: str,
        key: bytes | str,
        uid: int,
        gid: int,
        mode: int,
        chunk_size: int,
        data: bytes = b"",
    ) -> int:
        """Create an inode, optionally with initial content; return the status."""
        payload = {
            "key": _key_bytes(key),
            "value": bytes(data),
            "uid": uid,
            "gid": gid,
            "mode": mode,
            "chunk_size": chunk_size,
        }
        reply = self._call(server, INODE_CREATE_RPC, payload, "fs_rpc_inode_create")
        return _status(reply, "fs_rpc_inode_create")

    def inode_stat(self, server: str, key: bytes | str) -> tuple[int, FsStat | None]:
        """Return the status and, on success, the metadata of the inode."""
        diag = "fs_rpc_inode_stat"
        reply = self._call(server, INODE_STAT_RPC, {"key": _key_bytes(key)}, diag)
        err, st = _pair(reply, diag)
        return err, (st if err == KvError.SUCCESS else None)

    def async_inode_write(
        self,
        server: str,
        key: bytes | str,
        data: bytes,
        offset: int,
        mode: int,
        chunk_size: int,
    ) -> FsRequest:
        """Issue a write; ``wait()`` yields ``(err, bytes_written)``."""
        size = len(data)
        if size == 0:
            return FsRequest.completed((int(KvError.SUCCESS), 0))
        diag = "fs_async_rpc_inode_write"
        payload = {
            "key": _key_bytes(key),
            "value": bytes(data),
            "offset": offset,
            "mode": mode,
            "chunk_size": chunk_size,
        }
        reply = self._call(server, INODE_WRITE_RPC, payload, diag)

        def finish() -> tuple[int, int]:
            err, value_size = _pair(reply, diag + "_wait")
            written = size
            if err == KvError.SUCCESS and written > value_size:
                written = value_size
            return err, written

        return FsRequest(finish)

    def inode_write(
        self,
        server: str,
        key: bytes | str,
        data: bytes,
        offset: int,
        mode: int,
        chunk_size: int,
    ) -> tuple[int, int]:
        """Write ``data`` at ``offset``; return ``(err, bytes_written)``."""
        return self.async_inode_write(server, key, data, offset, mode, chunk_size).wait()

    def async_inode_read(
        self, server: str, key: bytes | str, size: int, offset: int
    ) -> FsRequest:
        """Issue a read; ``wait()`` yields ``(err, data)``."""
        if size == 0:
            return FsRequest.completed((int(KvError.SUCCESS), b""))
        diag = "fs_async_rpc_inode_read"
        payload = {"key": _key_bytes(key), "size": size, "offset": offset}
        reply = self._call(server, INODE_READ_RPC, payload, diag)

        def finish() -> tuple[int, bytes]:
            err, value = _pair(reply, diag + "_wait")
            if err != KvError.SUCCESS:
                return err, b""
            return err, bytes(value[:size])

        return FsRequest(finish)

    def inode_read(
        self, server: str, key: bytes | str, size: int, offset: int
    ) -> tuple[int, bytes]:
        """Read up to ``size`` bytes at ``offset``; return ``(err, data)``."""
        return self.async_inode_read(server, key, size, offset).wait()

    def async_inode_write_rdma(
        self,
        server: str,
        key: bytes | str,
        client: str,
        data: bytes,
        offset: int,
        mode: int,
        chunk_size: int,
    ) -> FsRequest:
        """Issue a bulk write; ``wait()`` yields ``(err, bytes_written)``."""
        size = len(data)
        if size == 0:
            return FsRequest.completed((int(KvError.SUCCESS), 0))
        diag = "fs_async_rpc_inode_write_rdma"
        payload = {
            "key": _key_bytes(key),
            "client": client,
            "offset": offset,
            "value": bytes(data),
            "value_size": size,
            "mode": mode,
            "chunk_size": chunk_size,
        }
        reply = self._call(server, INODE_WRITE_RDMA_RPC, payload, diag)

        def finish() -> tuple[int, int]:
            err, value_size = _pair(reply, diag + "_wait")
            return err, (int(value_size) if err == KvError.SUCCESS else size)

        return FsRequest(finish)

    def inode_write_rdma(
        self,
        server: str,
        key: bytes | str,
        client: str,
        data: bytes,
        offset: int,
        mode: int,
        chunk_size: int,
    ) -> tuple[int, int]:
        """Bulk-write ``data`` at ``offset``; return ``(err, bytes_written)``."""
        return self.async_inode_write_rdma(
            server, key, client, data, offset, mode, chunk_size
        ).wait()

    def async_inode_read_rdma(
        self, server: str, key: bytes | str, client: str, size: int, offset: int
    ) -> FsRequest:
        """Issue a bulk read; ``wait()`` yields ``(err, data)``."""
        if size == 0:
            return FsRequest.completed((int(KvError.SUCCESS), b""))
        diag = "fs_async_rpc_inode_read_rdma"
        buffer = bytearray(size)
        payload = {
            "key": _key_bytes(key),
            "client": client,
            "offset": offset,
            "value": buffer,
            "value_size": size,
        }
        reply = self._call(server, INODE_READ_RDMA_RPC, payload, diag)

        def finish() -> tuple[int, bytes]:
            err, value_size = _pair(reply, diag + "_wait")
            if err != KvError.SUCCESS:
                return err, b""
            return err, bytes(buffer[: int(value_size)])

        return FsRequest(finish)

    def inode_read_rdma(
        self, server: str, key: bytes | str, client: str, size: int, offset: int
    ) -> tuple[int, bytes]:
        """Bulk-read up to ``size`` bytes at ``offset``; return ``(err, data)``."""
        return self.async_inode_read_rdma(server, key, client, size, offset).wait()

    def inode_copy_rdma(
        self, server: str, key: bytes | str, client: str, st: FsStat, data: bytes
    ) -> int:
        """Store a copy of an inode with metadata ``st`` and content ``data``."""
        if len(data) == 0:
            return int(KvError.SUCCESS)
        diag = "fs_rpc_inode_copy_rdma"
        payload = {
            "key": _key_bytes(key),
            "client": client,
            "stat": st,
            "value": bytes(data),
            "value_size": len(data),
            "flag": 1,  # do not forward
        }
        reply = self._call(server, INODE_COPY_RDMA_RPC, payload, diag)
        return _status(reply, diag)

    def inode_truncate(self, server: str, key: bytes | str, length: int) -> int:
        """Cut the inode's content to ``length`` bytes; return the status."""
        diag = "fs_rpc_inode_truncate"
        payload = {"key": _key_bytes(key), "len": length}
        return _status(self._call(server, INODE_TRUNCATE_RPC, payload, diag), diag)

    def inode_remove(self, server: str, key: bytes | str) -> int:
        """Remove the inode; return the status."""
        diag = "fs_rpc_inode_remove"
        payload = {"key": _key_bytes(key)}
        return _status(self._call(server, INODE_REMOVE_RPC, payload, diag), diag)

    def unlink_chunk_all(self, server: str, path: str, index: int) -> None:
        """Ask ``server`` to drop every chunk of ``path`` from ``index`` on."""
        self._call(
            server,
            INODE_UNLINK_CHUNK_ALL_RPC,
            {"path": path, "index": index},
            "fs_rpc_inode_unlink_chunk_all",
        )

    def _readdir(
        self, server: str, path: str, filler: Filler, with_replica: bool
    ) -> int:
        diag = "fs_rpc_readdir"
        err, entries = _pair(self._call(server, INODE_READDIR_RPC, path, diag), diag)
        if err != KvError.SUCCESS:
            return err
        for info in entries:
            info: FileInfo
            if not with_replica and is_replica(info.sb.mode):
                continue
            sb = FsStat(
                mode=info.sb.mode,
                uid=info.sb.uid,
                gid=info.sb.gid,
                size=info.sb.size,
                mtime=info.sb.mtime,
                ctime=info.sb.ctime,
            )
            if filler(info.name, sb):
                break
        return err

    def readdir(self, server: str, path: str, filler: Filler) -> int:
        """Pass each non-replica entry to ``filler(name, stat)``; a true result stops."""
        return self._readdir(server, path, filler, False)

    def readdir_replica(self, server: str, path: str, filler: Filler) -> int:
        """Like :meth:`readdir` but replica entries are included."""
        return self._readdir(server, path, filler, True)
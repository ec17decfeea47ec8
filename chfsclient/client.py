"""The file-system client: descriptors, files, directories and symlinks over the server ring."""

from __future__ import annotations

import errno
import os
import random
import re
import socket
import stat as stat_mod
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence, TypeVar

from .chunkio import DEFAULT_RDMA_THRESH, ChunkStore, path_index
from .descriptors import FdTable, OpenFile
from .errors import RpcError, raise_for_kv
from .fs_client import DEFAULT_TIMEOUT_MSEC, FsClient
from .kv_err import KvError
from .log import (
    log_debug,
    log_error,
    log_fatal,
    log_info,
    log_notice,
    priority_from_name,
    set_priority_max_level,
)
from .path import canonical_path
from .ring_list import RingList
from .ring_list_rpc import fetch_node_list
from .timespec import Timespec
from .types import FsStat, Transport

VERSION = "2.0.0"
DEFAULT_CHUNK_SIZE = 65536
DEFAULT_NODE_LIST_CACHE_TIMEOUT = 120
UNLINK_CHUNK_SIZE = 10

Filler = Callable[[str, FsStat], Any]
T = TypeVar("T")

_INT_PREFIX = re.compile(r"\s*[+-]?\d+")


def _error(code: int) -> OSError:
    return OSError(code, os.strerror(code))


def _atoi(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group()) if match else 0


def _protocol(server: str) -> str | None:
    proto, sep, _ = server.partition(":")
    return proto if sep else None


def _rotated(items: Sequence[T]) -> list[T]:
    if not items:
        return []
    start = random.randrange(len(items))
    return list(items[start:]) + list(items[:start])


def parse_servers(arg: str) -> list[str]:
    """Split a comma-separated server list, dropping empty fields."""
    return [s for s in arg.split(",") if s]


@dataclass
class ClientConfig:
    """Tunables of a client, normally taken from ``CHFS_*`` environment variables."""

    servers: list[str] = field(default_factory=list)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    async_access: bool = False
    buf_size: int = 0
    rdma_thresh: int = DEFAULT_RDMA_THRESH
    rpc_timeout_msec: int = DEFAULT_TIMEOUT_MSEC
    node_list_cache_timeout: int = DEFAULT_NODE_LIST_CACHE_TIMEOUT
    lookup_local: bool = False
    log_priority: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ClientConfig":
        """Build a configuration from ``environ`` (the process environment by default)."""
        env = os.environ if environ is None else environ

        def value(name: str) -> str | None:
            v = env.get(name)
            return v if v else None

        cfg = cls()
        if (v := value("CHFS_SERVER")) is not None:
            cfg.servers = parse_servers(v)
        if (v := value("CHFS_LOG_PRIORITY")) is not None:
            cfg.log_priority = v
        if (v := value("CHFS_CHUNK_SIZE")) is not None and _atoi(v) > 0:
            cfg.chunk_size = _atoi(v)
        if (v := value("CHFS_ASYNC_ACCESS")) is not None:
            cfg.async_access = bool(_atoi(v))
        if (v := value("CHFS_BUF_SIZE")) is not None:
            cfg.buf_size = _atoi(v)
        if (v := value("CHFS_RDMA_THRESH")) is not None:
            cfg.rdma_thresh = _atoi(v)
        if (v := value("CHFS_RPC_TIMEOUT_MSEC")) is not None:
            cfg.rpc_timeout_msec = _atoi(v)
        if (v := value("CHFS_NODE_LIST_CACHE_TIMEOUT")) is not None:
            cfg.node_list_cache_timeout = _atoi(v)
        if (v := value("CHFS_LOOKUP_LOCAL")) is not None:
            cfg.lookup_local = bool(_atoi(v))
        return cfg


@dataclass(frozen=True)
class StatResult:
    """File metadata in the shape of ``os.stat_result``."""

    st_mode: int
    st_uid: int = 0
    st_gid: int = 0
    st_size: int = 0
    st_mtime: Timespec = Timespec(0)
    st_ctime: Timespec = Timespec(0)
    st_nlink: int = 0
    st_blksize: int = 0
    st_blocks: int = 0


def _num_blocks(size: int) -> int:
    return (size + 511) // 512


class Client:
    """A connection to the file system through one of its servers."""

    def __init__(
        self,
        transport: Transport,
        server: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = ClientConfig.from_env(environ)
        if self.config.log_priority is not None:
            try:
                set_priority_max_level(priority_from_name(self.config.log_priority))
            except ValueError:
                log_error(f"{self.config.log_priority}: invalid log priority")

        self.transport = transport
        self.ring = RingList()
        if self.config.lookup_local:
            self.ring.set_lookup_local(True)
        self.fs = FsClient(transport, self.config.rpc_timeout_msec)
        self.fds = FdTable(self.config.buf_size)
        self.address = ""
        self.server: str | None = None
        self._node_list_lock = threading.Lock()
        self._node_list_time = 0.0

        self._connect(server)

        getuid = getattr(os, "getuid", None)
        getgid = getattr(os, "getgid", None)
        self.store = ChunkStore(
            self.ring,
            self.fs,
            self.address,
            self.config.rdma_thresh,
            getuid() if getuid else 0,
            getgid() if getgid else 0,
        )
        self.initialized = True

    def _candidates(self, server: str | None):
        if server:
            yield server
        yield from _rotated(self.config.servers)

    def _connect(self, server: str | None) -> None:
        found_protocol = False
        for candidate in self._candidates(server):
            proto = _protocol(candidate)
            if proto is None:
                log_notice(f"{candidate}: no protocol")
                continue
            if not found_protocol:
                found_protocol = True
                self.address = f"{proto}://{socket.gethostname()}"
                self.ring.set_client(self.address)
            log_info(f"chfs_init: server {candidate}")
            try:
                fetch_node_list(
                    self.transport, self.ring, candidate, self.config.rpc_timeout_msec
                )
            except RpcError as e:
                log_notice(f"{candidate}: {e.status}")
                continue
            self.server = candidate
            self._node_list_time = time.time()
            return
        if not found_protocol and (server or self.config.servers):
            log_fatal("chfs_init: no protocol")
        log_fatal("chfs_init: no server")

    def version(self) -> str:
        """The client version string."""
        return VERSION

    def term(self) -> None:
        """Close every descriptor and forget the ring."""
        self.fds.clear_all()
        self.ring.update([])
        self.initialized = False

    # descriptors and buffering

    def _pwrite_internal(self, entry: OpenFile, data, offset: int) -> int:
        return self.store.pwrite(
            entry.path, data, offset, entry.mode, entry.chunk_size,
            self.config.async_access,
        )

    def _pread_internal(self, entry: OpenFile, size: int, offset: int) -> bytes:
        return self.store.pread(
            entry.path, size, offset, entry.chunk_size, self.config.async_access
        )

    def _flush_unlocked(self, entry: OpenFile) -> None:
        if entry.buf is not None and entry.buf_pos > 0 and entry.buf_dirty:
            try:
                self._pwrite_internal(
                    entry, bytes(entry.buf[: entry.buf_pos]), entry.buf_off
                )
            except OSError as e:
                log_error(f"flush: {entry.path}: {e.strerror}")
        entry.buf_pos = 0
        entry.buf_dirty = False

    def _flush(self, fd: int) -> None:
        entry = self.fds.get(fd)
        with entry.lock:
            self._flush_unlocked(entry)

    def _buffered_write(self, fd: int, data: bytes, offset: int) -> int:
        try:
            entry = self.fds.get(fd)
        except OSError:
            return 0
        if entry.buf is None:
            return 0
        buf_size = len(entry.buf)
        size = len(data)
        if size > buf_size:
            self._flush(fd)
            return 0
        done = 0
        with entry.lock:
            while size > done:
                if entry.buf_pos == 0:
                    entry.buf_off = offset
                buf_off = offset - entry.buf_off
                if 0 <= buf_off <= entry.buf_pos:
                    n = min(buf_size - buf_off, size - done)
                    if n > 0:
                        entry.buf[buf_off:buf_off + n] = data[done:done + n]
                        entry.buf_dirty = True
                        offset += n
                        entry.buf_pos = max(entry.buf_pos, buf_off + n)
                        done += n
                    if entry.buf_pos == buf_size:
                        self._flush_unlocked(entry)
                else:
                    self._flush_unlocked(entry)
        return done

    def _buffered_read(self, fd: int, size: int, offset: int) -> bytes:
        try:
            entry = self.fds.get(fd)
        except OSError:
            return b""
        if entry.buf is None or size > len(entry.buf):
            return b""
        out = bytearray()
        with entry.lock:
            while size > len(out):
                if entry.buf_pos == 0:
                    entry.buf_off = offset
                    try:
                        chunk = self._pread_internal(entry, len(entry.buf), offset)
                    except OSError:
                        break
                    if not chunk:
                        break
                    entry.buf[: len(chunk)] = chunk
                    entry.buf_pos = len(chunk)
                buf_off = offset - entry.buf_off
                if 0 <= buf_off < entry.buf_pos:
                    n = min(entry.buf_pos - buf_off, size - len(out))
                    out += entry.buf[buf_off:buf_off + n]
                    offset += n
                else:
                    self._flush_unlocked(entry)
        return bytes(out)

    # files

    def create(
        self, path: str, flags: int = 0, mode: int = 0o644, chunk_size: int | None = None
    ) -> int:
        """Create a regular file and return an open descriptor for it."""
        if chunk_size is None:
            chunk_size = self.config.chunk_size
        p = canonical_path(path)
        if not p or chunk_size <= 0:
            raise _error(errno.EINVAL)
        mode |= stat_mod.S_IFREG
        fd = self.fds.create(p, mode, chunk_size)
        try:
            raise_for_kv(self.store.inode_create(path_index(p, 0), mode, chunk_size))
        except OSError:
            self.fds.clear(fd)
            raise
        return fd

    def open(self, path: str, flags: int = 0) -> int:
        """Open an existing entry and return a descriptor."""
        p = canonical_path(path)
        if not p:
            raise _error(errno.EINVAL)
        err, st = self.store.inode_stat(path_index(p, 0))
        raise_for_kv(err)
        return self.fds.create(p, st.mode, st.chunk_size)

    def close(self, fd: int) -> None:
        """Write out buffered data and release ``fd``."""
        self._flush(fd)
        self.fds.clear(fd)

    def fsync(self, fd: int) -> None:
        """Write out buffered data of ``fd``."""
        self._flush(fd)

    def pwrite(self, fd: int, data, offset: int) -> int:
        """Write ``data`` at ``offset``; return the number of bytes written."""
        data = bytes(data)
        done = self._buffered_write(fd, data, offset)
        if done > 0:
            return done
        return self._pwrite_internal(self.fds.get(fd), data, offset)

    def write(self, fd: int, data) -> int:
        """Write ``data`` at the file position and advance it."""
        data = bytes(data)
        pos = self.fds.fetch_and_add(fd, len(data))
        return self.pwrite(fd, data, pos)

    def pread(self, fd: int, size: int, offset: int) -> bytes:
        """Read up to ``size`` bytes at ``offset``."""
        data = self._buffered_read(fd, size, offset)
        if data:
            return data
        return self._pread_internal(self.fds.get(fd), size, offset)

    def read(self, fd: int, size: int) -> bytes:
        """Read up to ``size`` bytes at the file position and advance it."""
        pos = self.fds.get_pos(fd)
        data = self.pread(fd, size, pos)
        if data:
            pos1 = self.fds.fetch_and_add(fd, len(data))
            if pos != pos1:
                path = self.fds.get(fd).path
                log_notice(f"chfs_read: {path}: read conflict (offset {pos} size {size})")
        return data

    def seek(self, fd: int, off: int, whence: int = os.SEEK_SET) -> int:
        """Move the file position; return the new one."""
        entry = self.fds.get(fd)
        if whence == os.SEEK_SET:
            return self.fds.set_pos(fd, off)
        if whence == os.SEEK_CUR:
            self.fds.fetch_and_add(fd, off)
            return self.fds.get_pos(fd)
        if whence == os.SEEK_END:
            pos = self.fds.get_pos(fd)
            try:
                st = self.stat(entry.path)
            except OSError:
                return pos
            pos = max(pos, st.st_size)
            return self.fds.set_pos(fd, pos + off)
        raise _error(errno.EINVAL)

    # namespace

    def unlink(self, path: str) -> None:
        """Remove a file and its chunks."""
        p = canonical_path(path)
        if not p:
            raise _error(errno.EINVAL)
        raise_for_kv(self.store.inode_remove(path_index(p, 0)))
        for i in range(1, UNLINK_CHUNK_SIZE):
            try:
                if self.store.inode_remove(path_index(p, i)) != KvError.SUCCESS:
                    break
            except RpcError:
                break
        else:
            self._unlink_chunk_all(p, UNLINK_CHUNK_SIZE)

    def mkdir(self, path: str, mode: int = 0o755) -> None:
        """Create a directory."""
        p = canonical_path(path)
        if not p:
            raise _error(errno.EINVAL)
        raise_for_kv(
            self.store.inode_create(path_index(p, 0), mode | stat_mod.S_IFDIR, 0)
        )

    def rmdir(self, path: str) -> None:
        """Remove a directory; child entries are not checked."""
        p = canonical_path(path)
        if not p:
            raise _error(errno.EINVAL)
        raise_for_kv(self.store.inode_remove(path_index(p, 0)))

    def symlink(self, target: str | None, path: str) -> None:
        """Create ``path`` as a symbolic link to ``target``."""
        if target is None:
            raise _error(errno.ENOENT)
        p = canonical_path(path)
        if not p:
            raise _error(errno.EINVAL)
        raw = target.encode("utf-8")
        # chunk size is the target length; the stored value keeps the NUL
        raise_for_kv(
            self.store.inode_create(
                path_index(p, 0), 0o777 | stat_mod.S_IFLNK, len(raw), raw + b"\0"
            )
        )

    def readlink(self, path: str, size: int) -> bytes:
        """Return up to ``size`` bytes of the stored link target."""
        p = canonical_path(path)
        if not p:
            raise _error(errno.EINVAL)
        err, data = self.store.inode_read(path_index(p, 0), size, 0)
        raise_for_kv(err)
        return data

    def stat(self, path: str) -> StatResult:
        """Metadata of ``path``; a regular file's size is found by probing its chunks."""
        p = canonical_path(path)
        if not p:
            return StatResult(st_mode=stat_mod.S_IFDIR | 0o755)
        err, sb = self.store.inode_stat(path_index(p, 0))
        raise_for_kv(err)
        size = sb.size
        if stat_mod.S_ISREG(sb.mode) and sb.size >= sb.chunk_size:
            size = self._probe_size(p, sb)
        return StatResult(
            st_mode=sb.mode,
            st_uid=sb.uid,
            st_gid=sb.gid,
            st_size=size,
            st_mtime=sb.mtime,
            st_ctime=sb.ctime,
            st_nlink=1,
            st_blksize=sb.chunk_size,
            st_blocks=_num_blocks(size),
        )

    def _probe_size(self, p: str, sb: FsStat) -> int:
        size = sb.size
        last = sb
        j, i = 0, 1
        while True:
            try:
                err, cur = self.store.inode_stat(path_index(p, j + i))
            except RpcError:
                break
            if err != KvError.SUCCESS:
                if i == 1:
                    break
                i //= 2
                size += last.chunk_size * i
                j += i
                i = 1
                continue
            last = cur
            if cur.size == 0 or cur.size < cur.chunk_size:
                size += cur.chunk_size * (i - 1) + cur.size
                break
            i *= 2
        return size

    def truncate(self, path: str, length: int) -> None:
        """Cut a regular file to ``length`` bytes."""
        if length < 0:
            raise _error(errno.EINVAL)
        p = canonical_path(path)
        if not p:
            raise _error(errno.EINVAL)
        err, sb = self.store.inode_stat(path_index(p, 0))
        raise_for_kv(err)
        if not stat_mod.S_ISREG(sb.mode):
            raise _error(errno.EINVAL)
        index, local_len = divmod(length, sb.chunk_size)
        raise_for_kv(self.store.inode_truncate(path_index(p, index), local_len))
        i = index + 1
        while True:
            try:
                if self.store.inode_remove(path_index(p, i)) != KvError.SUCCESS:
                    break
            except RpcError:
                break
            i += 1

    # directory listing

    def _node_list_cache_expired(self) -> bool:
        timeout = self.config.node_list_cache_timeout
        return timeout > 0 and time.time() - self._node_list_time > timeout

    def _ring_copy(self):
        with self._node_list_lock:
            if self._node_list_cache_expired():
                log_debug("chfs_ring_list_copy: node_list cache timeout")
                for node in _rotated(self.ring.copy()):
                    try:
                        fetch_node_list(
                            self.transport, self.ring, node.address,
                            self.config.rpc_timeout_msec,
                        )
                        break
                    except RpcError as e:
                        log_notice(f"{node.address}: {e.status}")
                else:
                    log_fatal("chfs_ring_list_copy: no server")
                self._node_list_time = time.time()
        return self.ring.copy()

    def readdir(self, path: str, filler: Filler) -> None:
        """Pass every entry of directory ``path``, from all servers, to ``filler``."""
        p = canonical_path(path)
        for node in _rotated(self._ring_copy()):
            try:
                self.fs.readdir(node.address, p, filler)
            except RpcError:
                continue

    def readdir_index(self, path: str, index: int, filler: Filler) -> None:
        """List ``path`` as held by the ``index``-th server, replicas included."""
        p = canonical_path(path)
        target = self.ring.lookup_index(index)
        if target and filler:
            try:
                self.fs.readdir_replica(target, p, filler)
            except RpcError:
                pass

    def _unlink_chunk_all(self, p: str, index: int) -> None:
        for node in _rotated(self._ring_copy()):
            try:
                self.fs.unlink_chunk_all(node.address, p, index)
            except RpcError:
                continue
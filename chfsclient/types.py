"""Records exchanged with servers and the transport that carries the calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .errors import RpcError
from .timespec import Timespec

CHFS_S_IFREP = 1 << 30
"""Mode bit that marks an entry as a replica held on behalf of another server."""

NODE_LIST_RPC = "node_list"
INODE_CREATE_RPC = "inode_create"
INODE_STAT_RPC = "inode_stat"
INODE_WRITE_RPC = "inode_write"
INODE_READ_RPC = "inode_read"
INODE_WRITE_RDMA_RPC = "inode_write_rdma"
INODE_READ_RDMA_RPC = "inode_read_rdma"
INODE_COPY_RDMA_RPC = "inode_copy_rdma"
INODE_TRUNCATE_RPC = "inode_truncate"
INODE_REMOVE_RPC = "inode_remove"
INODE_READDIR_RPC = "inode_readdir"
INODE_UNLINK_CHUNK_ALL_RPC = "inode_unlink_chunk_all"


def is_replica(mode: int) -> bool:
    """Whether ``mode`` carries the replica marker bit."""
    return bool(mode & CHFS_S_IFREP)


@dataclass(frozen=True)
class FsStat:
    """Metadata of one inode (file, directory, symlink or chunk) as kept by a server."""

    mode: int
    uid: int = 0
    gid: int = 0
    size: int = 0
    chunk_size: int = 0
    mtime: Timespec = Timespec(0)
    ctime: Timespec = Timespec(0)


@dataclass(frozen=True)
class FileInfo:
    """One directory entry returned by a readdir call."""

    name: str
    sb: FsStat


@dataclass(frozen=True)
class Node:
    """A server of the ring: its transport address and its logical name."""

    address: str
    name: str


Handler = Callable[[Any], Any]


class Transport:
    """Delivers named calls to servers.

    This implementation routes each call to a handler registered for the
    server address in the same process; network transports subclass it and
    override :meth:`call`. A failed delivery raises :class:`RpcError`.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, dict[str, Handler]] = {}

    def register(self, server: str, rpc: str, handler: Handler) -> None:
        """Make ``handler(payload)`` answer calls of ``rpc`` sent to ``server``."""
        self._handlers.setdefault(server, {})[rpc] = handler

    def unregister(self, server: str) -> None:
        """Forget every handler of ``server``, as if it had gone down."""
        self._handlers.pop(server, None)

    @property
    def servers(self) -> list[str]:
        """Addresses that currently accept calls."""
        return list(self._handlers)

    def call(self, server: str, rpc: str, payload: Any, timeout_msec: int) -> Any:
        """Send ``payload`` to ``rpc`` on ``server`` and return the reply."""
        handlers = self._handlers.get(server)
        if handlers is None:
            raise RpcError(f"{server}: address lookup failed")
        handler = handlers.get(rpc)
        if handler is None:
            raise RpcError(f"{server}: no such rpc {rpc}")
        return handler(payload)
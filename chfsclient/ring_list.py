"""The consistent-hashing ring of servers and key lookup on it."""

from __future__ import annotations

import bisect
import os
import random
import threading
from dataclasses import dataclass
from typing import TextIO

from .log import log_debug, log_info, log_notice, log_warning
from .murmur3 import murmur3_x86_32
from .types import Node

HASH_SEED = 1234
_LINEAR_LIMIT = 7


def _key_bytes(key: bytes | str) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


def _hash(data: bytes) -> int:
    return murmur3_x86_32(data, HASH_SEED)


@dataclass(frozen=True)
class _Member:
    address: str
    name: str
    hash: int


class RingList:
    """Servers ordered by the hash of their names.

    A key belongs to the first server whose hash is not below the key's hash,
    wrapping round to the first server. Keys are hashed byte for byte, so a
    caller that wants a trailing NUL in the key passes it explicitly.
    """

    def __init__(self, self_address: str | None = None, name: str | None = None) -> None:
        self._lock = threading.RLock()
        self._members: list[_Member] = []
        self._hashes: list[int] = []
        self._self: str | None = None
        self._self_index = -1
        self._client: str | None = None
        self._local_server: str | None = None
        self._lookup_local = False
        if self_address is not None:
            self.update([Node(self_address, name if name is not None else self_address)])
            self._self = self_address
            self._self_index = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    @property
    def local_server(self) -> str | None:
        """The server closest to the client address, if a client is set."""
        with self._lock:
            return self._local_server

    @property
    def self_index(self) -> int:
        """Position of this server in the ring, or -1."""
        with self._lock:
            return self._self_index

    def set_client(self, client: str | None) -> None:
        """Record the client address used to choose a local server."""
        if client:
            with self._lock:
                self._client = client

    def set_lookup_local(self, enable) -> None:
        """Send every lookup to the local server instead of hashing."""
        log_info(f"ring_list_set_lookup_local: {int(enable)}")
        with self._lock:
            self._lookup_local = bool(enable)

    def _limit(self, n: int) -> int:
        if n <= 0 or n > len(self._members):
            return len(self._members)
        return n

    def format(self, n: int = 0) -> list[str]:
        """Lines ``address name HASH`` for the first ``n`` servers (all if ``n <= 0``)."""
        with self._lock:
            return [
                f"{m.address} {m.name} {m.hash:08X}"
                for m in self._members[: self._limit(n)]
            ]

    def display(self, n: int = 0, file: TextIO | None = None) -> None:
        """Print :meth:`format` to ``file`` or standard output."""
        for line in self.format(n):
            print(line, file=file)

    def csv(self, n: int = 0) -> str:
        """Comma-separated addresses of the first ``n`` servers (all if ``n <= 0``)."""
        with self._lock:
            return ",".join(m.address for m in self._members[: self._limit(n)])

    def copy(self) -> list[Node]:
        """The servers in ring order."""
        with self._lock:
            return [Node(m.address, m.name) for m in self._members]

    def _pick_local(self) -> str | None:
        if self._client is None or not self._members:
            return None
        lengths = [
            len(os.path.commonprefix([self._client, m.address])) for m in self._members
        ]
        best = max(lengths)
        candidates = [m.address for m, length in zip(self._members, lengths) if length == best]
        if len(candidates) > 1:
            return random.choice(candidates)
        return candidates[0]

    def _index_of(self, address: str) -> int:
        return next(
            (i for i, m in enumerate(self._members) if m.address == address), -1
        )

    def update(self, nodes) -> None:
        """Replace the ring with ``nodes``."""
        members = sorted(
            (_Member(n.address, n.name, _hash(n.name.encode("utf-8"))) for n in nodes),
            key=lambda m: m.hash,
        )
        with self._lock:
            self._members = members
            self._hashes = [m.hash for m in members]
            if self._client is not None:
                self._local_server = self._pick_local()
                log_debug(f"client: {self._client} local_server: {self._local_server}")
            if self._self is None:
                return
            self._self_index = self._index_of(self._self)
            if self._self_index == -1:
                log_notice("ring_list_update: no self server")

    def remove(self, host: str | None) -> None:
        """Drop ``host`` from the ring, e.g. after a failed call to it."""
        if host is None:
            return
        with self._lock:
            i = self._index_of(host)
            if i >= 0:
                del self._members[i]
                del self._hashes[i]
                if self._client is not None and host == self._local_server:
                    self._local_server = self._pick_local()
                    log_debug(
                        f"client: {self._client} local_server: {self._local_server}"
                    )
                if self._self is not None:
                    self._self_index = self._index_of(self._self)
            if not self._members:
                log_warning("ring_list_remove: no server")

    def is_in_charge(self, key: bytes | str) -> bool:
        """Whether this server owns ``key``; true when this server is not in the ring."""
        h = _hash(_key_bytes(key))
        with self._lock:
            idx = self._self_index
            if idx > 0:
                return self._hashes[idx - 1] < h <= self._hashes[idx]
            if idx == 0:
                return self._hashes[-1] < h or h <= self._hashes[0]
            return True

    def lookup_index(self, index: int) -> str | None:
        """Address of the server at ``index`` in ring order, or ``None``."""
        if index < 0:
            return None
        with self._lock:
            if index < len(self._members):
                return self._members[index].address
            return None

    def lookup(self, key: bytes | str) -> str | None:
        """Address of the server that owns ``key``, or ``None`` for an empty ring."""
        with self._lock:
            if not self._members:
                return None
            if self._lookup_local:
                return self._local_server
            h = _hash(_key_bytes(key))
            i = bisect.bisect_left(self._hashes, h)
            if i == len(self._members):
                i = 0
            return self._members[i].address

    def is_coordinator(self, address: str) -> bool:
        """Whether ``address`` sorts at or after every address in the ring."""
        own = address.encode("utf-8")
        with self._lock:
            return all(own >= m.address.encode("utf-8") for m in self._members)
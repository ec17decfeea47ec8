"""A chained hash table keyed on byte strings that remembers insertion order."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator

_M32 = 0xFFFFFFFF


def _signature(key: bytes) -> int:
    result = 0
    for byte in key:
        signed = byte - 256 if byte >= 128 else byte
        result = (result + (result << 3) + signed) & _M32
    return result


def _as_key(key: bytes | str) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


@dataclass(eq=False)
class Entry:
    """A slot of the table; ``data`` is ``None`` until the caller fills it."""

    key: bytes
    signature: int
    data: Any = None


class SHash:
    """Hash table with a fixed number of buckets."""

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise ValueError("number of buckets must be positive")
        self.size = size
        self._buckets: list[list[Entry]] = [[] for _ in range(size)]
        self._chain: list[Entry] = []

    def _locate(self, key: bytes) -> tuple[int, list[Entry], Entry | None]:
        sig = _signature(key)
        bucket = self._buckets[sig % self.size]
        found = next(
            (e for e in bucket if e.signature == sig and e.key == key), None
        )
        return sig, bucket, found

    def get(self, key: bytes | str) -> Entry:
        """Return the entry for ``key``, inserting an empty one if absent."""
        raw = _as_key(key)
        sig, bucket, found = self._locate(raw)
        if found is not None:
            return found
        entry = Entry(raw, sig)
        bucket.insert(0, entry)
        self._chain.append(entry)
        return entry

    def find(self, key: bytes | str) -> Entry | None:
        """Return the entry for ``key`` or ``None``."""
        return self._locate(_as_key(key))[2]

    def delete(self, entry: Entry) -> Any:
        """Remove ``entry`` and return the data it held."""
        bucket = self._buckets[entry.signature % self.size]
        if not any(e is entry for e in bucket):
            raise KeyError(entry.key)
        bucket[:] = [e for e in bucket if e is not entry]
        self._chain = [e for e in self._chain if e is not entry]
        return entry.data

    def operate(self, func: Callable[[Entry, Any], Any], arg: Any = None) -> int:
        """Call ``func(entry, arg)`` for each entry, newest first; return the count."""
        count = 0
        for entry in self:
            func(entry, arg)
            count += 1
        return count

    def __len__(self) -> int:
        return len(self._chain)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(reversed(self._chain)))
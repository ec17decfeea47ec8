"""MurmurHash3 in its x86 32-bit, x86 128-bit and x64 128-bit variants."""

from __future__ import annotations

import struct

_M32 = 0xFFFFFFFF
_M64 = 0xFFFFFFFFFFFFFFFF

_X86_32_C1 = 0xCC9E2D51
_X86_32_C2 = 0x1B873593

_X86_128_C1 = 0x239B961B
_X86_128_C2 = 0xAB0E9789
_X86_128_C3 = 0x38B34AE5
_X86_128_C4 = 0xA1E38B93

_X64_128_C1 = 0x87C37B91114253D5
_X64_128_C2 = 0x4CF5AD432745937F


def _as_bytes(key: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


def _rotl32(x: int, r: int) -> int:
    return ((x << r) | (x >> (32 - r))) & _M32


def _rotl64(x: int, r: int) -> int:
    return ((x << r) | (x >> (64 - r))) & _M64


def _fmix32(h: int) -> int:
    h ^= h >> 16
    h = (h * 0x85EBCA6B) & _M32
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & _M32
    h ^= h >> 16
    return h


def _fmix64(k: int) -> int:
    k ^= k >> 33
    k = (k * 0xFF51AFD7ED558CCD) & _M64
    k ^= k >> 33
    k = (k * 0xC4CEB9FE1A85EC53) & _M64
    k ^= k >> 33
    return k


def _mix32(k: int, first: int, rot: int, second: int) -> int:
    return (_rotl32((k * first) & _M32, rot) * second) & _M32


def _mix64(k: int, first: int, rot: int, second: int) -> int:
    return (_rotl64((k * first) & _M64, rot) * second) & _M64


def murmur3_x86_32(key, seed: int = 0) -> int:
    """Return the 32-bit MurmurHash3 of ``key`` as an unsigned integer."""
    data = _as_bytes(key)
    length = len(data)
    body = length - length % 4
    h1 = seed & _M32

    for (k1,) in struct.iter_unpack("<I", data[:body]):
        h1 ^= _mix32(k1, _X86_32_C1, 15, _X86_32_C2)
        h1 = _rotl32(h1, 13)
        h1 = (h1 * 5 + 0xE6546B64) & _M32

    tail = data[body:]
    if tail:
        h1 ^= _mix32(int.from_bytes(tail, "little"), _X86_32_C1, 15, _X86_32_C2)

    h1 ^= length & _M32
    return _fmix32(h1)


_X86_128_LANES = (
    (_X86_128_C1, 15, _X86_128_C2),
    (_X86_128_C2, 16, _X86_128_C3),
    (_X86_128_C3, 17, _X86_128_C4),
    (_X86_128_C4, 18, _X86_128_C1),
)


def murmur3_x86_128(key, seed: int = 0) -> tuple[int, int, int, int]:
    """Return the 128-bit x86 MurmurHash3 of ``key`` as four 32-bit words."""
    data = _as_bytes(key)
    length = len(data)
    body = length - length % 16
    seed &= _M32
    h1 = h2 = h3 = h4 = seed

    for k1, k2, k3, k4 in struct.iter_unpack("<4I", data[:body]):
        h1 ^= _mix32(k1, _X86_128_C1, 15, _X86_128_C2)
        h1 = _rotl32(h1, 19)
        h1 = (h1 + h2) & _M32
        h1 = (h1 * 5 + 0x561CCD1B) & _M32

        h2 ^= _mix32(k2, _X86_128_C2, 16, _X86_128_C3)
        h2 = _rotl32(h2, 17)
        h2 = (h2 + h3) & _M32
        h2 = (h2 * 5 + 0x0BCAA747) & _M32

        h3 ^= _mix32(k3, _X86_128_C3, 17, _X86_128_C4)
        h3 = _rotl32(h3, 15)
        h3 = (h3 + h4) & _M32
        h3 = (h3 * 5 + 0x96CD1C35) & _M32

        h4 ^= _mix32(k4, _X86_128_C4, 18, _X86_128_C1)
        h4 = _rotl32(h4, 13)
        h4 = (h4 + h1) & _M32
        h4 = (h4 * 5 + 0x32AC3B17) & _M32

    tail = data[body:]
    lanes = [h1, h2, h3, h4]
    for lane, (first, rot, second) in enumerate(_X86_128_LANES):
        chunk = tail[lane * 4:lane * 4 + 4]
        if chunk:
            lanes[lane] ^= _mix32(int.from_bytes(chunk, "little"), first, rot, second)
    h1, h2, h3, h4 = (h ^ (length & _M32) for h in lanes)

    h1 = (h1 + h2 + h3 + h4) & _M32
    h2 = (h2 + h1) & _M32
    h3 = (h3 + h1) & _M32
    h4 = (h4 + h1) & _M32

    h1, h2, h3, h4 = _fmix32(h1), _fmix32(h2), _fmix32(h3), _fmix32(h4)

    h1 = (h1 + h2 + h3 + h4) & _M32
    h2 = (h2 + h1) & _M32
    h3 = (h3 + h1) & _M32
    h4 = (h4 + h1) & _M32
    return h1, h2, h3, h4


def murmur3_x64_128(key, seed: int = 0) -> tuple[int, int]:
    """Return the 128-bit x64 MurmurHash3 of ``key`` as two 64-bit words."""
    data = _as_bytes(key)
    length = len(data)
    body = length - length % 16
    h1 = h2 = seed & _M32

    for k1, k2 in struct.iter_unpack("<2Q", data[:body]):
        h1 ^= _mix64(k1, _X64_128_C1, 31, _X64_128_C2)
        h1 = _rotl64(h1, 27)
        h1 = (h1 + h2) & _M64
        h1 = (h1 * 5 + 0x52DCE729) & _M64

        h2 ^= _mix64(k2, _X64_128_C2, 33, _X64_128_C1)
        h2 = _rotl64(h2, 31)
        h2 = (h2 + h1) & _M64
        h2 = (h2 * 5 + 0x38495AB5) & _M64

    tail = data[body:]
    if len(tail) > 8:
        h2 ^= _mix64(int.from_bytes(tail[8:], "little"), _X64_128_C2, 33, _X64_128_C1)
    if tail:
        h1 ^= _mix64(int.from_bytes(tail[:8], "little"), _X64_128_C1, 31, _X64_128_C2)

    h1 ^= length & _M64
    h2 ^= length & _M64

    h1 = (h1 + h2) & _M64
    h2 = (h2 + h1) & _M64

    h1 = _fmix64(h1)
    h2 = _fmix64(h2)

    h1 = (h1 + h2) & _M64
    h2 = (h2 + h1) & _M64
    return h1, h2
"""Client library for a consistent-hashing distributed ad hoc file system: path keys, server ring, inode calls, chunked I/O and a POSIX-like client."""

__version__ = "0.1.0"
__all__ = [
    "murmur3",
    "path",
    "kv_err",
    "errors",
    "log",
    "timespec",
    "shash",
    "types",
    "ring_list",
    "ring_list_rpc",
    "fs_client",
    "descriptors",
    "chunkio",
    "client",
]
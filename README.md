# chfsclient

This is a client library for a distributed ad hoc file system. The file system splits each file into fixed-size chunks. Each chunk is stored on a server, and consistent hashing over a ring of servers chooses which one.

## Features

- `chfsclient.client.Client` has a POSIX-like API:
  - `create`, `open`, `close` and `fsync`
  - `pread`/`pwrite` and `read`/`write`
  - `seek`, `stat` and `truncate`
  - `unlink`, `mkdir` and `rmdir`
  - `symlink` and `readlink`
  - `readdir` and `readdir_index`
- Each descriptor can have its own read/write buffer, which is off by default.
- With asynchronous access, all chunk requests of one read or write are issued before any reply is awaited.
- When a call to a server cannot be delivered, that server is dropped from the ring and the request goes to the next owner.
- Errors are raised as `OSError` with the matching `errno`. A call that cannot be delivered raises `chfsclient.errors.RpcError`, which is an `OSError` with `ENOTCONN`.

## Installation

```
pip install chfsclient
```

To run the tests:

```
pip install "chfsclient[test]"
pytest
```

## What this package does not do

The package does not include a network stack or a server.

Every request goes through a `chfsclient.types.Transport`. The base class delivers calls to handlers that were registered in the same process with `register(server, rpc, handler)`. To talk to real servers, subclass it and override `call(server, rpc, payload, timeout_msec)`. The overriding method should return the reply, or raise `RpcError` when the call cannot be delivered.

The request and reply shapes of each call are listed in the docstring of `chfsclient.fs_client`. On the server side, `chfsclient.ring_list_rpc.handle_node_list(ring)` builds the answer to the `node_list` call.

## Usage

```python
import os
from chfsclient.client import Client
from chfsclient.types import Transport

transport = Transport()
# ... register handlers, or use a Transport subclass ...

client = Client(transport, server="tcp://server0:40000", environ=os.environ)

fd = client.create("/data/out.bin", os.O_WRONLY, 0o644)
client.write(fd, b"hello world")
client.close(fd)

fd = client.open("/data/out.bin", os.O_RDONLY)
print(client.read(fd, 11))          # b'hello world'
client.close(fd)

print(client.stat("/data/out.bin").st_size)
client.readdir("/data", lambda name, st: print(name))
client.term()
```

When a `Client` is constructed, it asks the given server, or the servers in `CHFS_SERVER`, for the current ring (the `node_list` call). A server address must carry a protocol prefix (`proto:...`).

If no server answers, the error is logged and `SystemExit(2)` is raised.

### Environment

`ClientConfig.from_env` reads the following variables. Empty values are ignored.

| Variable | Meaning |
| --- | --- |
| `CHFS_SERVER` | comma-separated server addresses |
| `CHFS_CHUNK_SIZE` | chunk size for new files (default 65536; values ≤ 0 are ignored) |
| `CHFS_ASYNC_ACCESS` | non-zero to issue all chunk requests before waiting |
| `CHFS_BUF_SIZE` | per-descriptor buffer size (0 disables it) |
| `CHFS_RDMA_THRESH` | size above which the bulk calls are used (default 32768) |
| `CHFS_RPC_TIMEOUT_MSEC` | timeout passed to the transport (default 30000) |
| `CHFS_NODE_LIST_CACHE_TIMEOUT` | seconds before `readdir` refreshes the ring (default 120; 0 never) |
| `CHFS_LOOKUP_LOCAL` | non-zero to send every request to the server whose address best matches the client's |
| `CHFS_LOG_PRIORITY` | highest priority logged: `emerg`, `alert`, `crit`, `err`, `warning`, `notice`, `info`, `debug` |

### Building blocks

- `chfsclient.murmur3`: `murmur3_x86_32`, `murmur3_x86_128` and `murmur3_x64_128`.
- `chfsclient.path.canonical_path`: resolves `.`, `..` and repeated slashes into a key with no leading slash.
- `chfsclient.ring_list.RingList`: the server ring. It provides `lookup`, `remove`, `update`, `copy`, `csv` and `display`.
- `chfsclient.fs_client.FsClient`: the individual inode calls. Each call returns the server status as a `KvError`.
- `chfsclient.chunkio.ChunkStore` and `path_index`: chunk placement and chunked I/O.
- `chfsclient.descriptors.FdTable`: descriptor numbers and file positions.
- `chfsclient.kv_err` and `chfsclient.errors`: status codes and how they map to `errno`.
- `chfsclient.log`: priority-filtered logging to stderr, to a file (`file_open`) or to syslog (`syslog_open`).
- `chfsclient.timespec`: `Timespec`, `timespec_str` and `timespec_sub`.
- `chfsclient.shash.SHash`: a small chained hash table that remembers insertion order.
import dataclasses

import pytest

from chfsclient.errors import RpcError
from chfsclient.fs_client import FsClient, FsRequest
from chfsclient.kv_err import KvError
from chfsclient.timespec import Timespec
from chfsclient.types import (
    CHFS_S_IFREP,
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
)

SERVER = "tcp://server-a:1234"
CLIENT = "tcp://client-a:5678"


class FakeServer:
    def __init__(self, transport, address):
        self.inodes = {}
        self.calls = []
        self.write_cap = None
        self.entries = []
        self.copies = []
        self.unlinked = []
        handlers = {
            INODE_CREATE_RPC: self.create,
            INODE_STAT_RPC: self.stat,
            INODE_WRITE_RPC: self.write,
            INODE_READ_RPC: self.read,
            INODE_WRITE_RDMA_RPC: self.write,
            INODE_READ_RDMA_RPC: self.read_rdma,
            INODE_COPY_RDMA_RPC: self.copy,
            INODE_TRUNCATE_RPC: self.truncate,
            INODE_REMOVE_RPC: self.remove,
            INODE_READDIR_RPC: self.readdir,
            INODE_UNLINK_CHUNK_ALL_RPC: self.unlink_all,
        }
        for rpc, handler in handlers.items():
            transport.register(address, rpc, self._recorder(rpc, handler))

    def _recorder(self, rpc, handler):
        def run(payload):
            self.calls.append((rpc, payload))
            return handler(payload)

        return run

    def create(self, p):
        if p["key"] in self.inodes:
            return KvError.EXIST
        st = FsStat(p["mode"], p["uid"], p["gid"], 0, p["chunk_size"])
        self.inodes[p["key"]] = [st, bytearray(p["value"])]
        return KvError.SUCCESS

    def stat(self, p):
        if p["key"] not in self.inodes:
            return KvError.NO_ENTRY, None
        st, data = self.inodes[p["key"]]
        return KvError.SUCCESS, dataclasses.replace(st, size=len(data))

    def write(self, p):
        key = p["key"]
        if key not in self.inodes:
            self.inodes[key] = [FsStat(p["mode"], chunk_size=p["chunk_size"]), bytearray()]
        data = self.inodes[key][1]
        value = p["value"]
        if self.write_cap is not None:
            value = value[: self.write_cap]
        off = p["offset"]
        if len(data) < off:
            data.extend(bytes(off - len(data)))
        data[off:off + len(value)] = value
        return KvError.SUCCESS, len(value)

    def read(self, p):
        if p["key"] not in self.inodes:
            return KvError.NO_ENTRY, b""
        data = self.inodes[p["key"]][1]
        return KvError.SUCCESS, bytes(data[p["offset"]:p["offset"] + p["size"]])

    def read_rdma(self, p):
        if p["key"] not in self.inodes:
            return KvError.NO_ENTRY, 0
        data = self.inodes[p["key"]][1]
        chunk = data[p["offset"]:p["offset"] + p["value_size"]]
        p["value"][: len(chunk)] = chunk
        return KvError.SUCCESS, len(chunk)

    def copy(self, p):
        self.copies.append(p)
        self.inodes[p["key"]] = [p["stat"], bytearray(p["value"])]
        return KvError.SUCCESS

    def truncate(self, p):
        if p["key"] not in self.inodes:
            return KvError.NO_ENTRY
        del self.inodes[p["key"]][1][p["len"]:]
        return KvError.SUCCESS

    def remove(self, p):
        if self.inodes.pop(p["key"], None) is None:
            return KvError.NO_ENTRY
        return KvError.SUCCESS

    def readdir(self, path):
        return KvError.SUCCESS, list(self.entries)

    def unlink_all(self, p):
        self.unlinked.append(p)


@pytest.fixture
def setup():
    transport = Transport()
    server = FakeServer(transport, SERVER)
    return FsClient(transport, 1000), server


def test_create_then_stat(setup):
    fs, server = setup
    assert fs.inode_create(SERVER, b"dir/f\0", 10, 20, 0o100644, 4096) == KvError.SUCCESS
    err, st = fs.inode_stat(SERVER, b"dir/f\0")
    assert err == KvError.SUCCESS
    assert (st.mode, st.uid, st.gid, st.chunk_size) == (0o100644, 10, 20, 4096)


def test_create_with_data_and_str_key(setup):
    fs, server = setup
    assert fs.inode_create(SERVER, "link", 0, 0, 0o120777, 6, b"target\0") == KvError.SUCCESS
    assert server.calls[0][1]["key"] == b"link"
    err, data = fs.inode_read(SERVER, "link", 64, 0)
    assert (err, data) == (KvError.SUCCESS, b"target\0")


def test_create_existing_reports_exist(setup):
    fs, _ = setup
    fs.inode_create(SERVER, b"f", 0, 0, 0o100644, 4096)
    assert fs.inode_create(SERVER, b"f", 0, 0, 0o100644, 4096) == KvError.EXIST


def test_stat_missing(setup):
    fs, _ = setup
    assert fs.inode_stat(SERVER, b"nope") == (KvError.NO_ENTRY, None)


def test_write_read_round_trip(setup):
    fs, _ = setup
    payload = b"hello world"
    assert fs.inode_write(SERVER, b"f", payload, 0, 0o100644, 4096) == (
        KvError.SUCCESS,
        len(payload),
    )
    assert fs.inode_read(SERVER, b"f", len(payload), 0) == (KvError.SUCCESS, payload)
    assert fs.inode_read(SERVER, b"f", 5, 6) == (KvError.SUCCESS, payload[6:11])


def test_write_size_clamped_to_reply(setup):
    fs, server = setup
    server.write_cap = 3
    err, written = fs.inode_write(SERVER, b"f", b"abcdef", 0, 0o100644, 4096)
    assert (err, written) == (KvError.SUCCESS, 3)


def test_zero_size_requests_do_not_call(setup):
    fs, server = setup
    assert fs.inode_write(SERVER, b"f", b"", 0, 0o100644, 4096) == (KvError.SUCCESS, 0)
    assert fs.inode_read(SERVER, b"f", 0, 0) == (KvError.SUCCESS, b"")
    assert fs.inode_write_rdma(SERVER, b"f", CLIENT, b"", 0, 0, 4096) == (KvError.SUCCESS, 0)
    assert fs.inode_read_rdma(SERVER, b"f", CLIENT, 0, 0) == (KvError.SUCCESS, b"")
    assert server.calls == []


def test_read_missing(setup):
    fs, _ = setup
    assert fs.inode_read(SERVER, b"none", 10, 0) == (KvError.NO_ENTRY, b"")
    assert fs.inode_read_rdma(SERVER, b"none", CLIENT, 10, 0) == (KvError.NO_ENTRY, b"")


def test_rdma_round_trip(setup):
    fs, server = setup
    payload = bytes(range(200))
    err, written = fs.inode_write_rdma(SERVER, b"big", CLIENT, payload, 0, 0o100644, 4096)
    assert (err, written) == (KvError.SUCCESS, len(payload))
    assert server.calls[0][1]["client"] == CLIENT
    assert fs.inode_read_rdma(SERVER, b"big", CLIENT, 500, 0) == (KvError.SUCCESS, payload)
    assert fs.inode_read_rdma(SERVER, b"big", CLIENT, 10, 100) == (
        KvError.SUCCESS,
        payload[100:110],
    )


def test_async_requests_wait(setup):
    fs, _ = setup
    reqs = [
        fs.async_inode_write(SERVER, b"f", b"abc", 0, 0o100644, 4096),
        fs.async_inode_write(SERVER, b"f", b"def", 3, 0o100644, 4096),
    ]
    assert [r.wait() for r in reqs] == [(KvError.SUCCESS, 3), (KvError.SUCCESS, 3)]
    req = fs.async_inode_read(SERVER, b"f", 6, 0)
    assert req.wait() == (KvError.SUCCESS, b"abcdef")
    assert req.wait() == (KvError.SUCCESS, b"abcdef")


def test_completed_request():
    assert FsRequest.completed((0, 7)).wait() == (0, 7)


def test_copy_rdma(setup):
    fs, server = setup
    st = FsStat(0o100644, 1, 2, 4, 4096, Timespec(5, 6), Timespec(7, 8))
    assert fs.inode_copy_rdma(SERVER, b"c", CLIENT, st, b"") == KvError.SUCCESS
    assert server.calls == []
    assert fs.inode_copy_rdma(SERVER, b"c", CLIENT, st, b"data") == KvError.SUCCESS
    sent = server.copies[0]
    assert sent["flag"] == 1
    assert sent["stat"] == st
    assert sent["value_size"] == len(b"data")


def test_truncate_and_remove(setup):
    fs, _ = setup
    fs.inode_write(SERVER, b"f", b"abcdef", 0, 0o100644, 4096)
    assert fs.inode_truncate(SERVER, b"f", 2) == KvError.SUCCESS
    assert fs.inode_read(SERVER, b"f", 10, 0) == (KvError.SUCCESS, b"ab")
    assert fs.inode_remove(SERVER, b"f") == KvError.SUCCESS
    assert fs.inode_remove(SERVER, b"f") == KvError.NO_ENTRY
    assert fs.inode_truncate(SERVER, b"f", 0) == KvError.NO_ENTRY


def test_unlink_chunk_all(setup):
    fs, server = setup
    assert fs.unlink_chunk_all(SERVER, "a/b", 10) is None
    assert server.unlinked == [{"path": "a/b", "index": 10}]


def _entries():
    return [
        FileInfo("a", FsStat(0o100644, 1, 2, 3, 4096)),
        FileInfo("rep", FsStat(0o100644 | CHFS_S_IFREP, 1, 2, 3, 4096)),
        FileInfo("b", FsStat(0o040755, 1, 2, 0, 0)),
    ]


def test_readdir_skips_replicas(setup):
    fs, server = setup
    server.entries = _entries()
    seen = []
    assert fs.readdir(SERVER, "dir", lambda name, st: seen.append((name, st.mode))) == 0
    assert seen == [("a", 0o100644), ("b", 0o040755)]


def test_readdir_replica_includes_all_and_drops_chunk_size(setup):
    fs, server = setup
    server.entries = _entries()
    seen = []
    fs.readdir_replica(SERVER, "dir", lambda name, st: seen.append(st))
    assert [s.mode for s in seen] == [e.sb.mode for e in _entries()]
    assert all(s.chunk_size == 0 for s in seen)
    assert seen[0].size == _entries()[0].sb.size


def test_readdir_filler_stops(setup):
    fs, server = setup
    server.entries = _entries()
    seen = []

    def filler(name, st):
        seen.append(name)
        return True

    result = fs.readdir_replica(SERVER, "dir", filler)
    assert result == KvError.SUCCESS
    assert seen == ["a"]


def test_unknown_server_raises(setup):
    fs, _ = setup
    with pytest.raises(RpcError):
        fs.inode_stat("tcp://nowhere:1", b"f")
    with pytest.raises(RpcError):
        fs.async_inode_write("tcp://nowhere:1", b"f", b"x", 0, 0, 4096)


def test_malformed_reply_raises():
    transport = Transport()
    transport.register(SERVER, INODE_STAT_RPC, lambda p: "garbage")
    fs = FsClient(transport)
    with pytest.raises(RpcError):
        fs.inode_stat(SERVER, b"f")
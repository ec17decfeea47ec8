"""The node_list call: fetching a server's view of the ring and answering it."""

from __future__ import annotations

from typing import Any

from .errors import RpcError
from .log import log_debug
from .ring_list import RingList
from .types import NODE_LIST_RPC, Node, Transport


def fetch_node_list(
    transport: Transport, ring: RingList, server: str, timeout_msec: int
) -> list[Node]:
    """Ask ``server`` for its ring, install it in ``ring`` and return it.

    Raises :class:`RpcError` when the call fails; ``ring`` is then unchanged.
    """
    reply = transport.call(server, NODE_LIST_RPC, 0, timeout_msec)
    if reply is None:
        raise RpcError(f"{server}: empty node_list reply")
    nodes = [Node(n.address, n.name) for n in reply]
    ring.update(nodes)
    return nodes


def handle_node_list(ring: RingList, payload: Any = 0) -> list[Node]:
    """Answer a node_list call with the servers of ``ring``."""
    log_debug("node_list RPC")
    return ring.copy()
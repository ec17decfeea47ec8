"""Normalisation of file-system paths into the key form used on servers."""

from __future__ import annotations

import errno
import os

MAX_DEPTH = 50


def canonical_path(path: str) -> str:
    """Resolve ``.``/``..`` and redundant slashes; the result has no leading slash.

    Raises ``OSError`` with ``ENAMETOOLONG`` when the path holds more than
    ``MAX_DEPTH`` live components.
    """
    components: list[str] = []
    for token in path.split("/"):
        if not token:
            continue
        if len(components) >= MAX_DEPTH:
            raise OSError(errno.ENAMETOOLONG, os.strerror(errno.ENAMETOOLONG), path)
        if token == ".":
            continue
        if token == "..":
            if components:
                components.pop()
            continue
        components.append(token)
    return "/".join(components)
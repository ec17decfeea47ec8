import errno

import pytest

from chfsclient.path import MAX_DEPTH, canonical_path


def test_mixed_path_is_normalised():
    assert canonical_path("/a//b/./c/../d/") == "a/b/d"


@pytest.mark.parametrize("path", ["", "/", "///", ".", "./", "..", "../..", "/a/.."])
def test_paths_resolving_to_root_are_empty(path):
    assert canonical_path(path) == ""


def test_dot_prefixed_names_are_kept():
    assert canonical_path("/.hidden/..x/.") == ".hidden/..x"


def test_parent_above_root_is_clamped():
    assert canonical_path("/../../a/b") == "a/b"


def test_result_is_idempotent():
    once = canonical_path("//x/./y/../z//w/")
    assert canonical_path(once) == once
    assert canonical_path("/" + once) == once


def test_exactly_max_depth_is_accepted():
    path = "/".join(["d"] * MAX_DEPTH)
    assert canonical_path(path) == path


def test_too_deep_path_raises():
    with pytest.raises(OSError) as info:
        canonical_path("/".join(["d"] * (MAX_DEPTH + 1)))
    assert info.value.errno == errno.ENAMETOOLONG


def test_depth_check_precedes_dot_dot():
    path = "/".join(["d"] * MAX_DEPTH) + "/.."
    with pytest.raises(OSError) as info:
        canonical_path(path)
    assert info.value.errno == errno.ENAMETOOLONG
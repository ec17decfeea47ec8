import pytest

from chfsclient.shash import SHash


def test_get_creates_empty_entry():
    table = SHash(7)
    entry = table.get(b"alpha")
    assert entry.data is None
    assert entry.key == b"alpha"
    assert len(table) == 1


def test_get_returns_existing_entry():
    table = SHash(7)
    first = table.get(b"alpha")
    first.data = "value"
    again = table.get(b"alpha")
    assert again is first
    assert again.data == "value"
    assert len(table) == 1


def test_find_missing_is_none_and_present_is_found():
    table = SHash(3)
    assert table.find(b"nope") is None
    entry = table.get(b"yes")
    assert table.find(b"yes") is entry


def test_str_and_bytes_keys_are_the_same():
    table = SHash(5)
    entry = table.get("name")
    assert table.find(b"name") is entry


def test_delete_returns_data_and_removes():
    table = SHash(5)
    entry = table.get(b"k")
    entry.data = [1, 2]
    assert table.delete(entry) == [1, 2]
    assert table.find(b"k") is None
    assert len(table) == 0


def test_delete_twice_raises():
    table = SHash(5)
    entry = table.get(b"k")
    table.delete(entry)
    with pytest.raises(KeyError):
        table.delete(entry)


def test_iteration_is_newest_first():
    table = SHash(4)
    for key in (b"a", b"b", b"c"):
        table.get(key)
    assert [e.key for e in table] == [b"c", b"b", b"a"]


def test_operate_visits_all_and_counts():
    table = SHash(2)
    keys = [f"key{i}".encode() for i in range(10)]
    for key in keys:
        table.get(key).data = key.upper()
    seen = []
    count = table.operate(lambda entry, acc: acc.append(entry.data), seen)
    assert count == len(keys)
    assert seen == [k.upper() for k in reversed(keys)]


def test_single_bucket_handles_collisions():
    table = SHash(1)
    entries = {k: table.get(k) for k in (b"x", b"y", b"z")}
    for key, entry in entries.items():
        assert table.find(key) is entry


def test_high_bytes_and_prefixes_are_distinct_keys():
    table = SHash(11)
    keys = [b"\xff", b"\x7f", b"\xff\x00", b""]
    entries = [table.get(k) for k in keys]
    assert len({id(e) for e in entries}) == len(keys)
    assert [table.find(k) for k in keys] == entries


def test_delete_keeps_other_entries_iterable():
    table = SHash(3)
    a, b, c = (table.get(k) for k in (b"a", b"b", b"c"))
    table.delete(b)
    assert [e.key for e in table] == [b"c", b"a"]
    assert table.find(b"a") is a and table.find(b"c") is c


@pytest.mark.parametrize("size", [0, -4])
def test_non_positive_size_rejected(size):
    with pytest.raises(ValueError):
        SHash(size)
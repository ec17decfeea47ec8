import pytest

from chfsclient.kv_err import KvError, kv_err_string


def test_success_string():
    assert kv_err_string(KvError.SUCCESS) == "KV_SUCCESS"


def test_exist_string():
    assert kv_err_string(1) == "KV_ERR_EXIST"


def test_metadata_mismatch_string():
    assert kv_err_string(KvError.METADATA_SIZE_MISMATCH) == "KV_ERR_METADATA_SIZE_MISMATCH"


@pytest.mark.parametrize("err", [-1, len(KvError), 1000])
def test_out_of_range_maps_to_unknown(err):
    assert kv_err_string(err) == KvError.UNKNOWN.label
    assert kv_err_string(err) == kv_err_string(KvError.UNKNOWN)


def test_codes_are_contiguous_and_unknown_is_last():
    strings = [kv_err_string(code) for code in range(len(KvError))]
    assert strings == [e.label for e in KvError]
    assert kv_err_string(len(KvError) - 1) == "KV_ERR_UNKNOWN"


def test_every_label_is_distinct_and_prefixed():
    labels = [kv_err_string(e) for e in KvError]
    assert len(set(labels)) == len(labels)
    assert all(label.startswith("KV_") for label in labels)
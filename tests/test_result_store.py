import gzip

import pytest

from mongo.submission import ResultStore, StorageIdentity
from mongo import engine


@pytest.fixture
def store():
    return ResultStore()


def error_reports():
    return list(engine.ErrorReport.objects)


def test_path_layout(store, storage):
    identity = StorageIdentity(3, 5, 7, 'k' * 24)
    assert store.path_for(identity) == storage / '3' / '5' / '7' / ('k' * 24)


def test_path_without_course_uses_sentinel(store, storage):
    identity = StorageIdentity(None, 5, 7, 'key')
    assert store.path_for(identity) == storage / 'no_course' / '5' / '7' / 'key'


def test_code_round_trip(store):
    identity = StorageIdentity(1, 2, 3, 'abc')
    store.write_code(identity, 'print("héllo")')
    assert store.read_code(identity) == 'print("héllo")'
    assert (store.path_for(identity) / ResultStore.CODE_FILENAME).exists()


def test_result_is_gzipped(store):
    identity = StorageIdentity(1, 2, 3, 'abc')
    store.write_result(identity, '{"accepted": true}')
    raw = (store.path_for(identity) / ResultStore.RESULT_FILENAME).read_bytes()
    assert gzip.decompress(raw) == b'{"accepted": true}'
    assert store.read_result(identity) == '{"accepted": true}'


def test_missing_code_is_reported_not_raised(store):
    identity = StorageIdentity(1, 2, 3, 'missing')
    assert store.read_code(identity, {'submission_id': 42}) == ''
    reports = error_reports()
    assert len(reports) == 1
    assert reports[0]['kind'] == 'FileNotFoundError'
    assert reports[0]['data'] == {'submission_id': 42}


def test_corrupted_result_reads_as_absent(store):
    identity = StorageIdentity(1, 2, 3, 'broken')
    store.write_code(identity, 'x')
    (store.path_for(identity) / ResultStore.RESULT_FILENAME).write_bytes(
        b'not gzip at all')
    assert store.read_result(identity) is None
    assert len(error_reports()) == 1


def test_on_filesystem_needs_code_and_result(store):
    identity = StorageIdentity(1, 2, 3, 'abc')
    store.write_code(identity, 'x')
    assert not store.on_filesystem(identity)
    store.write_result(identity, '{}')
    assert store.on_filesystem(identity)
    store.clear_result(identity)
    assert not store.on_filesystem(identity)


def test_move_relocates_directory(store):
    old = StorageIdentity(1, 2, 3, 'abc')
    new = old._replace(course_id=None)
    store.write_code(old, 'code')
    store.write_result(old, '{"a": 1}')
    assert store.move(old, new)
    assert not store.path_for(old).exists()
    assert store.read_code(new) == 'code'
    assert store.read_result(new) == '{"a": 1}'


def test_move_to_same_path_is_noop(store):
    identity = StorageIdentity(1, 2, 3, 'abc')
    store.write_code(identity, 'code')
    assert not store.move(identity, identity)
    assert store.read_code(identity) == 'code'


def test_move_must_keep_fs_key(store):
    with pytest.raises(ValueError):
        store.move(
            StorageIdentity(1, 2, 3, 'abc'),
            StorageIdentity(1, 2, 3, 'def'),
        )


def test_remove(store):
    identity = StorageIdentity(1, 2, 3, 'abc')
    store.write_code(identity, 'code')
    store.remove(identity)
    assert not store.path_for(identity).exists()
    # removing twice is fine
    store.remove(identity)


def test_locks_come_from_a_fixed_pool(store):
    identity = StorageIdentity(1, 2, 3, 'a' * 24)
    assert store.lock(identity) is ResultStore().lock(identity._replace(
        course_id=None))
    locks = {
        id(store.lock(StorageIdentity(1, 2, 3, f'{i:024d}')))
        for i in range(1000)
    }
    assert 1 < len(locks) <= ResultStore.LOCK_STRIPES
    assert len(ResultStore._locks) == ResultStore.LOCK_STRIPES

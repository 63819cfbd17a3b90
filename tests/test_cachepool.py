from pcsrequester.cachepool import CachePool, IDCachePool, require


def test_require_gives_buffer_of_size():
    pool = CachePool()
    cache = pool.require(64)
    assert len(cache.bytes()) == 64


def test_freed_cache_is_reused_for_smaller_request():
    pool = CachePool()
    cache = pool.require(64)
    cache.free()
    assert cache.bytes() is None
    again = pool.require(32)
    assert again is cache
    assert len(again.bytes()) == 64


def test_larger_request_creates_new_cache():
    pool = CachePool()
    cache = pool.require(16)
    cache.free()
    bigger = pool.require(32)
    assert bigger is not cache
    assert len(bigger.bytes()) == 32


def test_used_cache_not_shared():
    pool = CachePool()
    first = pool.require(8)
    second = pool.require(8)
    assert first is not second


def test_delete_not_used_and_delete_all():
    pool = CachePool()
    cache = pool.require(8)
    cache.free()
    pool.delete_not_used()
    assert pool.require(8) is not cache
    held = pool.require(8)
    held.free()
    pool.delete_all()
    assert pool.require(8) is not held


def test_module_require():
    cache = require(10)
    assert len(cache.bytes()) == 10
    cache.free()


def test_id_pool_apply_get_delete():
    pool = IDCachePool()
    cache_id = pool.apply(12)
    assert pool.existed(cache_id)
    assert len(pool.get(cache_id)) == 12
    pool.delete(cache_id)
    assert not pool.existed(cache_id)
    assert pool.get(cache_id) is None


def test_id_pool_distinct_ids():
    pool = IDCachePool()
    first = pool.apply(4)
    second = pool.apply(6)
    assert len({first, second}) == 2
    assert pool.existed(first)
    assert pool.existed(second)
    assert len(pool.get(first)) == 4
    assert len(pool.get(second)) == 6


def test_set_if_not_exist():
    pool = IDCachePool()
    buf = pool.set_if_not_exist(7, 10)
    assert len(buf) == 10
    assert pool.set_if_not_exist(7, 5) is buf
    grown = pool.set_if_not_exist(7, 20)
    assert len(grown) == 20
    pool.delete_all()
    assert not pool.existed(7)
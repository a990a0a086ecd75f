"""Tests for the atomic leaderboard cache."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from prism.services.leaderboard_cache import LeaderboardCacheService
from prism.utils.leaderboard_exceptions import RebuildError


async def _wait_for_state(cache, state, attempts=100):
    for _ in range(attempts):
        if cache.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"cache never reached {state}, still {cache.state}")


async def test_read_before_first_rebuild(cache_service):
    assert cache_service.state == "EMPTY"
    assert cache_service.read() == ([], None)
    assert cache_service.read("LEETCODE") == ([], None)


async def test_rebuild_publishes_all_scopes(cache_service, sample_snapshots):
    result = await cache_service.rebuild(sample_snapshots)

    entries, computed_at = cache_service.read()
    assert cache_service.state == "READY"
    assert entries == list(result.entries)
    assert computed_at == result.computed_at
    assert [e.user_id for e in entries] == ["bob", "alice", "charlie"]
    assert result.scopes == ("ATCODER", "CODEFORCES", "GITHUB", "LEETCODE", "global")
    assert cache_service.read("LEETCODE")[0][0].user_id == "alice"
    assert result.version == cache_service.version == 1


async def test_each_rebuild_has_a_newer_timestamp(cache_service, sample_snapshots):
    first = await cache_service.rebuild(sample_snapshots)
    second = await cache_service.rebuild(sample_snapshots)

    assert second.computed_at > first.computed_at
    assert cache_service.read()[1] == second.computed_at


async def test_accepts_sync_and_async_sources(cache_service, sample_snapshots):
    await cache_service.rebuild(lambda: sample_snapshots)
    assert len(cache_service.read()[0]) == 3

    async def fetch():
        return sample_snapshots[:1]

    await cache_service.rebuild(fetch)
    assert [e.user_id for e in cache_service.read()[0]] == ["alice"]


async def test_failed_rebuild_keeps_previous_results(cache_service, sample_snapshots):
    good = await cache_service.rebuild(sample_snapshots)

    def broken_source():
        raise ConnectionError("collector unreachable")

    with pytest.raises(RebuildError, match="collector unreachable"):
        await cache_service.rebuild(broken_source)

    entries, computed_at = cache_service.read()
    assert entries == list(good.entries)
    assert computed_at == good.computed_at
    assert cache_service.state == "READY"
    assert cache_service.version == good.version


async def test_failed_first_rebuild_returns_to_empty(cache_service):
    with pytest.raises(RebuildError):
        await cache_service.rebuild(None)

    assert cache_service.state == "EMPTY"
    assert cache_service.read() == ([], None)


@pytest.mark.parametrize("bad_result", [None, "snapshots", {"user_id": "alice"}, 42])
async def test_source_must_return_a_collection(cache_service, bad_result):
    with pytest.raises(RebuildError, match="expected a collection"):
        await cache_service.rebuild(lambda: bad_result)


async def test_source_timeout(cache_service, sample_snapshots):
    good = await cache_service.rebuild(sample_snapshots)

    async def slow_source():
        await asyncio.sleep(5)
        return sample_snapshots

    with pytest.raises(RebuildError, match="timed out"):
        await cache_service.rebuild(slow_source, timeout=0.01)

    assert cache_service.read()[1] == good.computed_at


async def test_reads_during_rebuild_see_previous_results(cache_service, sample_snapshots):
    good = await cache_service.rebuild(sample_snapshots)
    release = asyncio.Event()

    async def gated_source():
        await release.wait()
        return sample_snapshots[:1]

    task = asyncio.create_task(cache_service.rebuild(gated_source))
    await _wait_for_state(cache_service, "COMPUTING")

    entries, computed_at = cache_service.read()
    assert entries == list(good.entries)
    assert computed_at == good.computed_at

    release.set()
    result = await task

    assert cache_service.read()[0] == list(result.entries)
    assert cache_service.state == "READY"


async def test_latest_trigger_wins(cache_service, sample_snapshots):
    release = asyncio.Event()

    async def slow_source():
        await release.wait()
        return sample_snapshots

    first = asyncio.create_task(cache_service.rebuild(slow_source))
    await _wait_for_state(cache_service, "COMPUTING")
    second = asyncio.create_task(cache_service.rebuild(sample_snapshots[:1]))
    await asyncio.sleep(0)
    release.set()

    first_result, second_result = await asyncio.gather(first, second)

    assert second_result.version > first_result.version
    assert cache_service.version == second_result.version
    assert [e.user_id for e in cache_service.read()[0]] == ["alice"]


async def test_skipped_users_are_reported(cache_service, make_snapshot):
    snapshots = [
        make_snapshot("alice", "LEETCODE", {"rating": 2100}),
        make_snapshot("mallory", "LEETCODE", metric_score="lots"),
    ]

    result = await cache_service.rebuild(snapshots)

    assert result.skipped_users == 1
    assert result.skipped_user_ids == ("mallory",)
    assert cache_service.get_snapshot().skipped_users == 1


async def test_monitoring_callbacks(engine, sample_snapshots):
    started = MagicMock()
    completed = MagicMock()
    cache = LeaderboardCacheService(
        engine, use_redis=False, on_rebuild_start=started, on_rebuild_complete=completed
    )

    await cache.rebuild(sample_snapshots)
    with pytest.raises(RebuildError):
        await cache.rebuild(None)

    assert [c.args[0] for c in started.call_args_list] == [1, 2]
    assert [(c.args[0], c.args[2]) for c in completed.call_args_list] == [(1, True), (2, False)]


async def test_failing_callback_does_not_break_rebuild(engine, sample_snapshots):
    cache = LeaderboardCacheService(
        engine, use_redis=False, on_rebuild_start=MagicMock(side_effect=RuntimeError("boom"))
    )

    result = await cache.rebuild(sample_snapshots)

    assert result.published


async def test_persistence_failure_is_a_failed_rebuild(engine, sample_snapshots):
    database = MagicMock()
    database.session_factory = None
    database.save_leaderboard_cache = AsyncMock(side_effect=RuntimeError("disk full"))
    cache = LeaderboardCacheService(engine, database=database, use_redis=False)

    with pytest.raises(RebuildError, match="disk full"):
        await cache.rebuild(sample_snapshots)

    assert database.save_leaderboard_cache.await_count == 3
    assert cache.state == "EMPTY"
    assert cache.read() == ([], None)


async def test_mirrors_every_scope_to_redis(engine, sample_snapshots):
    redis_client = AsyncMock()
    cache = LeaderboardCacheService(engine, redis_client=redis_client, cache_ttl=300)

    result = await cache.rebuild(sample_snapshots)

    keys = sorted(c.args[0] for c in redis_client.setex.await_args_list)
    assert keys == sorted(f"leaderboard:{scope}" for scope in result.scopes)
    ttls = {c.args[1] for c in redis_client.setex.await_args_list}
    assert ttls == {300}


async def test_redis_failure_does_not_fail_rebuild(engine, sample_snapshots):
    redis_client = AsyncMock()
    redis_client.setex.side_effect = ConnectionError("redis down")
    cache = LeaderboardCacheService(engine, redis_client=redis_client)

    result = await cache.rebuild(sample_snapshots)

    assert result.published
    assert cache.read()[0] == list(result.entries)


async def test_close_releases_redis_client(engine):
    redis_client = AsyncMock()
    cache = LeaderboardCacheService(engine, redis_client=redis_client)

    await cache.close()

    redis_client.aclose.assert_awaited_once()
    assert cache.redis_client is None


async def test_overlapping_rebuilds_reach_redis_in_version_order(engine, sample_snapshots):
    mirrored = {}

    async def setex(key, ttl, payload):
        version = json.loads(payload)["version"]
        if version == 1:
            await asyncio.sleep(0.05)
        mirrored[key] = version

    redis_client = AsyncMock()
    redis_client.setex.side_effect = setex
    cache = LeaderboardCacheService(engine, redis_client=redis_client)

    await asyncio.gather(cache.rebuild(sample_snapshots), cache.rebuild(sample_snapshots[:1]))

    assert cache.version == 2
    assert mirrored["leaderboard:global"] == 2
    assert mirrored["leaderboard:LEETCODE"] == 2


async def test_slow_redis_is_bounded_by_timeout(engine, sample_snapshots):
    async def hanging_setex(key, ttl, payload):
        await asyncio.sleep(10)

    redis_client = AsyncMock()
    redis_client.setex.side_effect = hanging_setex
    cache = LeaderboardCacheService(engine, redis_client=redis_client)

    result = await asyncio.wait_for(cache.rebuild(sample_snapshots, timeout=0.05), 1)

    assert result.published
    assert cache.read()[0] == list(result.entries)


async def test_persistence_is_bounded_by_timeout(engine, sample_snapshots):
    hang = False

    async def save_leaderboard_cache(boards):
        if hang:
            await asyncio.sleep(10)

    database = MagicMock()
    database.session_factory = None
    database.save_leaderboard_cache = save_leaderboard_cache
    cache = LeaderboardCacheService(engine, database=database, use_redis=False)
    good = await cache.rebuild(sample_snapshots, timeout=0.05)

    hang = True
    with pytest.raises(RebuildError, match="timed out"):
        await asyncio.wait_for(cache.rebuild(sample_snapshots[:1], timeout=0.05), 1)

    assert cache.state == "READY"
    assert cache.version == good.version
    assert cache.read() == (list(good.entries), good.computed_at)

    hang = False
    await asyncio.wait_for(cache.rebuild(sample_snapshots[:1], timeout=0.05), 1)
    assert [e.user_id for e in cache.read()[0]] == ["alice"]

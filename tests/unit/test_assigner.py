"""
Tests for round-robin shard assignment.
"""

import threading
from collections import Counter

import pytest

from shardpool import EmptyShardSetError, RoundRobinAssigner, ShardEndpoint


class TestRoundRobinAssigner:
    """Test the cyclic cursor over the shard list."""

    def test_visits_each_shard_once_in_order(self, shards):
        assigner = RoundRobinAssigner(shards)

        visited = [assigner.next() for _ in shards]

        assert visited == shards

    def test_wraps_after_last_shard(self, shards):
        assigner = RoundRobinAssigner(shards)

        for _ in shards:
            assigner.next()

        assert assigner.next() == shards[0]

    def test_empty_shard_set_fails(self):
        assigner = RoundRobinAssigner()

        with pytest.raises(EmptyShardSetError):
            assigner.next()

    def test_recovers_once_shard_added(self):
        assigner = RoundRobinAssigner()
        endpoint = ShardEndpoint("late-shard")

        with pytest.raises(EmptyShardSetError):
            assigner.next()

        assigner.add_shard(endpoint)
        assert assigner.next() == endpoint

    def test_add_shard_restarts_rotation(self, shards):
        assigner = RoundRobinAssigner(shards)
        assigner.next()
        assigner.next()

        new_shard = ShardEndpoint("shard-d", 6382)
        assigner.add_shard(new_shard)

        assert assigner.next() == shards[0]
        assert [assigner.next() for _ in range(3)] == [shards[1], shards[2], new_shard]

    def test_add_multiple_shards_appends_in_order(self, shards):
        assigner = RoundRobinAssigner(shards[:1])

        assigner.add_shard(*shards[1:])

        assert assigner.shards == tuple(shards)
        assert len(assigner) == 3

    def test_shards_snapshot_is_read_only(self, shards):
        assigner = RoundRobinAssigner(shards)

        snapshot = assigner.shards

        assert isinstance(snapshot, tuple)
        shards.append(ShardEndpoint("not-added"))
        assert len(assigner) == 3

    def test_concurrent_next_is_fair(self, shards):
        """Every call advances the cursor exactly once under contention."""
        assigner = RoundRobinAssigner(shards)
        calls_per_thread = 300
        thread_count = 8
        results: list[ShardEndpoint] = []
        results_lock = threading.Lock()

        def worker():
            local = [assigner.next() for _ in range(calls_per_thread)]
            with results_lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(thread_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        counts = Counter(results)
        expected = calls_per_thread * thread_count // len(shards)
        assert counts == {shard: expected for shard in shards}

"""Tests for the exponential backoff policy."""

from unittest.mock import patch

from vip_dashboard.config import Config
from vip_dashboard.sync.backoff import BackoffPolicy


class TestBackoffPolicy:
    def test_doubles_from_base(self):
        policy = BackoffPolicy(base=2, max_delay=900)
        assert [policy.next_delay() for _ in range(4)] == [2.0, 4.0, 8.0, 16.0]

    def test_capped_and_non_decreasing(self):
        policy = BackoffPolicy(base=2, max_delay=900)
        delays = [policy.next_delay() for _ in range(20)]
        assert delays == sorted(delays)
        assert max(delays) == 900.0
        assert delays[-1] == 900.0

    def test_reset_matches_fresh_instance(self):
        policy = BackoffPolicy(base=2, max_delay=900)
        for _ in range(5):
            policy.next_delay()
        policy.reset()
        assert policy.attempt == 0
        assert policy.next_delay() == BackoffPolicy(base=2, max_delay=900).next_delay()

    def test_huge_attempt_count_does_not_overflow(self):
        policy = BackoffPolicy(base=2, max_delay=900)
        policy._attempt = 5000
        assert policy.next_delay() == 900.0

    def test_defaults_from_config(self):
        with patch.object(Config, "SYNC_BACKOFF_BASE", 3.0), \
             patch.object(Config, "SYNC_BACKOFF_MAX", 10.0):
            policy = BackoffPolicy()
        assert policy.next_delay() == 3.0
        assert policy.next_delay() == 9.0
        assert policy.next_delay() == 10.0

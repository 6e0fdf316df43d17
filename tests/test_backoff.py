"""
Backoff Tests
=============

Tests for the network and protocol reconnect schedules.
"""

import pytest

from chirpstream.config import BackoffConfig
from chirpstream.errors import NetworkError, PermanentRejection, ProtocolError
from chirpstream.models.lifecycle import BackoffKind
from chirpstream.stream.backoff import (
    NETWORK_POLICY,
    PROTOCOL_POLICY,
    Backoff,
    BackoffPolicy,
    classify_failure,
)


class TestBackoffPolicy:
    def test_defaults(self):
        assert NETWORK_POLICY == BackoffPolicy(250, 16_000)
        assert PROTOCOL_POLICY == BackoffPolicy(10_000, 240_000)

    def test_next_after_zero_is_initial(self):
        assert NETWORK_POLICY.next_after(0) == 250

    def test_doubling_is_capped(self):
        assert NETWORK_POLICY.next_after(8_000) == 16_000
        assert NETWORK_POLICY.next_after(16_000) == 16_000


class TestBackoff:
    """Tests for the per-session backoff state."""

    def test_network_schedule(self):
        backoff = Backoff()
        waits = [backoff.next_wait_ms(BackoffKind.NETWORK) for _ in range(10)]
        assert waits[:3] == [250, 500, 1000]
        assert waits[9] == 16_000
        assert max(waits) == 16_000

    def test_protocol_schedule(self):
        backoff = Backoff()
        waits = [backoff.next_wait_ms(BackoffKind.PROTOCOL) for _ in range(7)]
        assert waits == [10_000, 20_000, 40_000, 80_000, 160_000, 240_000, 240_000]

    def test_schedules_are_independent(self):
        """A protocol failure does not advance the network schedule."""
        backoff = Backoff()
        assert backoff.next_wait_ms(BackoffKind.NETWORK) == 250
        assert backoff.next_wait_ms(BackoffKind.NETWORK) == 500
        assert backoff.next_wait_ms(BackoffKind.PROTOCOL) == 10_000
        assert backoff.next_wait_ms(BackoffKind.NETWORK) == 1000
        assert backoff.next_wait_ms(BackoffKind.PROTOCOL) == 20_000

    def test_reset_clears_both(self):
        backoff = Backoff()
        backoff.next_wait_ms(BackoffKind.NETWORK)
        backoff.next_wait_ms(BackoffKind.PROTOCOL)
        backoff.reset()

        assert backoff.kind is None
        assert backoff.current_wait_ms == 0
        assert backoff.next_wait_ms(BackoffKind.NETWORK) == 250
        assert backoff.next_wait_ms(BackoffKind.PROTOCOL) == 10_000

    def test_current_wait_tracks_last_kind(self):
        backoff = Backoff()
        backoff.next_wait_ms(BackoffKind.PROTOCOL)
        assert backoff.kind is BackoffKind.PROTOCOL
        assert backoff.current_wait_ms == 10_000

    def test_from_config(self):
        backoff = Backoff.from_config(BackoffConfig(
            network_initial_ms=1,
            network_cap_ms=3,
            protocol_initial_ms=5,
            protocol_cap_ms=7,
        ))
        assert [backoff.next_wait_ms(BackoffKind.NETWORK) for _ in range(3)] == [1, 2, 3]
        assert [backoff.next_wait_ms(BackoffKind.PROTOCOL) for _ in range(2)] == [5, 7]


class TestClassifyFailure:
    @pytest.mark.parametrize(
        "error, kind",
        [
            (NetworkError("reset by peer"), BackoffKind.NETWORK),
            (OSError("timed out"), BackoffKind.NETWORK),
            (ProtocolError("bad frame", fragment="{x"), BackoffKind.PROTOCOL),
            (ProtocolError("server error", status_code=503), BackoffKind.PROTOCOL),
            (PermanentRejection("role", status_code=403), BackoffKind.PROTOCOL),
        ],
    )
    def test_classification(self, error, kind):
        assert classify_failure(error) is kind

"""Tests for per-channel dedup gates."""

from sync.gates import IntervalGate, ValueGate


class TestIntervalGate:
    """Tests for IntervalGate."""

    def test_first_publish_allowed(self):
        """Test that the first publish always passes."""
        assert IntervalGate(10).allow(3, now=100.0)

    def test_same_count_within_interval_blocked(self):
        """Test that an unchanged count is rate limited."""
        gate = IntervalGate(10)
        gate.allow(3, now=100.0)

        assert not gate.allow(3, now=109.9)
        assert gate.allow(3, now=110.0)

    def test_changed_count_always_allowed(self):
        """Test that a new count passes immediately."""
        gate = IntervalGate(10)
        gate.allow(3, now=100.0)

        assert gate.allow(4, now=100.5)

    def test_force_bypasses_gate(self):
        """Test that a forced publish passes and restarts the interval."""
        gate = IntervalGate(10)
        gate.allow(3, now=100.0)

        assert gate.allow(3, now=101.0, force=True)
        assert not gate.allow(3, now=110.0)

    def test_blocked_attempt_does_not_extend_interval(self):
        """Test that only allowed publishes are recorded."""
        gate = IntervalGate(10)
        gate.allow(3, now=100.0)
        gate.allow(3, now=105.0)

        assert gate.allow(3, now=110.0)


class TestValueGate:
    """Tests for ValueGate."""

    def test_claim_new_value(self):
        """Test that differing values are claimed."""
        gate = ValueGate()
        assert gate.claim(2)
        assert gate.claim(3)
        assert gate.last_value == 3

    def test_same_value_rejected(self):
        """Test that repeating the last value is skipped."""
        gate = ValueGate()
        gate.claim(2)
        assert not gate.claim(2)

    def test_release_allows_retry(self):
        """Test that a failed send can be retried."""
        gate = ValueGate()
        gate.claim(2)
        gate.release(2)

        assert gate.last_value is None
        assert gate.claim(2)

    def test_release_ignores_superseded_value(self):
        """Test that releasing an old value keeps a newer claim."""
        gate = ValueGate()
        gate.claim(2)
        gate.claim(5)
        gate.release(2)

        assert gate.last_value == 5

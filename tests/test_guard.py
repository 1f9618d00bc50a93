"""Tests for TransmissionGuard."""

from __future__ import annotations

from partycd.guard import TransmissionGuard


def _make_guard(**overrides) -> TransmissionGuard:
    return TransmissionGuard({"guard": overrides}, clock=lambda: 0.0)


class TestCastWindow:
    def test_same_cast_suppressed_within_window(self):
        guard = _make_guard()
        assert guard.should_transmit("cast-1", 2139, now=10.0) is True
        assert guard.should_transmit("cast-1", 2139, now=10.1) is False

    def test_same_cast_allowed_after_window(self):
        guard = _make_guard()
        assert guard.should_transmit("cast-1", 2139, now=10.0) is True
        assert guard.should_transmit("cast-1", 2139, now=10.7) is True

    def test_cast_window_outlives_ability_window(self):
        guard = _make_guard()
        guard.should_transmit("cast-1", 2139, now=10.0)
        # ability window (0.25s) has passed, cast window (0.6s) has not
        assert guard.should_transmit("cast-1", 2139, now=10.4) is False

    def test_different_cast_same_ability_after_ability_window(self):
        guard = _make_guard()
        guard.should_transmit("cast-1", 2139, now=10.0)
        assert guard.should_transmit("cast-2", 2139, now=10.3) is True


class TestAbilityWindow:
    def test_no_cast_id_repeat_suppressed(self):
        guard = _make_guard()
        assert guard.should_transmit(None, 1766, now=5.0) is True
        assert guard.should_transmit(None, 1766, now=5.2) is False
        assert guard.should_transmit(None, 1766, now=5.5) is True

    def test_other_ability_not_affected(self):
        guard = _make_guard()
        guard.should_transmit(None, 1766, now=5.0)
        assert guard.should_transmit(None, 2139, now=5.01) is True

    def test_suppressed_call_does_not_extend_window(self):
        guard = _make_guard()
        guard.should_transmit(None, 1766, now=5.0)
        guard.should_transmit(None, 1766, now=5.2)
        assert guard.should_transmit(None, 1766, now=5.26) is True


class TestConfigAndSweep:
    def test_windows_from_config(self):
        guard = _make_guard(cast_window_s=2.0, ability_window_s=1.0)
        assert guard.cast_window == 2.0
        assert guard.ability_window == 1.0
        guard.should_transmit("c", 1766, now=0.0)
        assert guard.should_transmit("c", 1766, now=1.5) is False

    def test_defaults_without_config(self):
        guard = TransmissionGuard()
        assert guard.cast_window == 0.60
        assert guard.ability_window == 0.25

    def test_sweep_drops_old_entries(self):
        guard = _make_guard()
        guard.should_transmit("a", 1766, now=0.0)
        guard.should_transmit("b", 2139, now=1.0)
        assert len(guard) == 4
        guard.should_transmit(None, 6552, now=10.0)
        assert len(guard) == 1

    def test_sweep_respects_interval(self):
        guard = _make_guard()
        guard.should_transmit("a", 1766, now=0.0)
        guard.should_transmit(None, 2139, now=3.5)
        # first sweep ran at 0.0, next one is due at 2.0 so 3.5 sweeps too
        assert len(guard) == 1
        guard.should_transmit(None, 6552, now=4.0)
        assert len(guard) == 2

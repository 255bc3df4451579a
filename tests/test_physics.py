"""
Physics Stepper Tests: integration, walls, chute gap, drains and tick-rate normalisation.

All balls are placed on the empty table so only walls and flippers can interfere.
"""

import sys
import os
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from physics import (
    PhysicsConfig, PhysicsEngine, NonFiniteStateError, frame_scale,
    GRAVITY, FRICTION, BOUNCE_DAMPING, MAX_FRAME_DT, NOMINAL_FRAME_DT,
)
from table_presets import TablePreset


# ── Helpers ──────────────────────────────────────────────

def make_engine(seed: int = 0, **params) -> PhysicsEngine:
    config = PhysicsConfig()
    config.apply_params(params)
    return PhysicsEngine(config, np.random.default_rng(seed))


def empty_store():
    return TablePreset.empty().build_store()


class TestIntegration:

    def test_gravity_then_friction_then_position(self):
        engine, store = make_engine(), empty_store()
        ball = store.add_ball([250, 100], [1.0, 0.0])
        engine.update(store)
        vy = GRAVITY * FRICTION
        np.testing.assert_allclose(ball.velocity, [FRICTION, vy])
        np.testing.assert_allclose(ball.position, [250 + FRICTION, 100 + vy])

    def test_half_frames_match_full_frame_without_gravity(self):
        engine = make_engine(gravity=0.0)
        full, halves = empty_store(), empty_store()
        a = full.add_ball([250, 100], [3.0, 2.0])
        b = halves.add_ball([250, 100], [3.0, 2.0])
        engine.update(full, 1.0)
        engine.update(halves, 0.5)
        engine.update(halves, 0.5)
        np.testing.assert_allclose(a.velocity, b.velocity)

    def test_frame_scale_clamps_hitches(self):
        assert frame_scale(NOMINAL_FRAME_DT) == pytest.approx(1.0)
        assert frame_scale(1.0) == pytest.approx(MAX_FRAME_DT / NOMINAL_FRAME_DT)
        assert frame_scale(-0.1) == 0.0

    def test_invincibility_counts_down(self):
        engine, store = make_engine(), empty_store()
        ball = store.add_ball([250, 100])
        ball.invincible = 2.0
        engine.update(store)
        assert ball.invincible == 1.0


class TestWalls:

    def test_left_wall_reflects_with_damping(self):
        engine, store = make_engine(), empty_store()
        ball = store.add_ball([52, 300], [-5.0, 0.0])
        engine.update(store)
        assert ball.position[0] == store.bounds.left + ball.radius
        assert ball.velocity[0] == pytest.approx(5.0 * FRICTION * BOUNCE_DAMPING)

    def test_right_wall_reflects_outside_chute_gap(self):
        engine, store = make_engine(), empty_store()
        ball = store.add_ball([440, 200], [5.0, 0.0])
        engine.update(store)
        assert ball.position[0] == store.bounds.right - ball.radius
        assert ball.velocity[0] < 0

    def test_chute_gap_lets_ball_through(self):
        engine, store = make_engine(), empty_store()
        ball = store.add_ball([455, 400], [2.0, 0.0])
        engine.update(store)
        assert ball.position[0] > store.bounds.right
        assert ball.velocity[0] > 0

    def test_top_wall(self):
        engine, store = make_engine(), empty_store()
        ball = store.add_ball([250, 10], [0.0, -6.0])
        engine.update(store)
        assert ball.position[1] == store.bounds.top + ball.radius
        assert ball.velocity[1] > 0


class TestDrain:

    def test_ball_below_table_is_removed(self):
        engine, store = make_engine(), empty_store()
        ball = store.add_ball([250, 705], [0.0, 5.0])
        drained = engine.update(store)
        assert drained == [ball]
        assert store.balls == []
        assert {"type": "drain", "ball": ball.name} in engine.events

    def test_simulate_stops_when_table_is_empty(self):
        engine, store = make_engine(), empty_store()
        store.add_ball([250, 500], [0.0, 4.0])
        frames = engine.simulate(store, 1000)
        assert 0 < frames < 1000
        assert store.balls == []


class TestEffects:

    def test_particles_and_popups_expire(self):
        engine, store = make_engine(), empty_store()
        engine.resolver.burst(store, [250, 250], "#ffffff")
        engine.resolver.award(store, 100)
        assert len(store.particles) == 12
        assert len(store.popups) == 1
        for _ in range(60):
            engine.update(store)
        assert store.particles == []
        assert store.popups == []


def test_non_finite_state_raises():
    engine, store = make_engine(), empty_store()
    ball = store.add_ball([250, 300], [float("inf"), 0.0])
    with pytest.raises(NonFiniteStateError):
        engine.update(store)
    assert not ball.is_finite()


def test_apply_params_reports_unknown_and_bad_values():
    config = PhysicsConfig()
    updated, skipped = config.apply_params({"gravity": "0.5", "warp": 9, "friction": "fast"})
    assert updated == ["gravity"]
    assert sorted(skipped) == ["friction", "warp"]
    assert config.gravity == 0.5
    assert config.friction == FRICTION


def test_apply_params_rejects_non_finite_values():
    config = PhysicsConfig()
    updated, skipped = config.apply_params(
        {"gravity": "nan", "friction": float("inf"), "bank_bonus": float("inf")})
    assert updated == []
    assert sorted(skipped) == ["bank_bonus", "friction", "gravity"]
    assert config.to_dict() == PhysicsConfig().to_dict()

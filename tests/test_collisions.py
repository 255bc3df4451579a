"""
Collision & Scoring Resolver Tests: bumpers, targets and banks, holes, flippers.
"""

import sys
import os
import math
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from collisions import CollisionResolver, INVINCIBLE_FRAMES, RESPAWN_Y
from entities import Bumper, Hole, Target
from physics import PhysicsConfig, PhysicsEngine, BUMPER_FORCE, BUMPER_JITTER
from table_presets import TableLayout, TablePreset


# ── Helpers ──────────────────────────────────────────────

def single_bumper_store():
    layout = TableLayout("bumper", bumpers=[Bumper([250, 300], 20, 100)])
    return layout.build_store()


def event_types(events) -> list:
    return [e["type"] for e in events]


class TestBumper:

    def test_ball_falling_onto_bumper(self):
        """Ball 2px above a radius-20 bumper, moving down at 5 px/frame."""
        store = single_bumper_store()
        bumper = store.bumpers[0]
        ball = store.add_ball([250, 300 - 20 - 8 - 2], [0.0, 5.0])
        engine = PhysicsEngine(PhysicsConfig(), np.random.default_rng(42))

        engine.update(store)

        expected = BUMPER_FORCE + np.random.default_rng(42).random() * BUMPER_JITTER
        assert ball.speed == pytest.approx(expected)
        assert ball.velocity[1] < 0
        assert store.score.score == bumper.points * 1
        assert bumper.hit > 0
        assert "bumper_hit" in event_types(engine.events)
        assert len(store.particles) == 12

    @pytest.mark.parametrize("incoming", [[0.0, 0.5], [30.0, -12.0], [-3.0, 40.0]])
    def test_speed_replaced_not_added(self, incoming):
        store = single_bumper_store()
        ball = store.add_ball([262, 290], incoming)
        resolver = CollisionResolver(PhysicsConfig(), np.random.default_rng(1), [])
        resolver.handle(ball, store.bumpers[0], store)
        assert BUMPER_FORCE <= ball.speed <= BUMPER_FORCE + BUMPER_JITTER

    def test_score_scaled_by_multiplier(self):
        store = single_bumper_store()
        store.score.multiplier = 3
        ball = store.add_ball([250, 285])
        CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(
            ball, store.bumpers[0], store)
        assert store.score.score == 300

    def test_coincident_centres_still_resolve(self):
        store = single_bumper_store()
        ball = store.add_ball([250, 300])
        CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(
            ball, store.bumpers[0], store)
        assert ball.is_finite()
        assert ball.speed >= BUMPER_FORCE


class TestTargets:

    def test_completing_bank(self):
        store = TablePreset.space_cadet().build_store()
        left = store.targets_in_bank("left")
        left[0].lit = left[1].lit = True
        events = []
        resolver = CollisionResolver(PhysicsConfig(), np.random.default_rng(0), events)
        ball = store.add_ball([160, 245], [0.0, 3.0])

        resolver.handle(ball, left[2], store)

        assert all(t.lit for t in left)
        assert store.score.score == 50 + 1000
        assert store.score.multiplier == 2
        assert event_types(events) == ["high_score", "target_hit", "bank_complete"]
        assert events[-1] == {"type": "bank_complete", "bank": "left",
                              "bonus": 1000, "multiplier": 2}

    def test_rebound_direction(self):
        store = TablePreset.space_cadet().build_store()
        target = store.targets[0]
        resolver = CollisionResolver(PhysicsConfig(), np.random.default_rng(0), [])
        ball = store.add_ball([105, 245], [2.0, 3.0])   # left of centre, moving down
        resolver.handle(ball, target, store)
        assert ball.velocity[0] == pytest.approx(-1.6)
        assert ball.velocity[1] == pytest.approx(-2.1)

    def test_lit_target_is_ignored(self):
        store = TablePreset.space_cadet().build_store()
        target = store.targets[0]
        target.lit = True
        ball = store.add_ball([110, 270], [0.0, 3.0])
        result = CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(
            ball, target, store)
        assert result is None
        assert store.score.score == 0

    def test_bank_bonus_uses_multiplier_before_increment(self):
        store = TableLayout("bank", targets=[Target(200, 200, 20, 40, 10, "solo")]).build_store()
        store.score.multiplier = 5
        ball = store.add_ball([210, 195])
        CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(
            ball, store.targets[0], store)
        assert store.score.score == 50 + 5000
        assert store.score.multiplier == 5


class TestHoles:

    def make(self):
        store = TableLayout("hole", holes=[Hole([250, 300], 15, 500, "center")]).build_store()
        events = []
        return store, events, CollisionResolver(PhysicsConfig(), np.random.default_rng(0), events)

    def test_capture_respawns_invincible(self):
        store, events, resolver = self.make()
        ball = store.add_ball([255, 300])
        assert resolver.handle(ball, store.holes[0], store) == "captured"
        assert store.score.score == 500
        assert ball.position[1] == RESPAWN_Y
        assert ball.invincible == INVINCIBLE_FRAMES
        assert "hole_capture" in event_types(events)

    def test_pull_zone_accelerates_towards_hole(self):
        store, events, resolver = self.make()
        ball = store.add_ball([270, 300])      # 20 px: inside 22.5 pull radius
        assert resolver.handle(ball, store.holes[0], store) == "pulled"
        assert ball.velocity[0] == pytest.approx(-0.5)
        assert store.score.score == 0

    def test_invincible_ball_is_ignored(self):
        store, events, resolver = self.make()
        ball = store.add_ball([250, 300])
        ball.invincible = 10
        assert resolver.handle(ball, store.holes[0], store) is None
        np.testing.assert_array_equal(ball.position, [250, 300])

    def test_capture_skips_remaining_obstacles(self):
        layout = TableLayout("hole", holes=[Hole([150, 590], 15, 500)])
        store = layout.build_store()
        events = []
        resolver = CollisionResolver(PhysicsConfig(), np.random.default_rng(0), events)
        ball = store.add_ball([150, 590])      # on the hole and the left flipper
        resolver.resolve(ball, store)
        assert ball.position[1] == RESPAWN_Y
        assert ball.velocity[1] > 0


class TestFlippers:

    def test_active_flipper_kicks_up(self):
        store = TablePreset.empty().build_store()
        f = store.left_flipper
        f.active, f.power = True, 15.0
        ball = store.add_ball(f.pivot + [0.0, -10.0], [0.0, 6.0])
        CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(ball, f, store)
        n = f.normal()
        assert ball.velocity[0] == pytest.approx(n[0] * 15.0)
        assert ball.velocity[1] == pytest.approx(-abs(n[1] * 15.0) - 8.0)

    def test_resting_flipper_deflects_falling_ball(self):
        store = TablePreset.empty().build_store()
        f = store.left_flipper
        ball = store.add_ball(f.pivot + [0.0, -10.0], [1.0, 5.0])
        CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(ball, f, store)
        np.testing.assert_allclose(ball.velocity, [1.0, -3.0])

    def test_resting_flipper_leaves_rising_ball(self):
        store = TablePreset.empty().build_store()
        f = store.left_flipper
        ball = store.add_ball(f.pivot + [0.0, -10.0], [1.0, -5.0])
        CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(ball, f, store)
        np.testing.assert_array_equal(ball.velocity, [1.0, -5.0])

    def test_far_ball_untouched(self):
        store = TablePreset.empty().build_store()
        ball = store.add_ball([250, 300], [0.0, 5.0])
        assert CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(
            ball, store.left_flipper, store) is None


def test_unknown_obstacle_type_rejected():
    store = TablePreset.empty().build_store()
    ball = store.add_ball([250, 300])
    with pytest.raises(TypeError):
        CollisionResolver(PhysicsConfig(), np.random.default_rng(0), []).handle(ball, object(), store)


def test_high_score_event_once_per_session():
    store = single_bumper_store()
    store.score.high_score = 150
    events = []
    resolver = CollisionResolver(PhysicsConfig(), np.random.default_rng(0), events)
    for _ in range(4):
        resolver.award(store, 100)
    assert event_types(events).count("high_score") == 1
    assert store.score.high_score == 400
    assert math.isclose(store.score.score, 400)

"""
Entity Store Tests: ball bookkeeping, flipper geometry, reset and snapshots.
"""

import sys
import os
import math
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from entities import (
    Ball, EntityStore, Flipper, Side, Target, new_trail, TRAIL_LENGTH,
)
from scoring import MAX_MULTIPLIER, ScoreState, popup_color
from table_presets import TablePreset


@pytest.fixture
def store() -> EntityStore:
    return TablePreset.space_cadet().build_store()


class TestBalls:

    def test_add_ball_names_are_unique(self, store):
        a = store.add_ball([100, 100])
        b = store.add_ball([200, 100])
        assert a.name != b.name
        assert store.balls == [a, b]

    def test_remove_ball_by_identity(self, store):
        a = store.add_ball([100, 100])
        twin = Ball(a.name, position=[100, 100])
        assert not store.remove_ball(twin)
        assert store.remove_ball(a)
        assert store.balls == []

    def test_load_launcher_readies_ball(self, store):
        ball = store.load_launcher()
        assert store.launcher.ball_ready
        np.testing.assert_array_equal(ball.position, store.launcher.position)

    def test_removing_loaded_ball_unloads_launcher(self, store):
        ball = store.load_launcher()
        other = store.add_ball([100, 100])
        assert store.launcher.ball_name == ball.name
        assert store.remove_ball(other)
        assert store.launcher.ball_ready
        assert store.remove_ball(ball)
        assert not store.launcher.ball_ready
        assert store.launcher.ball_name is None

    def test_non_finite_detection(self):
        ball = Ball("b", position=[0, 0], velocity=[float("nan"), 0])
        assert not ball.is_finite()


class TestFlipperGeometry:

    def test_endpoints_centred_on_pivot(self):
        f = Flipper(Side.LEFT, [140, 600], 30.0, -20.0)
        a, b = f.endpoints()
        np.testing.assert_allclose((a + b) / 2, [140, 600])
        assert math.isclose(float(np.hypot(*(b - a))), 80.0)

    def test_normal_points_up_the_table(self):
        for angle in (30.0, -20.0, -30.0, 20.0):
            f = Flipper(Side.RIGHT, [360, 600], angle, angle)
            n = f.normal()
            assert n[1] < 0
            assert math.isclose(float(np.hypot(*n)), 1.0)

    def test_unknown_side_lookup(self, store):
        assert store.flipper("middle") is None
        assert store.flipper("left") is store.left_flipper
        assert store.flipper(Side.RIGHT) is store.right_flipper


class TestBanks:

    def test_bank_complete_only_when_all_lit(self, store):
        left = store.targets_in_bank("left")
        assert len(left) == 3
        for t in left[:2]:
            t.lit = True
        assert not store.bank_complete("left")
        left[2].lit = True
        assert store.bank_complete("left")

    def test_unknown_bank_is_never_complete(self, store):
        assert not store.bank_complete("nowhere")


class TestReset:

    def test_reset_clears_session_state_keeps_high_score(self, store):
        store.load_launcher()
        store.targets[0].lit = True
        store.bumpers[0].hit = 5
        store.left_flipper.active = True
        store.score.score = 1234
        store.score.high_score = 5000
        store.score.multiplier = 4
        store.score.ball_count = 0

        store.reset()

        assert store.balls == []
        assert not any(t.lit for t in store.targets)
        assert all(b.hit == 0 for b in store.bumpers)
        assert not store.left_flipper.active
        assert not store.launcher.ball_ready
        assert store.score.score == 0
        assert store.score.multiplier == 1
        assert store.score.ball_count == 1
        assert store.score.high_score == 5000


class TestSnapshot:

    def test_snapshot_round_trip(self, store):
        store.add_ball([120, 300], [1.5, -2.0])
        store.targets[1].lit = True
        store.score.add(250)
        store.right_flipper.angle = 5.0

        copy = EntityStore.from_snapshot(store.snapshot())

        assert copy.snapshot() == store.snapshot()
        copy.add_ball([0, 0])
        assert copy.balls[-1].name not in {b.name for b in store.balls}

    def test_launcher_ball_survives_round_trip(self, store):
        ball = store.load_launcher()
        store.add_ball([200, 200])
        copy = EntityStore.from_snapshot(store.snapshot())
        assert copy.launcher.ball_name == ball.name
        assert copy.ball_named(ball.name) is not None


class TestScoreState:

    def test_multiplier_capped(self):
        s = ScoreState()
        for _ in range(10):
            s.bump_multiplier()
        assert s.multiplier == MAX_MULTIPLIER

    def test_high_score_callback_once_per_raise(self):
        saved = []
        s = ScoreState(high_score=100, on_high_score=saved.append)
        assert not s.add(50)
        assert s.add(60)
        assert saved == [110]

    def test_lose_ball_never_negative(self):
        s = ScoreState(ball_count=1)
        assert s.lose_ball() == 0
        assert s.lose_ball() == 0

    def test_popup_color_tiers(self):
        assert popup_color(500) == "#ffff00"
        assert popup_color(250) == "#00ffff"
        assert popup_color(100) == "#ffffff"


def test_trail_is_bounded():
    trail = new_trail()
    for i in range(TRAIL_LENGTH + 5):
        trail.append((i, i))
    assert len(trail) == TRAIL_LENGTH
    assert trail[0] == (5, 5)


def test_target_rect_and_centre():
    t = Target(100, 250, 20, 40, 50, "left")
    assert t.rect == (100, 250, 20, 40)
    assert t.center_x == 110

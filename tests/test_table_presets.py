"""
Tests for the Table Preset System
Each preset must build a playable, independent table.
"""

import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from entities import Side
from table_presets import PRESETS, TablePreset


@pytest.mark.parametrize("name", sorted(PRESETS))
def test_preset_builds_playable_table(name):
    layout = PRESETS[name]()
    store = layout.build_store()
    assert layout.name == name
    assert store.balls == []
    assert store.left_flipper.side is Side.LEFT
    assert store.right_flipper.side is Side.RIGHT
    assert store.bounds.right < store.launcher.position[0] < store.bounds.width
    assert store.bounds.chute_top < store.launcher.position[1] < store.bounds.chute_bottom


class TestSpaceCadet:

    def test_layout_counts(self):
        store = TablePreset.space_cadet().build_store()
        assert len(store.bumpers) == 5
        assert len(store.targets_in_bank("left")) == 3
        assert len(store.targets_in_bank("right")) == 3
        assert [h.kind for h in store.holes] == ["center", "side", "side"]

    def test_flippers_mirror(self):
        store = TablePreset.space_cadet().build_store()
        assert store.right_flipper.rest_angle == -store.left_flipper.rest_angle
        assert store.right_flipper.active_angle == -store.left_flipper.active_angle


def test_stores_are_independent():
    layout = TablePreset.space_cadet()
    a = layout.build_store()
    b = layout.build_store()
    a.targets[0].lit = True
    a.bumpers[0].position[0] = 0.0
    assert not b.targets[0].lit
    assert not layout.targets[0].lit
    assert layout.bumpers[0].position[0] == 250.0


def test_classic_scales_with_size():
    small = TablePreset.classic(400, 560).build_store()
    assert small.bounds.width == 400
    assert small.bumpers[0].position.tolist() == pytest.approx([200.0, 196.0])

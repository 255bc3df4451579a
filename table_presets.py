"""
Table Preset System
Fixed table layouts. Each preset returns a TableLayout that can build any
number of fresh, independent entity stores.
"""

from dataclasses import dataclass, field
from typing import List

from entities import (
    Bumper, EntityStore, Flipper, Hole, Launcher, Side, TableBounds, Target,
    FLIPPER_LENGTH, LAUNCHER_MAX_POWER,
)

LEFT_REST_ANGLE = 30.0
LEFT_ACTIVE_ANGLE = -20.0


@dataclass
class TableLayout:
    name: str
    bounds: TableBounds = field(default_factory=TableBounds)
    bumpers: List[Bumper] = field(default_factory=list)
    targets: List[Target] = field(default_factory=list)
    holes: List[Hole] = field(default_factory=list)
    left_pivot: tuple = (140.0, 600.0)
    right_pivot: tuple = (360.0, 600.0)
    flipper_length: float = FLIPPER_LENGTH
    launcher_pos: tuple = (460.0, 400.0)
    launcher_max_power: float = LAUNCHER_MAX_POWER

    def build_store(self) -> EntityStore:
        """Fresh store; entities are copies so layouts can be reused."""
        return EntityStore(
            bounds=TableBounds.from_dict(self.bounds.to_dict()),
            bumpers=[Bumper.from_dict(b.to_dict()) for b in self.bumpers],
            targets=[Target.from_dict(t.to_dict()) for t in self.targets],
            holes=[Hole.from_dict(h.to_dict()) for h in self.holes],
            left_flipper=Flipper(Side.LEFT, self.left_pivot,
                                 LEFT_REST_ANGLE, LEFT_ACTIVE_ANGLE, self.flipper_length),
            right_flipper=Flipper(Side.RIGHT, self.right_pivot,
                                  -LEFT_REST_ANGLE, -LEFT_ACTIVE_ANGLE, self.flipper_length),
            launcher=Launcher(self.launcher_pos, self.launcher_max_power),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "bounds": self.bounds.to_dict(),
            "bumpers": [b.to_dict() for b in self.bumpers],
            "targets": [t.to_dict() for t in self.targets],
            "holes": [h.to_dict() for h in self.holes],
            "left_pivot": list(self.left_pivot),
            "right_pivot": list(self.right_pivot),
            "flipper_length": self.flipper_length,
            "launcher_pos": list(self.launcher_pos),
            "launcher_max_power": self.launcher_max_power,
        }


class TablePreset:
    """Named layouts."""

    @staticmethod
    def space_cadet() -> TableLayout:
        """Full table: five bumpers, two three-target banks, three holes."""
        bumpers = [
            Bumper([250, 120], 25, 100, "#ff6600"),
            Bumper([180, 180], 20, 75, "#0066ff"),
            Bumper([320, 180], 20, 75, "#0066ff"),
            Bumper([80, 400], 18, 150, "#ff0066"),
            Bumper([420, 400], 18, 150, "#ff0066"),
        ]
        targets = []
        for i in range(3):
            targets.append(Target(100 + i * 25, 250, 20, 40, 50, "left"))
        for i in range(3):
            targets.append(Target(375 + i * 25, 250, 20, 40, 50, "right"))
        holes = [
            Hole([250, 80], 15, 500, "center"),
            Hole([150, 350], 12, 250, "side"),
            Hole([350, 350], 12, 250, "side"),
        ]
        return TableLayout("space_cadet", TableBounds(), bumpers, targets, holes)

    @staticmethod
    def classic(width: float = 500.0, height: float = 700.0) -> TableLayout:
        """Small table scaled to ``width`` x ``height``: three bumpers, one two-target bank."""
        bounds = TableBounds(width=width, height=height, left=0.1 * width,
                             right=0.9 * width, chute_top=0.5 * height,
                             chute_bottom=0.64 * height)
        bumpers = [
            Bumper([width * 0.5, height * 0.35], 22, 150, "#cc0000"),
            Bumper([width * 0.25, height * 0.2], 17, 100, "#cc0000"),
            Bumper([width * 0.75, height * 0.2], 17, 100, "#cc0000"),
        ]
        targets = [
            Target(width * 0.25, height * 0.6, 20, 40, 300, "center"),
            Target(width * 0.75 - 20, height * 0.6, 20, 40, 300, "center"),
        ]
        return TableLayout(
            "classic", bounds, bumpers, targets, [],
            left_pivot=(width * 0.3, height - 100),
            right_pivot=(width * 0.7, height - 100),
            launcher_pos=(width * 0.92, height * 0.57),
        )

    @staticmethod
    def empty(width: float = 500.0, height: float = 700.0) -> TableLayout:
        """Walls, flippers and launcher only."""
        return TableLayout("empty", TableBounds(width=width, height=height,
                                                right=width - 50.0))


PRESETS = {
    "space_cadet": TablePreset.space_cadet,
    "classic": TablePreset.classic,
    "empty": TablePreset.empty,
}

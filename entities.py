"""
Pinball Entity Store
Tagged entity variants (ball, bumper, target, hole, flipper, launcher, effects)
and the per-table store that owns them.
"""

import enum
import math
from collections import deque
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from scoring import ScoreState

# ──────────────────────────────────────────────
# Table hardware (pixels, y grows downward)
# ──────────────────────────────────────────────
BALL_RADIUS: float = 8.0
TRAIL_LENGTH: int = 10
FLIPPER_LENGTH: float = 80.0
FLIPPER_HALF_THICKNESS: float = 7.0
LAUNCHER_MAX_POWER: float = 20.0
BUMPER_HIT_FRAMES: float = 10.0
HOLE_PULL_FACTOR: float = 1.5


class Side(enum.Enum):
    LEFT = "left"
    RIGHT = "right"


class FlipperState(enum.Enum):
    RESTING = 0
    ACTIVE = 1


class LauncherState(enum.Enum):
    IDLE = 0
    CHARGING = 1
    FIRED = 2


def _vec(value) -> np.ndarray:
    return np.array(value, dtype=float)


@dataclass
class TableBounds:
    """Playfield walls. The bottom edge is the drain, not a wall."""
    width: float = 500.0
    height: float = 700.0
    left: float = 50.0
    right: float = 450.0
    top: float = 0.0
    chute_top: float = 350.0     # gap in the right wall that joins the launch chute
    chute_bottom: float = 450.0

    def to_dict(self) -> dict:
        return {
            "width": self.width, "height": self.height,
            "left": self.left, "right": self.right, "top": self.top,
            "chute_top": self.chute_top, "chute_bottom": self.chute_bottom,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TableBounds":
        return cls(**{k: float(v) for k, v in data.items()})


@dataclass
class Ball:
    name: str
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    velocity: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    radius: float = BALL_RADIUS
    invincible: float = 0.0   # frames left during which holes ignore the ball

    def __post_init__(self):
        self.position = _vec(self.position)
        self.velocity = _vec(self.velocity)

    @property
    def speed(self) -> float:
        return float(np.hypot(self.velocity[0], self.velocity[1]))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.position)) and np.all(np.isfinite(self.velocity)))

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "pos": self.position.tolist(),
            "vel": self.velocity.tolist(),
            "radius": self.radius,
            "invincible": self.invincible,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Ball":
        return cls(
            name=str(data["name"]),
            position=data["pos"],
            velocity=data.get("vel", [0.0, 0.0]),
            radius=float(data.get("radius", BALL_RADIUS)),
            invincible=float(data.get("invincible", 0.0)),
        )


@dataclass
class Bumper:
    position: np.ndarray
    radius: float
    points: int
    color: str = "#ff6600"
    hit: float = 0.0   # visual countdown only

    def __post_init__(self):
        self.position = _vec(self.position)

    def to_dict(self) -> dict:
        return {"pos": self.position.tolist(), "radius": self.radius,
                "points": self.points, "color": self.color, "hit": self.hit}

    @classmethod
    def from_dict(cls, data: dict) -> "Bumper":
        return cls(data["pos"], float(data["radius"]), int(data["points"]),
                   data.get("color", "#ff6600"), float(data.get("hit", 0.0)))


@dataclass
class Target:
    x: float
    y: float
    width: float
    height: float
    points: int
    bank: str
    lit: bool = False

    @property
    def rect(self) -> tuple:
        return (self.x, self.y, self.width, self.height)

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    def to_dict(self) -> dict:
        return {"rect": list(self.rect), "points": self.points,
                "bank": self.bank, "lit": self.lit}

    @classmethod
    def from_dict(cls, data: dict) -> "Target":
        x, y, w, h = (float(v) for v in data["rect"])
        return cls(x, y, w, h, int(data["points"]), str(data["bank"]), bool(data.get("lit", False)))


@dataclass
class Hole:
    position: np.ndarray
    radius: float
    points: int
    kind: str = "side"   # "center" | "side"; affects effects only
    pull_factor: float = HOLE_PULL_FACTOR

    def __post_init__(self):
        self.position = _vec(self.position)

    @property
    def pull_radius(self) -> float:
        return self.radius * self.pull_factor

    @property
    def color(self) -> str:
        return "#ffff00" if self.kind == "center" else "#00ffff"

    def to_dict(self) -> dict:
        return {"pos": self.position.tolist(), "radius": self.radius,
                "points": self.points, "kind": self.kind, "pull_factor": self.pull_factor}

    @classmethod
    def from_dict(cls, data: dict) -> "Hole":
        return cls(data["pos"], float(data["radius"]), int(data["points"]),
                   data.get("kind", "side"), float(data.get("pull_factor", HOLE_PULL_FACTOR)))


@dataclass
class Flipper:
    """Flipper body: a segment of ``length`` centred on ``pivot``, rotated by ``angle`` (deg)."""
    side: Side
    pivot: np.ndarray
    rest_angle: float
    active_angle: float
    length: float = FLIPPER_LENGTH
    angle: Optional[float] = None
    target_angle: Optional[float] = None
    active: bool = False
    power: float = 0.0

    def __post_init__(self):
        self.pivot = _vec(self.pivot)
        if self.angle is None:
            self.angle = self.rest_angle
        if self.target_angle is None:
            self.target_angle = self.rest_angle

    @property
    def state(self) -> FlipperState:
        return FlipperState.ACTIVE if self.active else FlipperState.RESTING

    def endpoints(self) -> tuple:
        a = math.radians(self.angle)
        half = np.array([math.cos(a), math.sin(a)]) * (self.length / 2)
        return self.pivot - half, self.pivot + half

    def normal(self) -> np.ndarray:
        """Unit normal of the flipper body pointing up the table (negative y)."""
        a = math.radians(self.angle)
        n = np.array([math.sin(a), -math.cos(a)])
        if n[1] > 0:
            n = -n
        return n

    def reset(self) -> None:
        self.angle = self.rest_angle
        self.target_angle = self.rest_angle
        self.active = False
        self.power = 0.0

    def to_dict(self) -> dict:
        return {
            "side": self.side.value, "pivot": self.pivot.tolist(),
            "rest_angle": self.rest_angle, "active_angle": self.active_angle,
            "length": self.length, "angle": self.angle,
            "target_angle": self.target_angle, "active": self.active, "power": self.power,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Flipper":
        return cls(
            side=Side(data["side"]), pivot=data["pivot"],
            rest_angle=float(data["rest_angle"]), active_angle=float(data["active_angle"]),
            length=float(data.get("length", FLIPPER_LENGTH)),
            angle=float(data["angle"]), target_angle=float(data["target_angle"]),
            active=bool(data["active"]), power=float(data["power"]),
        )


@dataclass
class Launcher:
    position: np.ndarray
    max_power: float = LAUNCHER_MAX_POWER
    power: float = 0.0
    ball_ready: bool = False
    pulling: bool = False
    state: LauncherState = LauncherState.IDLE
    ball_name: Optional[str] = None   # the ball loaded on the plunger, by identity

    def __post_init__(self):
        self.position = _vec(self.position)

    def load(self, ball_name: str) -> None:
        self.ball_name = ball_name
        self.ball_ready = True

    def unload(self) -> None:
        """Forget the loaded ball; a charge in progress is dropped with it."""
        self.ball_name = None
        self.ball_ready = False
        self.pulling = False
        self.power = 0.0

    def reset(self) -> None:
        self.unload()
        self.state = LauncherState.IDLE

    def to_dict(self) -> dict:
        return {"pos": self.position.tolist(), "max_power": self.max_power,
                "power": self.power, "ball_ready": self.ball_ready,
                "pulling": self.pulling, "state": self.state.name,
                "ball_name": self.ball_name}

    @classmethod
    def from_dict(cls, data: dict) -> "Launcher":
        return cls(data["pos"], float(data.get("max_power", LAUNCHER_MAX_POWER)),
                   float(data.get("power", 0.0)), bool(data.get("ball_ready", False)),
                   bool(data.get("pulling", False)), LauncherState[data.get("state", "IDLE")],
                   data.get("ball_name"))


@dataclass
class Particle:
    position: np.ndarray
    velocity: np.ndarray
    color: str
    life: float = 1.0

    def __post_init__(self):
        self.position = _vec(self.position)
        self.velocity = _vec(self.velocity)

    def to_dict(self) -> dict:
        return {"pos": self.position.tolist(), "vel": self.velocity.tolist(),
                "color": self.color, "life": self.life}

    @classmethod
    def from_dict(cls, data: dict) -> "Particle":
        return cls(data["pos"], data["vel"], data["color"], float(data["life"]))


@dataclass
class ScorePopup:
    position: np.ndarray
    text: str
    color: str
    alpha: float = 1.0

    def __post_init__(self):
        self.position = _vec(self.position)

    def to_dict(self) -> dict:
        return {"pos": self.position.tolist(), "text": self.text,
                "color": self.color, "alpha": self.alpha}

    @classmethod
    def from_dict(cls, data: dict) -> "ScorePopup":
        return cls(data["pos"], data["text"], data["color"], float(data["alpha"]))


class EntityStore:
    """Mutable collections for one table instance.

    Balls keep append order; obstacles and flippers keep a fixed identity for
    the lifetime of the store.
    """

    def __init__(self, bounds: TableBounds, bumpers: List[Bumper], targets: List[Target],
                 holes: List[Hole], left_flipper: Flipper, right_flipper: Flipper,
                 launcher: Launcher, score: Optional[ScoreState] = None):
        self.bounds = bounds
        self.bumpers = bumpers
        self.targets = targets
        self.holes = holes
        self.left_flipper = left_flipper
        self.right_flipper = right_flipper
        self.launcher = launcher
        self.score = score if score is not None else ScoreState()

        self.balls: List[Ball] = []
        self.particles: List[Particle] = []
        self.popups: List[ScorePopup] = []
        self._next_ball_id = 1

    # ── Balls ──────────────────────────────────────────────────────────────
    def add_ball(self, position, velocity=(0.0, 0.0)) -> Ball:
        ball = Ball(f"ball-{self._next_ball_id}", position=position, velocity=velocity)
        self._next_ball_id += 1
        self.balls.append(ball)
        return ball

    def remove_ball(self, ball: Ball) -> bool:
        """Remove by identity. Returns False if the ball is not in the store."""
        for i, b in enumerate(self.balls):
            if b is ball:
                del self.balls[i]
                if self.launcher.ball_name == ball.name:
                    self.launcher.unload()
                return True
        return False

    def ball_named(self, name: Optional[str]) -> Optional[Ball]:
        if name is None:
            return None
        for b in self.balls:
            if b.name == name:
                return b
        return None

    def load_launcher(self) -> Ball:
        """Place a fresh ball on the plunger."""
        ball = self.add_ball(self.launcher.position.copy())
        self.launcher.load(ball.name)
        return ball

    # ── Flippers / banks ───────────────────────────────────────────────────
    @property
    def flippers(self) -> tuple:
        return (self.left_flipper, self.right_flipper)

    def flipper(self, side) -> Optional[Flipper]:
        """Flipper for ``side`` (Side or its string value); None if there is no such flipper."""
        if isinstance(side, str):
            try:
                side = Side(side)
            except ValueError:
                return None
        if side is Side.LEFT:
            return self.left_flipper
        if side is Side.RIGHT:
            return self.right_flipper
        return None

    def targets_in_bank(self, bank: str) -> List[Target]:
        return [t for t in self.targets if t.bank == bank]

    def bank_complete(self, bank: str) -> bool:
        members = self.targets_in_bank(bank)
        return bool(members) and all(t.lit for t in members)

    # ── Reset / snapshot ───────────────────────────────────────────────────
    def reset(self) -> None:
        """Back to the initial table: no balls or effects, flags and score cleared.

        The high score survives.
        """
        self.balls.clear()
        self.particles.clear()
        self.popups.clear()
        for t in self.targets:
            t.lit = False
        for b in self.bumpers:
            b.hit = 0.0
        for f in self.flippers:
            f.reset()
        self.launcher.reset()
        self.score.reset()

    def snapshot(self) -> dict:
        return {
            "bounds": self.bounds.to_dict(),
            "balls": [b.to_dict() for b in self.balls],
            "bumpers": [b.to_dict() for b in self.bumpers],
            "targets": [t.to_dict() for t in self.targets],
            "holes": [h.to_dict() for h in self.holes],
            "flippers": [f.to_dict() for f in self.flippers],
            "launcher": self.launcher.to_dict(),
            "particles": [p.to_dict() for p in self.particles],
            "popups": [p.to_dict() for p in self.popups],
            "score": self.score.to_dict(),
            "next_ball_id": self._next_ball_id,
        }

    @classmethod
    def from_snapshot(cls, data: dict) -> "EntityStore":
        left, right = (Flipper.from_dict(f) for f in data["flippers"])
        store = cls(
            bounds=TableBounds.from_dict(data["bounds"]),
            bumpers=[Bumper.from_dict(b) for b in data["bumpers"]],
            targets=[Target.from_dict(t) for t in data["targets"]],
            holes=[Hole.from_dict(h) for h in data["holes"]],
            left_flipper=left,
            right_flipper=right,
            launcher=Launcher.from_dict(data["launcher"]),
            score=ScoreState.from_dict(data.get("score", {})),
        )
        store.balls = [Ball.from_dict(b) for b in data.get("balls", [])]
        store.particles = [Particle.from_dict(p) for p in data.get("particles", [])]
        store.popups = [ScorePopup.from_dict(p) for p in data.get("popups", [])]
        store._next_ball_id = int(data.get("next_ball_id", len(store.balls) + 1))
        return store


def new_trail() -> deque:
    """Render-side trail buffer for one ball."""
    return deque(maxlen=TRAIL_LENGTH)

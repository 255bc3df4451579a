"""
Pinball Collision & Scoring Resolver
Detects and resolves ball contacts with bumpers, targets, holes and flippers,
in that fixed order, and applies the score/multiplier rules.
"""

import math

import numpy as np

from entities import (
    Ball, Bumper, EntityStore, Flipper, Hole, Particle, ScorePopup, Target,
    FLIPPER_HALF_THICKNESS, BUMPER_HIT_FRAMES,
)
from geometry import circle_overlap, circle_rect_overlap, point_to_segment_distance
from scoring import popup_color

PARTICLE_BURST: int = 12
PARTICLE_SPEED_MIN: float = 2.0
PARTICLE_SPEED_SPREAD: float = 3.0

TARGET_REBOUND_X: float = 0.8
TARGET_REBOUND_Y: float = 0.7

RESPAWN_Y: float = 150.0
RESPAWN_X_SPREAD: float = 50.0
RESPAWN_VX_SPREAD: float = 2.0
RESPAWN_VY: float = 2.0
INVINCIBLE_FRAMES: float = 60.0


class CollisionResolver:
    """Per-ball collision handling for one table.

    ``events`` is shared with the stepper; each handler appends one dict per
    triggering occurrence.
    """

    def __init__(self, config, rng: np.random.Generator, events: list):
        self.config = config
        self.rng = rng
        self.events = events
        self._handlers = {
            Bumper: self._bumper,
            Target: self._target,
            Hole: self._hole,
            Flipper: self._flipper,
        }

    def resolve(self, ball: Ball, store: EntityStore, scale: float = 1.0) -> None:
        """Bumpers, targets, holes, flippers: the order breaks ties between kinds."""
        for group in (store.bumpers, store.targets, store.holes, store.flippers):
            for obstacle in group:
                if self.handle(ball, obstacle, store, scale) == "captured":
                    return

    def handle(self, ball: Ball, obstacle, store: EntityStore, scale: float = 1.0):
        handler = self._handlers.get(type(obstacle))
        if handler is None:
            raise TypeError(f"no collision handler for {type(obstacle).__name__}")
        return handler(ball, obstacle, store, scale)

    # ──────────────────────────────────────────
    # Scoring helpers
    # ──────────────────────────────────────────
    def award(self, store: EntityStore, points: int) -> int:
        """Award ``points`` times the multiplier, with a popup. Returns the points awarded."""
        score = store.score
        awarded = score.scaled(points)
        raised = score.add(awarded)
        w = store.bounds.width
        store.popups.append(ScorePopup(
            position=[w - 100 + self.rng.random() * 50, 50 + self.rng.random() * 50],
            text=f"+{awarded}",
            color=popup_color(awarded),
        ))
        if raised and not score.high_score_beaten:
            score.high_score_beaten = True
            self.events.append({"type": "high_score", "score": score.high_score})
        return awarded

    def burst(self, store: EntityStore, position, color: str) -> None:
        """Radial particle burst."""
        for i in range(PARTICLE_BURST):
            angle = 2 * math.pi * i / PARTICLE_BURST
            speed = PARTICLE_SPEED_MIN + self.rng.random() * PARTICLE_SPEED_SPREAD
            store.particles.append(Particle(
                position=np.array(position, dtype=float),
                velocity=[math.cos(angle) * speed, math.sin(angle) * speed],
                color=color,
            ))

    # ──────────────────────────────────────────
    # Obstacle handlers
    # ──────────────────────────────────────────
    def _bumper(self, ball: Ball, bumper: Bumper, store: EntityStore, scale: float):
        sep = circle_overlap(ball.position, ball.radius, bumper.position, bumper.radius)
        if not sep.overlapping:
            return None
        # Velocity is replaced, not added. Fires on every overlapping frame.
        angle = math.atan2(sep.offset[1], sep.offset[0])
        force = self.config.bumper_force + self.rng.random() * self.config.bumper_jitter
        ball.velocity = np.array([math.cos(angle) * force, math.sin(angle) * force])

        awarded = self.award(store, bumper.points)
        self.burst(store, bumper.position, bumper.color)
        bumper.hit = BUMPER_HIT_FRAMES
        self.events.append({"type": "bumper_hit", "ball": ball.name, "points": awarded})
        return "hit"

    def _target(self, ball: Ball, target: Target, store: EntityStore, scale: float):
        if target.lit:
            return None
        if not circle_rect_overlap(ball.position, ball.radius, target.rect):
            return None
        target.lit = True
        if ball.position[0] < target.center_x:
            ball.velocity[0] = -abs(ball.velocity[0]) * TARGET_REBOUND_X
        else:
            ball.velocity[0] = abs(ball.velocity[0]) * TARGET_REBOUND_X
        ball.velocity[1] = -abs(ball.velocity[1]) * TARGET_REBOUND_Y

        awarded = self.award(store, target.points)
        self.events.append({"type": "target_hit", "ball": ball.name,
                            "bank": target.bank, "points": awarded})

        if store.bank_complete(target.bank):
            bonus = self.award(store, self.config.bank_bonus)
            multiplier = store.score.bump_multiplier()
            self.events.append({"type": "bank_complete", "bank": target.bank,
                                "bonus": bonus, "multiplier": multiplier})
        return "hit"

    def _hole(self, ball: Ball, hole: Hole, store: EntityStore, scale: float):
        # Invincible balls are ignored by holes entirely: no pull, no capture.
        if ball.invincible > 0:
            return None
        sep = circle_overlap(ball.position, 0.0, hole.position, hole.pull_radius)
        if not sep.overlapping:
            return None

        if sep.distance < hole.radius:
            self._capture(ball, hole, store)
            return "captured"

        normal = sep.normal()
        if normal is not None:
            ball.velocity -= normal * self.config.hole_pull_force * scale
        return "pulled"

    def _capture(self, ball: Ball, hole: Hole, store: EntityStore) -> None:
        awarded = self.award(store, hole.points)
        self.burst(store, hole.position, hole.color)
        w = store.bounds.width
        ball.position = np.array([w / 2 + (self.rng.random() - 0.5) * RESPAWN_X_SPREAD, RESPAWN_Y])
        ball.velocity = np.array([(self.rng.random() - 0.5) * RESPAWN_VX_SPREAD, RESPAWN_VY])
        ball.invincible = INVINCIBLE_FRAMES
        self.events.append({"type": "hole_capture", "ball": ball.name,
                            "kind": hole.kind, "points": awarded})

    def _flipper(self, ball: Ball, flipper: Flipper, store: EntityStore, scale: float):
        a, b = flipper.endpoints()
        if point_to_segment_distance(ball.position, a, b) >= ball.radius + FLIPPER_HALF_THICKNESS:
            return None
        if flipper.active:
            kick = flipper.normal() * flipper.power
            ball.velocity = np.array([kick[0], -abs(kick[1]) - self.config.flipper_lift])
            return "kicked"
        # Idle flipper: partial reflection of a ball moving into it.
        if ball.velocity[1] > 0:
            ball.velocity[1] = -ball.velocity[1] * self.config.flipper_passive_damping
        return "deflected"

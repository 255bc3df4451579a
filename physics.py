"""
Pinball Physics Stepper
Per-frame integration of gravity, damping and wall bounces, then dispatch to
the collision resolver and drain detection.

All rate constants are expressed per nominal frame (1/60 s). The caller passes
``scale = dt / NOMINAL_FRAME_DT`` so the table behaves the same under any
host tick rate.
"""

import logging
import math
from dataclasses import dataclass, fields
from typing import List, Optional

import numpy as np

from collisions import CollisionResolver
from entities import Ball, EntityStore

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# Constants (pixels, per nominal frame)
# ──────────────────────────────────────────────
NOMINAL_FRAME_DT: float = 1.0 / 60.0   # s
MAX_FRAME_DT: float = 0.05             # s, hitch clamp

GRAVITY: float = 0.25
FRICTION: float = 0.985                # multiplicative velocity damping
BOUNCE_DAMPING: float = 0.75           # wall restitution
FLIPPER_SMOOTHING: float = 0.3         # fraction of angle error closed per frame

BUMPER_FORCE: float = 10.0
BUMPER_JITTER: float = 5.0
FLIPPER_FORCE: float = 15.0
FLIPPER_LIFT: float = 8.0
FLIPPER_PASSIVE_DAMPING: float = 0.6
HOLE_PULL_FORCE: float = 0.5
LAUNCHER_CHARGE_RATE: float = 0.5
BANK_BONUS: int = 1000
BANK_RESET_DELAY: float = 3.0          # s

# Effects
PARTICLE_GRAVITY: float = 0.2
PARTICLE_DRAG: float = 0.98
PARTICLE_FADE: float = 0.02
POPUP_RISE: float = 1.0
POPUP_FADE: float = 0.02


class NonFiniteStateError(ValueError):
    """A ball ended a step with a NaN/inf position or velocity."""


@dataclass
class PhysicsConfig:
    """Tunable simulation constants. Defaults mirror the module constants."""
    gravity: float = GRAVITY
    friction: float = FRICTION
    bounce_damping: float = BOUNCE_DAMPING
    flipper_smoothing: float = FLIPPER_SMOOTHING
    bumper_force: float = BUMPER_FORCE
    bumper_jitter: float = BUMPER_JITTER
    flipper_force: float = FLIPPER_FORCE
    flipper_lift: float = FLIPPER_LIFT
    flipper_passive_damping: float = FLIPPER_PASSIVE_DAMPING
    hole_pull_force: float = HOLE_PULL_FORCE
    launcher_charge_rate: float = LAUNCHER_CHARGE_RATE
    bank_bonus: int = BANK_BONUS
    bank_reset_delay: float = BANK_RESET_DELAY

    def apply_params(self, params: dict) -> tuple:
        """Set known fields by name. Returns (updated, skipped) name lists."""
        known = {f.name: f.type for f in fields(self)}
        updated, skipped = [], []
        for k, v in params.items():
            if k not in known:
                skipped.append(k)
                continue
            try:
                value = int(v) if k == "bank_bonus" else float(v)
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning("[PARAMS] %s=%r rejected: %s", k, v, e)
                skipped.append(k)
                continue
            if not math.isfinite(value):
                logger.warning("[PARAMS] %s=%r rejected: not finite", k, v)
                skipped.append(k)
                continue
            setattr(self, k, value)
            updated.append(k)
        return updated, skipped

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# Live-edit table for hosts: (field, label, min, max, step)
PHYSICS_PARAMS = [
    ("gravity",                 "Gravity",         0.0,   1.0,  0.01),
    ("friction",                "Friction",        0.9,   1.0,  0.001),
    ("bounce_damping",          "Wall Bounce",     0.1,   1.0,  0.01),
    ("flipper_smoothing",       "Flipper Speed",   0.05,  1.0,  0.01),
    ("bumper_force",            "Bumper Force",    1.0,  30.0,  0.5),
    ("bumper_jitter",           "Bumper Jitter",   0.0,  10.0,  0.5),
    ("flipper_force",           "Flipper Force",   1.0,  30.0,  0.5),
    ("flipper_lift",            "Flipper Lift",    0.0,  20.0,  0.5),
    ("flipper_passive_damping", "Flipper Rest",    0.0,   1.0,  0.01),
    ("hole_pull_force",         "Hole Pull",       0.0,   2.0,  0.05),
    ("launcher_charge_rate",    "Plunger Rate",    0.1,   2.0,  0.05),
]


def frame_scale(dt: float) -> float:
    """Clamp a host frame delta (s) and express it in nominal frames."""
    dt = max(0.0, min(float(dt), MAX_FRAME_DT))
    return dt / NOMINAL_FRAME_DT


class PhysicsEngine:
    """Ball integrator and collision dispatcher for one table."""

    def __init__(self, config: Optional[PhysicsConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = config if config is not None else PhysicsConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.events: list = []
        self.resolver = CollisionResolver(self.config, self.rng, self.events)

    # ──────────────────────────────────────────
    # Integration
    # ──────────────────────────────────────────
    def _integrate(self, ball: Ball, scale: float) -> None:
        cfg = self.config
        if ball.invincible > 0:
            ball.invincible = max(0.0, ball.invincible - scale)
        ball.velocity[1] += cfg.gravity * scale
        ball.velocity *= cfg.friction ** scale
        ball.position += ball.velocity * scale

    def _apply_walls(self, ball: Ball, bounds) -> None:
        """Reflect off left/right/top walls, losing energy on each strike."""
        r = ball.radius
        e = self.config.bounce_damping
        x, y = ball.position

        if x - r < bounds.left:
            ball.position[0] = bounds.left + r
            ball.velocity[0] = abs(ball.velocity[0]) * e

        # The right playfield wall is open where the launch chute joins it.
        in_chute_gap = bounds.chute_top < y < bounds.chute_bottom
        if x + r > bounds.right and not in_chute_gap:
            ball.position[0] = bounds.right - r
            ball.velocity[0] = -abs(ball.velocity[0]) * e

        if ball.position[0] + r > bounds.width:
            ball.position[0] = bounds.width - r
            ball.velocity[0] = -abs(ball.velocity[0]) * e

        if y - r < bounds.top:
            ball.position[1] = bounds.top + r
            ball.velocity[1] = abs(ball.velocity[1]) * e

    @staticmethod
    def _check_finite(ball: Ball) -> None:
        if not ball.is_finite():
            logger.error("[PHYSICS] %s went non-finite: pos=%s vel=%s",
                         ball.name, ball.position, ball.velocity)
            raise NonFiniteStateError(
                f"ball '{ball.name}' has non-finite state "
                f"(pos={ball.position.tolist()}, vel={ball.velocity.tolist()})"
            )

    # ──────────────────────────────────────────
    # Effects
    # ──────────────────────────────────────────
    @staticmethod
    def update_effects(store: EntityStore, scale: float) -> None:
        """Advance particles, score popups and bumper flash countdowns."""
        alive = []
        for p in store.particles:
            p.position += p.velocity * scale
            p.velocity[1] += PARTICLE_GRAVITY * scale
            p.velocity[0] *= PARTICLE_DRAG ** scale
            p.life -= PARTICLE_FADE * scale
            if p.life > 0:
                alive.append(p)
        store.particles[:] = alive

        shown = []
        for popup in store.popups:
            popup.position[1] -= POPUP_RISE * scale
            popup.alpha -= POPUP_FADE * scale
            if popup.alpha > 0:
                shown.append(popup)
        store.popups[:] = shown

        for bumper in store.bumpers:
            if bumper.hit > 0:
                bumper.hit = max(0.0, bumper.hit - scale)

    # ──────────────────────────────────────────
    # Main Update Loop
    # ──────────────────────────────────────────
    def update(self, store: EntityStore, scale: float = 1.0) -> List[Ball]:
        """Advance every ball by ``scale`` nominal frames.

        Returns the balls that drained this step; they are already removed
        from the store. Events are collected in ``self.events``.
        """
        self.events.clear()
        drained: List[Ball] = []
        bounds = store.bounds

        for ball in list(store.balls):
            self._integrate(ball, scale)
            self._apply_walls(ball, bounds)
            self.resolver.resolve(ball, store, scale)
            self._check_finite(ball)

            if ball.position[1] > bounds.height + ball.radius:
                store.remove_ball(ball)
                drained.append(ball)
                self.events.append({"type": "drain", "ball": ball.name})

        self.update_effects(store, scale)
        return drained

    def simulate(self, store: EntityStore, frames: int, scale: float = 1.0) -> int:
        """Run ``frames`` steps or until no ball is left. Returns the frame count run."""
        n = 0
        while n < frames and store.balls:
            self.update(store, scale)
            n += 1
        return n

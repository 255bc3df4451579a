"""
Flipper & launcher state machine.

Turns the per-tick control snapshot (left / right / launch held) into flipper
angle and power, plunger charge, and launch impulses.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from entities import Ball, EntityStore, Flipper, Launcher, LauncherState, Side

LAUNCH_TOLERANCE: float = 20.0   # px around the plunger pivot
LAUNCH_VX: float = -2.0

# Host key name → intent
KEY_BINDINGS = {
    "left": "left", "z": "left", "a": "left",
    "right": "right", "x": "right", "d": "right", "/": "right",
    "space": "launch", "down": "launch",
}


@dataclass(frozen=True)
class ControlIntents:
    left: bool = False
    right: bool = False
    launch: bool = False

    @classmethod
    def from_keys(cls, held_keys: dict) -> "ControlIntents":
        """Build intents from a key→held map. Unbound keys are ignored."""
        wanted = {"left": False, "right": False, "launch": False}
        for key, held in held_keys.items():
            intent = KEY_BINDINGS.get(key)
            if intent is not None and held:
                wanted[intent] = True
        return cls(**wanted)

    def held(self, side) -> bool:
        side = side.value if isinstance(side, Side) else side
        return bool(getattr(self, side, False)) if side in ("left", "right") else False


class ControlStateMachine:
    """RESTING/ACTIVE per flipper, IDLE/CHARGING/FIRED for the launcher."""

    def __init__(self, config):
        self.config = config

    # ──────────────────────────────────────────
    # Flippers
    # ──────────────────────────────────────────
    def set_flipper(self, store: EntityStore, side, held: bool, events: list) -> None:
        """Apply one flipper intent. Sides without a flipper are ignored."""
        flipper = store.flipper(side)
        if flipper is None:
            return
        if held:
            self.activate(flipper, events)
        else:
            self.deactivate(flipper)

    def activate(self, flipper: Flipper, events: list) -> None:
        if not flipper.active:
            # Press edge: impulse power and sound fire once per press.
            flipper.active = True
            flipper.power = self.config.flipper_force
            events.append({"type": "flipper_fire", "side": flipper.side.value})
        flipper.target_angle = flipper.active_angle

    @staticmethod
    def deactivate(flipper: Flipper) -> None:
        flipper.active = False
        flipper.power = 0.0
        flipper.target_angle = flipper.rest_angle

    def update_angle(self, flipper: Flipper, scale: float) -> None:
        """Exponential approach to the target angle, normalised to frame length."""
        alpha = 1.0 - (1.0 - self.config.flipper_smoothing) ** scale
        flipper.angle += (flipper.target_angle - flipper.angle) * alpha

    # ──────────────────────────────────────────
    # Launcher
    # ──────────────────────────────────────────
    @staticmethod
    def held_ball(store: EntityStore) -> Optional[Ball]:
        """Ball sitting on the plunger, if the launcher has one ready."""
        launcher = store.launcher
        if not launcher.ball_ready:
            return None
        ball = store.ball_named(launcher.ball_name)
        if ball is not None and abs(ball.position[0] - launcher.position[0]) <= LAUNCH_TOLERANCE:
            return ball
        return None

    def pull(self, launcher: Launcher, scale: float) -> None:
        if not launcher.ball_ready:
            return
        launcher.pulling = True
        launcher.state = LauncherState.CHARGING
        launcher.power = min(launcher.power + self.config.launcher_charge_rate * scale,
                             launcher.max_power)

    def release(self, store: EntityStore, events: list) -> bool:
        """Discharge the plunger. Returns True if a ball was launched."""
        launcher = store.launcher
        fired = False
        ball = store.ball_named(launcher.ball_name) if launcher.ball_ready else None
        if launcher.pulling and ball is not None:
            dx = abs(ball.position[0] - launcher.position[0])
            dy = abs(ball.position[1] - launcher.position[1])
            if dx <= LAUNCH_TOLERANCE and dy <= LAUNCH_TOLERANCE:
                ball.velocity = np.array([LAUNCH_VX, -launcher.power])
                launcher.ball_ready = False
                launcher.ball_name = None
                fired = True
                events.append({"type": "launch_fired", "ball": ball.name,
                               "power": float(launcher.power)})
        launcher.pulling = False
        launcher.power = 0.0
        launcher.state = LauncherState.FIRED if fired else LauncherState.IDLE
        return fired

    def ride_plunger(self, store: EntityStore) -> None:
        """Keep a ready ball on the plunger head."""
        ball = self.held_ball(store)
        if ball is None:
            return
        launcher = store.launcher
        ball.position = np.array([launcher.position[0], launcher.position[1] + launcher.power])
        ball.velocity = np.array([0.0, 0.0])

    # ──────────────────────────────────────────
    # Per-tick entry
    # ──────────────────────────────────────────
    def apply(self, store: EntityStore, intents: ControlIntents, scale: float) -> list:
        """Apply one tick of intents. Returns the control events raised."""
        events: list = []
        self.set_flipper(store, Side.LEFT, intents.left, events)
        self.set_flipper(store, Side.RIGHT, intents.right, events)
        for flipper in store.flippers:
            self.update_angle(flipper, scale)

        if intents.launch:
            self.pull(store.launcher, scale)
        # Snap before release so the charged ball is measured at the plunger head.
        self.ride_plunger(store)
        if not intents.launch:
            self.release(store, events)
        return events

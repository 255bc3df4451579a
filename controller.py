"""
PinballController: session layer.

Owns the entity store, physics engine, control state machine, deferred
timers and score bookkeeping for one table. The host loop (server.py) calls:
  ctrl.step(dt, intents)   advance one tick
  ctrl.pending_events      render/UI commands to consume (spawn_ball, ...)
  ctrl.sound_events        sound names raised during the last tick
  ctrl.store               read-only view of every entity
The controller is the only place session state changes.
"""

import enum
import json
import logging
import os
from typing import Optional

import numpy as np

from collisions import INVINCIBLE_FRAMES, RESPAWN_VY, RESPAWN_Y
from controls import ControlIntents, ControlStateMachine
from entities import EntityStore, new_trail
from highscore import HighScoreStore, MemoryHighScoreStore
from physics import NOMINAL_FRAME_DT, PhysicsConfig, PhysicsEngine, frame_scale
from table_presets import PRESETS, TableLayout, TablePreset
from timers import TimerQueue

logger = logging.getLogger(__name__)

DEFAULT_INFO_MSG = "[Space] Start / plunger  [Z/Left] [X/Right] Flippers  [P] Pause"

SOUND_EVENTS = (
    "bumper_hit", "flipper_fire", "target_hit", "hole_capture",
    "launch_fired", "game_over", "high_score", "extra_ball",
)


class SessionState(enum.Enum):
    LOADING = 0
    READY = 1
    RUNNING = 2
    PAUSED = 3
    GAME_OVER = 4


class PinballController:
    """Session state machine + physics orchestration."""

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, layout: Optional[TableLayout] = None,
                 config: Optional[PhysicsConfig] = None,
                 high_scores: Optional[HighScoreStore] = None,
                 seed: Optional[int] = None):
        self.layout = layout if layout is not None else TablePreset.space_cadet()
        self.config = config if config is not None else PhysicsConfig()
        self.high_scores = high_scores if high_scores is not None else MemoryHighScoreStore()
        self.rng = np.random.default_rng(seed)

        self.store: EntityStore = self._new_store()
        self.engine = PhysicsEngine(self.config, self.rng)
        self.controls = ControlStateMachine(self.config)
        self.timers = TimerQueue()

        self.state = SessionState.LOADING
        self.sim_time = 0.0
        self.frame = 0

        # Trail data (positions only; drawing stays in the renderer)
        self.trail_positions: dict = {}

        self.status_msg = "Loading..."
        self.info_msg = DEFAULT_INFO_MSG

        # Event queues
        self.pending_events: list = []   # render/UI commands
        self.sound_events: list = []     # sound names, last tick only
        self.physics_events: list = []   # every event raised during the last tick
        self.pending_high_score: Optional[int] = None

    def _new_store(self) -> EntityStore:
        store = self.layout.build_store()
        store.score.on_high_score = self._save_high_score
        return store

    def _save_high_score(self, score: int) -> None:
        # Recorded only; the tick never touches storage. See flush_high_score.
        self.pending_high_score = score

    def take_pending_high_score(self) -> Optional[int]:
        """Pop the high score awaiting persistence, if any. Hosts save it off the tick."""
        score, self.pending_high_score = self.pending_high_score, None
        return score

    def flush_high_score(self) -> bool:
        """Synchronously persist a pending high score. For headless callers."""
        score = self.take_pending_high_score()
        if score is None:
            return False
        self.high_scores.save(score)
        logger.info("[HISCORE] saved %d", score)
        return True

    @property
    def score(self):
        return self.store.score

    # ──────────────────────────────────────────────────────────────────────────
    # Session transitions
    # ──────────────────────────────────────────────────────────────────────────

    def _transition(self, new_state: SessionState) -> None:
        logger.info("[SESSION] %s -> %s", self.state.name, new_state.name)
        self.state = new_state

    def finish_loading(self) -> bool:
        if self.state is not SessionState.LOADING:
            logger.debug("[SESSION] finish_loading ignored in %s", self.state.name)
            return False
        self._transition(SessionState.READY)
        self.status_msg = "Press Space to start."
        return True

    def start(self) -> bool:
        """READY or GAME_OVER → RUNNING with a fresh table."""
        if self.state not in (SessionState.READY, SessionState.GAME_OVER):
            logger.debug("[SESSION] start ignored in %s", self.state.name)
            return False

        self.flush_high_score()
        stored = self.high_scores.load()
        high = max(self.store.score.high_score, stored)

        self.timers.invalidate()
        self.store.reset()
        self.store.score.high_score = high
        self.trail_positions.clear()
        self.pending_events.append({"type": "clear_balls"})

        self._spawn_in_launcher()
        self._transition(SessionState.RUNNING)
        self.status_msg = f"Ball {self.score.ball_count} of {self.score.max_balls}"
        return True

    def pause(self) -> bool:
        if self.state is not SessionState.RUNNING:
            return False
        self._transition(SessionState.PAUSED)
        self.pending_events.append({"type": "paused", "paused": True})
        return True

    def resume(self) -> bool:
        if self.state is not SessionState.PAUSED:
            return False
        self._transition(SessionState.RUNNING)
        self.pending_events.append({"type": "paused", "paused": False})
        return True

    def toggle_pause(self) -> bool:
        return self.pause() or self.resume()

    def _game_over(self) -> None:
        self._transition(SessionState.GAME_OVER)
        self.sound_events.append("game_over")
        self.pending_events.append({"type": "game_over", "score": self.score.score,
                                    "high_score": self.score.high_score})
        self.status_msg = f"GAME OVER! Final Score: {self.score.score:,}"
        logger.info("[SESSION] game over, score=%d high=%d",
                    self.score.score, self.score.high_score)

    # ──────────────────────────────────────────────────────────────────────────
    # Ball management
    # ──────────────────────────────────────────────────────────────────────────

    def _spawn_in_launcher(self):
        ball = self.store.load_launcher()
        self.trail_positions[ball.name] = new_trail()
        self.pending_events.append({"type": "spawn_ball", "ball": ball.name,
                                    "pos": ball.position.tolist()})
        return ball

    def spawn_multiball(self, count: int = 1) -> list:
        """Drop ``count`` extra balls in from the top of the table."""
        if self.state is not SessionState.RUNNING:
            return []
        spawned = []
        w = self.store.bounds.width
        for _ in range(count):
            x = w / 2 + (self.rng.random() - 0.5) * 50
            ball = self.store.add_ball([x, RESPAWN_Y], [(self.rng.random() - 0.5) * 2, RESPAWN_VY])
            ball.invincible = INVINCIBLE_FRAMES
            self.trail_positions[ball.name] = new_trail()
            self.pending_events.append({"type": "spawn_ball", "ball": ball.name,
                                        "pos": ball.position.tolist()})
            spawned.append(ball)
        if spawned:
            self.pending_events.append({"type": "show_message", "msg": "MULTIBALL!"})
        return spawned

    def award_extra_ball(self) -> bool:
        """One more ball for this session, up to the maximum."""
        score = self.score
        if score.ball_count >= score.max_balls:
            return False
        score.ball_count += 1
        self.sound_events.append("extra_ball")
        self.pending_events.append({"type": "show_message", "msg": "EXTRA BALL!"})
        return True

    def _on_drain(self, drained: list) -> None:
        for ball in drained:
            self.trail_positions.pop(ball.name, None)
            self.pending_events.append({"type": "remove_ball", "ball": ball.name})
        if self.store.balls:
            return   # multiball still in play

        remaining = self.score.lose_ball()
        if remaining > 0:
            self._spawn_in_launcher()
            self.status_msg = f"Ball {remaining} of {self.score.max_balls}"
            self.pending_events.append({"type": "show_message", "msg": self.status_msg})
        else:
            self._game_over()

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self, dt_frame: float, intents: Optional[ControlIntents] = None) -> None:
        """Advance one tick. No-op unless RUNNING."""
        self.sound_events.clear()
        self.physics_events.clear()
        if self.state is not SessionState.RUNNING:
            return

        scale = frame_scale(dt_frame)
        self.sim_time += scale * NOMINAL_FRAME_DT
        self.frame += 1

        for action in self.timers.pop_due(self.sim_time):
            self._run_action(action)

        events = self.controls.apply(self.store, intents or ControlIntents(), scale)
        drained = self.engine.update(self.store, scale)
        events.extend(self.engine.events)

        for ev in events:
            self._dispatch(ev)
        if drained:
            self._on_drain(drained)

        for ball in self.store.balls:
            trail = self.trail_positions.setdefault(ball.name, new_trail())
            trail.append((float(ball.position[0]), float(ball.position[1])))

    def _dispatch(self, ev: dict) -> None:
        self.physics_events.append(ev)
        if ev["type"] in SOUND_EVENTS:
            self.sound_events.append(ev["type"])
        if ev["type"] == "bank_complete":
            bank = ev["bank"]
            self.timers.schedule(self.sim_time, self.config.bank_reset_delay,
                                 "bank_reset", {"bank": bank})
            msg = f"{bank.upper()} BANK COMPLETE! x{ev['multiplier']}"
            self.pending_events.append({"type": "show_message", "msg": msg})
            logger.info("[SESSION] %s", msg)

    def _run_action(self, action) -> None:
        if action.kind == "bank_reset":
            for target in self.store.targets_in_bank(action.payload["bank"]):
                target.lit = False
        else:
            logger.warning("[SESSION] unknown deferred action %r", action.kind)

    # ──────────────────────────────────────────────────────────────────────────
    # Snapshot / restore
    # ──────────────────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        """Everything needed to replay the session deterministically."""
        return {
            "layout": self.layout.name,
            "state": self.state.name,
            "sim_time": self.sim_time,
            "frame": self.frame,
            "rng": self.rng.bit_generator.state,
            "timers": self.timers.to_list(),
            "config": self.config.to_dict(),
            "store": self.store.snapshot(),
        }

    def restore(self, data: dict) -> None:
        self.store = EntityStore.from_snapshot(data["store"])
        self.store.score.on_high_score = self._save_high_score
        self.config.apply_params(data.get("config", {}))
        self.rng.bit_generator.state = data["rng"]
        self.timers.load(data.get("timers", []), self.timers.generation + 1)
        self.state = SessionState[data.get("state", "RUNNING")]
        self.sim_time = float(data.get("sim_time", 0.0))
        self.frame = int(data.get("frame", 0))
        self.trail_positions = {b.name: new_trail() for b in self.store.balls}
        self.pending_events.append({"type": "clear_balls"})
        for ball in self.store.balls:
            self.pending_events.append({"type": "spawn_ball", "ball": ball.name,
                                        "pos": ball.position.tolist()})

    def get_state_json(self) -> str:
        return json.dumps(self.snapshot(), separators=(',', ':'))

    # ──────────────────────────────────────────────────────────────────────────
    # Command panel
    # ──────────────────────────────────────────────────────────────────────────

    def execute_command(self, text: str) -> None:
        """Parse a JSON command string and dispatch to handlers."""
        if not text:
            logger.info("[CMD] execute_command: empty text")
            return
        try:
            data = json.loads(text.replace('\r', ''))
        except json.JSONDecodeError as exc:
            logger.info("[CMD] JSON parse error: %s", exc)
            self.status_msg = f"JSON error: {exc}"
            return
        if not isinstance(data, dict):
            self.status_msg = "Command must be a JSON object."
            return
        cmd = str(data.get("cmd", "")).lower().strip()
        logger.info("[CMD] cmd=%s", cmd)
        if cmd == "set":
            self._cmd_set(data)
        elif cmd == "save":
            self._cmd_save(data)
        elif cmd == "load":
            self._cmd_load(data)
        else:
            self.status_msg = f"Unknown cmd '{cmd}'. Use set/save/load."

    def _cmd_set(self, data: dict) -> None:
        """set: physics params, or ball positions/velocities."""
        params = data.get("params")
        if params is not None:
            updated, skipped = self.config.apply_params(params)
            msg = f"params: set {updated}"
            if skipped:
                msg += f"  (unknown: {skipped})"
            self.status_msg = msg
            self.pending_events.append({"type": "refresh_params", "params": updated})
            return

        balls = data.get("balls")
        if not balls:
            self.status_msg = "set: 'balls' or 'params' field required."
            return
        self.set_balls(balls)
        self.status_msg = f"set: {sorted(balls)} updated."

    def set_balls(self, balls_info: dict) -> "PinballController":
        """Update or create balls by name: ``{"ball-1": {"pos": [x, y], "vel": [vx, vy]}}``."""
        existing = {b.name: b for b in self.store.balls}
        for name, bd in balls_info.items():
            pos = bd.get("pos")
            if pos is None:
                continue
            ball = existing.get(name)
            if ball is None:
                ball = self.store.add_ball(pos)
                ball.name = name
                existing[name] = ball
                self.pending_events.append({"type": "spawn_ball", "ball": name,
                                            "pos": [float(pos[0]), float(pos[1])]})
            if name == self.store.launcher.ball_name:
                self.store.launcher.unload()
            ball.position = np.array([float(pos[0]), float(pos[1])])
            vel = bd.get("vel", [0.0, 0.0])
            ball.velocity = np.array([float(vel[0]), float(vel[1])])
            ball.invincible = float(bd.get("invincible", 0.0))
            self.trail_positions[name] = new_trail()
        return self

    def _cmd_save(self, data: dict) -> None:
        """save: write the full session snapshot to a JSON file."""
        file_opt = data.get("file", "")
        if not file_opt:
            from datetime import datetime
            fname = datetime.now().strftime("%H%M%S") + "_table.json"
        else:
            fname = file_opt if file_opt.endswith(".json") else file_opt + ".json"
        try:
            with open(fname, "w", encoding="utf-8") as f:
                json.dump(self.snapshot(), f, indent=2)
            logger.info("[CMD] save → %s", fname)
            self.status_msg = f"Saved → {fname}"
        except OSError as e:
            self.status_msg = f"Save error: {e}"

    def _cmd_load(self, data: dict) -> None:
        """load: restore a snapshot written by 'save'."""
        file_opt = data.get("file", "")
        if not file_opt:
            self.status_msg = "load: 'file' field required."
            return
        fname = file_opt if file_opt.endswith(".json") else file_opt + ".json"
        try:
            with open(fname, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except FileNotFoundError:
            self.status_msg = f"load: not found: {fname}"
            return
        except (OSError, json.JSONDecodeError) as e:
            self.status_msg = f"Load error: {e}"
            return
        try:
            self.restore(loaded)
        except (KeyError, TypeError, ValueError) as e:
            self.status_msg = f"Load error: bad snapshot ({e})"
            return
        logger.info("[CMD] load ← %s", fname)
        self.status_msg = f"Loaded ← {fname}"

    # ──────────────────────────────────────────────────────────────────────────
    # Replay scripts
    # ──────────────────────────────────────────────────────────────────────────

    def run_script(self, script: dict) -> dict:
        """Play a replay script headlessly and summarise the outcome.

        Script format::

            {
              "seed":   7,                         # optional, reseeds the rng
              "dt":     1 / 60,                    # optional frame delta
              "balls":  {"ball-1": {"pos": [x, y], "vel": [vx, vy]}},
              "inputs": [[frames, "left", "launch"], [frames], ...],
            }

        Each input row holds the listed controls for ``frames`` ticks.
        """
        seed = script.get("seed")
        if seed is not None:
            self.rng.bit_generator.state = np.random.default_rng(seed).bit_generator.state

        if self.state is SessionState.LOADING:
            self.finish_loading()
        if self.state in (SessionState.READY, SessionState.GAME_OVER):
            self.start()
        elif self.state is SessionState.PAUSED:
            self.resume()

        if script.get("balls"):
            self.set_balls(script["balls"])

        dt = float(script.get("dt", NOMINAL_FRAME_DT))
        frames_run = 0
        for row in script.get("inputs", []):
            frames, names = int(row[0]), row[1:]
            unknown = [n for n in names if n not in ("left", "right", "launch")]
            if unknown:
                raise ValueError(f"run_script: unknown input(s) {unknown}")
            intents = ControlIntents(**{n: True for n in names})
            for _ in range(frames):
                if self.state is not SessionState.RUNNING:
                    break
                self.step(dt, intents)
                frames_run += 1

        self.flush_high_score()
        logger.info("[SCRIPT] %d frames, score=%d", frames_run, self.score.score)
        return {
            "frames": frames_run,
            "score": self.score.score,
            "high_score": self.score.high_score,
            "multiplier": self.score.multiplier,
            "ball_count": self.score.ball_count,
            "balls": {b.name: {"pos": b.position.tolist(), "vel": b.velocity.tolist()}
                      for b in self.store.balls},
            "state": self.state.name,
        }

    def load_script_file(self, path: str) -> Optional[dict]:
        """Load a replay script (.py with a SCRIPT dict) and run it."""
        import importlib.util
        abs_path = os.path.abspath(path)
        if not os.path.exists(abs_path):
            self.status_msg = f"Script not found: {abs_path}"
            return None
        spec = importlib.util.spec_from_file_location("_pinball_replay_script", abs_path)
        mod = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(mod)
        except Exception as exc:
            self.status_msg = f"Script error: {exc}"
            logger.warning("[SCRIPT] %s failed to load: %s", abs_path, exc)
            return None
        script = getattr(mod, "SCRIPT", None)
        if script is None:
            self.status_msg = f"No SCRIPT variable in {os.path.basename(abs_path)}"
            return None

        table = script.get("table")
        if table and table != self.layout.name and table in PRESETS:
            self.use_layout(PRESETS[table]())
        return self.run_script(script)

    def use_layout(self, layout: TableLayout) -> None:
        """Swap tables. The session goes back to READY."""
        high = self.score.high_score
        self.layout = layout
        self.timers.invalidate()
        self.store = self._new_store()
        self.store.score.high_score = high
        self.trail_positions.clear()
        self.pending_events.append({"type": "clear_balls"})
        if self.state is not SessionState.LOADING:
            self._transition(SessionState.READY)

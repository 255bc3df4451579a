"""
Pinball Web Server (FastAPI + WebSocket)

Runs the fixed-rate simulation loop and streams table state to browser
clients over WebSocket. Clients send key_down/key_up; drawing and audio
happen client-side from the frame messages.
"""

import asyncio
import json
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from controller import PinballController, SessionState
from controls import ControlIntents
from entities import BALL_RADIUS
from highscore import JsonHighScoreStore
from physics import PHYSICS_PARAMS, PhysicsConfig, NOMINAL_FRAME_DT
from table_presets import PRESETS

logger = logging.getLogger(__name__)

# ── Controller ──────────────────────────────────────────────────────────────

TABLE_NAME = os.environ.get("PINBALL_TABLE", "space_cadet")
HISCORE_PATH = os.environ.get("PINBALL_HISCORE_FILE", "pinball_scores.json")

ctrl = PinballController(
    layout=PRESETS.get(TABLE_NAME, PRESETS["space_cadet"])(),
    high_scores=JsonHighScoreStore(HISCORE_PATH),
)


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    ctrl.finish_loading()
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

# ── Client / input state ────────────────────────────────────────────────────

clients: list[WebSocket] = []
held_keys: dict[str, bool] = {}

PARAM_DEFAULTS = PhysicsConfig().to_dict()

# ── Async game loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = NOMINAL_FRAME_DT


async def _flush_high_score() -> bool:
    """Persist a high score recorded during the last tick, off the event loop."""
    score = ctrl.take_pending_high_score()
    if score is None:
        return False
    await asyncio.to_thread(ctrl.high_scores.save, score)
    logger.info("[HISCORE] saved %d", score)
    return True


async def game_loop():
    """Main game loop running at ~60 fps."""
    last_time = time.perf_counter()

    while True:
        now = time.perf_counter()
        dt = now - last_time
        last_time = now

        try:
            ctrl.step(dt, ControlIntents.from_keys(held_keys))
        except ValueError:
            logger.exception("[LOOP] step failed, pausing session")
            ctrl.pause()

        await _flush_high_score()

        if clients:
            frame_msg = _build_frame_message()
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)

        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _r(v, nd=2) -> float:
    return round(float(v), nd)


def _build_frame_message() -> str:
    """Serialize current table state into a JSON frame message."""
    store = ctrl.store

    balls_data = []
    for b in store.balls:
        balls_data.append({
            "name": b.name,
            "pos": [_r(b.position[0]), _r(b.position[1])],
            "invincible": b.invincible > 0,
            "trail": [[_r(x), _r(y)] for x, y in ctrl.trail_positions.get(b.name, ())],
        })

    events = list(ctrl.pending_events)
    ctrl.pending_events.clear()

    frame = {
        "type": "frame",
        "state": ctrl.state.name,
        "balls": balls_data,
        "flippers": [{"side": f.side.value, "angle": _r(f.angle, 3)} for f in store.flippers],
        "bumpers": [_r(b.hit, 1) for b in store.bumpers],
        "targets": [t.lit for t in store.targets],
        "launcher": {"power": _r(store.launcher.power), "ready": store.launcher.ball_ready},
        "particles": [{"pos": [_r(p.position[0]), _r(p.position[1])],
                       "life": _r(p.life), "color": p.color} for p in store.particles],
        "popups": [{"pos": [_r(p.position[0]), _r(p.position[1])], "text": p.text,
                    "alpha": _r(p.alpha), "color": p.color} for p in store.popups],
        "score": store.score.to_dict(),
        "events": events,
        "sounds": list(ctrl.sound_events),
        "status": ctrl.status_msg,
        "info": ctrl.info_msg,
    }
    return json.dumps(frame, separators=(',', ':'))


# ── Key press handlers ──────────────────────────────────────────────────────

def _handle_key_down(key: str):
    """Handle a key press event from the client."""
    if key == "space" and ctrl.state in (SessionState.READY, SessionState.GAME_OVER):
        # Starting a game must not also start charging the plunger.
        ctrl.start()
        return
    if key == "p":
        ctrl.toggle_pause()
        return
    held_keys[key] = True


def _handle_key_up(key: str):
    """Handle a key release event from the client."""
    held_keys[key] = False


# ── Physics params helpers ──────────────────────────────────────────────────

def _get_params_data() -> list:
    """Return all physics params with current values."""
    result = []
    for attr, label, mn, mx, step in PHYSICS_PARAMS:
        result.append({
            "attr": attr, "label": label,
            "value": round(getattr(ctrl.config, attr), 6),
            "min": mn, "max": mx, "step": step,
        })
    return result


def _adjust_param(idx: int, direction: int, fine: bool):
    """Nudge one param by its step (a tenth of it when fine). None if idx is out of range."""
    if not 0 <= idx < len(PHYSICS_PARAMS):
        return None
    attr, label, mn, mx, step = PHYSICS_PARAMS[idx]
    s = step / 10.0 if fine else step
    cur = getattr(ctrl.config, attr)
    new_val = max(mn, min(mx, cur + direction * s))
    ctrl.config.apply_params({attr: new_val})
    logger.info("[PARAMS] %s = %s", attr, new_val)
    return new_val


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)

    init_msg = json.dumps({
        "type": "init",
        "table": ctrl.layout.to_dict(),
        "ball_radius": BALL_RADIUS,
        "frame_dt": FRAME_DT,
        "state": ctrl.state.name,
    })
    await ws.send_text(init_msg)

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue

            cmd = msg.get("cmd", "")
            if cmd == "key_down":
                _handle_key_down(msg.get("key", ""))
            elif cmd == "key_up":
                _handle_key_up(msg.get("key", ""))
            elif cmd == "execute":
                ctrl.execute_command(msg.get("text", ""))
            elif cmd == "get_state":
                await ws.send_text(json.dumps({
                    "type": "state_json",
                    "data": ctrl.get_state_json(),
                }))
            elif cmd == "get_params":
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
            elif cmd == "adjust_param":
                idx = int(msg.get("index", 0))
                new_val = _adjust_param(idx, int(msg.get("direction", 0)),
                                        bool(msg.get("fine", False)))
                if new_val is not None:
                    await ws.send_text(json.dumps({
                        "type": "param_update",
                        "index": idx,
                        "value": round(new_val, 6),
                    }))
            elif cmd == "reset_params":
                ctrl.config.apply_params(PARAM_DEFAULTS)
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        held_keys.clear()


# ── Root route ──────────────────────────────────────────────────────────────

@app.get("/")
async def root():
    return {"table": ctrl.layout.to_dict(), "state": ctrl.state.name}


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.environ.get("PINBALL_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)

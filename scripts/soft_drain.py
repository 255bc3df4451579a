"""Soft drain: a ball dropped between idle flippers on the empty table."""

SCRIPT = {
    "table": "empty",
    "seed":  11,
    "balls": {
        "ball-1": {"pos": [250.0, 500.0], "vel": [0.0, 4.0]},
    },
    "inputs": [
        [600],
    ],
}

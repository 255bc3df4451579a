"""Left bank: drop a ball onto the first left-bank target."""

SCRIPT = {
    "table": "space_cadet",
    "seed":  3,
    "balls": {
        "ball-1": {"pos": [110.0, 235.0], "vel": [0.0, 2.0]},
    },
    "inputs": [
        [40],
    ],
}

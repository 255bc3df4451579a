"""Full plunge: charge the plunger to max, release, then work both flippers."""

SCRIPT = {
    "table": "space_cadet",
    "seed":  7,
    "dt":    1 / 60,
    "inputs": [
        [45, "launch"],        # 40 frames reach max power
        [90],                  # ball travels up the chute
        [12, "left", "right"],
        [30],
        [12, "left"],
        [30],
        [12, "right"],
        [120],
    ],
}

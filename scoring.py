"""
Score state for one pinball session: score, high score, multiplier, balls.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

MAX_MULTIPLIER: int = 5
MAX_BALLS: int = 3
START_BALLS: int = 1


def popup_color(points: int) -> str:
    """Colour tier of a score popup."""
    if points >= 500:
        return "#ffff00"
    if points >= 250:
        return "#00ffff"
    return "#ffffff"


@dataclass
class ScoreState:
    score: int = 0
    high_score: int = 0
    multiplier: int = 1
    ball_count: int = START_BALLS
    max_balls: int = MAX_BALLS
    high_score_beaten: bool = False
    # Persistence hook, called with the new high score. Not part of snapshots.
    on_high_score: Optional[Callable[[int], None]] = field(default=None, repr=False, compare=False)

    def add(self, points: int) -> bool:
        """Add points. Returns True when this award raised the high score."""
        if points <= 0:
            return False
        self.score += int(points)
        if self.score > self.high_score:
            self.high_score = self.score
            if self.on_high_score is not None:
                self.on_high_score(self.high_score)
            return True
        return False

    def scaled(self, points: int) -> int:
        return int(points) * self.multiplier

    def bump_multiplier(self) -> int:
        self.multiplier = min(self.multiplier + 1, MAX_MULTIPLIER)
        return self.multiplier

    def lose_ball(self) -> int:
        self.ball_count = max(0, self.ball_count - 1)
        return self.ball_count

    def reset(self) -> None:
        """Session reset: everything except the high score."""
        self.score = 0
        self.multiplier = 1
        self.ball_count = START_BALLS
        self.high_score_beaten = False

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "high_score": self.high_score,
            "multiplier": self.multiplier,
            "ball_count": self.ball_count,
            "max_balls": self.max_balls,
            "high_score_beaten": self.high_score_beaten,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScoreState":
        return cls(
            score=int(data.get("score", 0)),
            high_score=int(data.get("high_score", 0)),
            multiplier=int(data.get("multiplier", 1)),
            ball_count=int(data.get("ball_count", START_BALLS)),
            max_balls=int(data.get("max_balls", MAX_BALLS)),
            high_score_beaten=bool(data.get("high_score_beaten", False)),
        )

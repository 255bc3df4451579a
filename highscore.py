"""
High-score persistence capability injected into the session controller.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

HIGH_SCORE_KEY = "pinballHighScore"


class HighScoreStore(ABC):
    """Key-value home of the single persisted high score."""

    @abstractmethod
    def load(self) -> int:
        pass

    @abstractmethod
    def save(self, score: int) -> None:
        pass


class MemoryHighScoreStore(HighScoreStore):
    def __init__(self, score: int = 0):
        self.score = int(score)
        self.saves = 0

    def load(self) -> int:
        return self.score

    def save(self, score: int) -> None:
        self.score = int(score)
        self.saves += 1


class JsonHighScoreStore(HighScoreStore):
    """High score kept under ``key`` in a small JSON object file.

    Other keys in the file are preserved on save.
    """

    def __init__(self, path, key: str = HIGH_SCORE_KEY):
        self.path = Path(path)
        self.key = key

    def _read(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("[HISCORE] unreadable %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> int:
        try:
            return max(0, int(self._read().get(self.key, 0)))
        except (TypeError, ValueError):
            logger.warning("[HISCORE] bad value under %s in %s", self.key, self.path)
            return 0

    def save(self, score: int) -> None:
        data = self._read()
        data[self.key] = int(score)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f)
        except OSError as e:
            logger.warning("[HISCORE] write failed %s: %s", self.path, e)

"""
Deferred actions scheduled from inside a tick and run on a later tick.

Actions are plain data (kind + payload) so a pending queue can be saved and
restored with the rest of the session.
"""

import heapq
from dataclasses import dataclass, field
from typing import List


@dataclass(order=True)
class DeferredAction:
    due: float
    seq: int
    kind: str = field(compare=False)
    payload: dict = field(compare=False, default_factory=dict)
    generation: int = field(compare=False, default=0)

    def to_dict(self) -> dict:
        return {"due": self.due, "seq": self.seq, "kind": self.kind,
                "payload": dict(self.payload), "generation": self.generation}

    @classmethod
    def from_dict(cls, data: dict) -> "DeferredAction":
        return cls(float(data["due"]), int(data["seq"]), str(data["kind"]),
                   dict(data.get("payload", {})), int(data.get("generation", 0)))


class TimerQueue:
    """Sim-time ordered queue, polled once per tick. Never blocks."""

    def __init__(self):
        self._heap: List[DeferredAction] = []
        self._seq = 0
        self.generation = 0

    def __len__(self) -> int:
        return sum(1 for a in self._heap if a.generation == self.generation)

    def schedule(self, now: float, delay: float, kind: str, payload: dict | None = None) -> DeferredAction:
        action = DeferredAction(now + delay, self._seq, kind, dict(payload or {}), self.generation)
        self._seq += 1
        heapq.heappush(self._heap, action)
        return action

    def pop_due(self, now: float) -> List[DeferredAction]:
        """Remove and return due actions of the current generation, oldest first."""
        due = []
        while self._heap and self._heap[0].due <= now:
            action = heapq.heappop(self._heap)
            if action.generation == self.generation:
                due.append(action)
        return due

    def invalidate(self) -> None:
        """Drop every pending action, including ones referencing reset state."""
        self.generation += 1
        self._heap.clear()

    def to_list(self) -> list:
        return [a.to_dict() for a in sorted(self._heap) if a.generation == self.generation]

    def load(self, items: list, generation: int = 0) -> None:
        self._heap = [DeferredAction.from_dict(d) for d in items]
        for a in self._heap:
            a.generation = generation
        heapq.heapify(self._heap)
        self.generation = generation
        self._seq = max((a.seq for a in self._heap), default=-1) + 1

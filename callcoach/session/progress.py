"""Monotonic 0-100 progress for file mode, split into pipeline phases."""
from __future__ import annotations

PHASES: dict[str, tuple[float, float]] = {
    "transcription": (0.0, 60.0),
    "annotation": (60.0, 70.0),
    "correction": (70.0, 75.0),
    "analysis": (75.0, 90.0),
    "persistence": (90.0, 100.0),
}


class ProgressTracker:
    """Never decreases; out-of-range values are clamped."""

    def __init__(self) -> None:
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    def update(self, value: float) -> float:
        value = min(100.0, max(0.0, float(value)))
        if value > self._value:
            self._value = round(value, 1)
        return self._value

    def phase(self, name: str, fraction: float = 1.0) -> float:
        """Progress at `fraction` (0..1) through phase `name`."""
        lo, hi = PHASES[name]
        fraction = min(1.0, max(0.0, fraction))
        return self.update(lo + (hi - lo) * fraction)

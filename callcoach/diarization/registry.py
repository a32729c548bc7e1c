"""
SpeakerRegistry: raw provider speaker id -> stable display label.

Labels are assigned in order of first appearance (Speaker A, Speaker B, ...) and never
reassigned within a session. Cleared on session reset.
"""
from __future__ import annotations

import re

SPEAKER_PREFIX = "Speaker "

_REGISTRY_LABEL = re.compile(r"^Speaker [A-Z]{1,2}$")


def speaker_label(index: int) -> str:
    """Stable label for speaker index: Speaker A .. Speaker Z, then Speaker AA, Speaker AB, ..."""
    if index < 26:
        return f"{SPEAKER_PREFIX}{chr(65 + index)}"
    return f"{SPEAKER_PREFIX}{chr(65 + index // 26 - 1)}{chr(65 + index % 26)}"


def is_registry_label(label: str | None) -> bool:
    """True when label is still a placeholder (not mapped to a semantic role)."""
    return bool(label) and bool(_REGISTRY_LABEL.match(label))


class SpeakerRegistry:
    def __init__(self) -> None:
        self._labels: dict[str, str] = {}

    def resolve(self, raw_id: str | None) -> str:
        """Return the label for raw_id, registering it on first sight."""
        key = (raw_id or "").strip() or "unknown"
        label = self._labels.get(key)
        if label is None:
            label = speaker_label(len(self._labels))
            self._labels[key] = label
        return label

    def get(self, raw_id: str) -> str | None:
        return self._labels.get(raw_id)

    def entries(self) -> list[tuple[str, str]]:
        return list(self._labels.items())

    def __len__(self) -> int:
        return len(self._labels)

    def clear(self) -> None:
        self._labels.clear()

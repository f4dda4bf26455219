"""
Lifecycle states shared with the frontend.

NEW       - uploaded to temporary storage, no database row yet
PERSISTED - in permanent storage with a photos row and at least one link
REMOVED   - marked for deletion on the next save; never stored
"""
from enum import Enum
from typing import Optional


class ElementState(str, Enum):
    NEW = "NEW"
    PERSISTED = "PERSISTED"
    REMOVED = "REMOVED"


# Single-letter codes sent by older clients
_LEGACY_CODES = {
    "N": ElementState.NEW,
    "P": ElementState.PERSISTED,
    "R": ElementState.REMOVED,
}

_DESCRIPTIONS = {
    ElementState.NEW: "New (not yet saved)",
    ElementState.PERSISTED: "Persisted (saved to storage)",
    ElementState.REMOVED: "Removed (marked for deletion)",
}


def parse_state(value) -> Optional[ElementState]:
    """Return the state for a wire value, or None when it is missing or unknown."""
    if value is None:
        return None
    if isinstance(value, ElementState):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    legacy = _LEGACY_CODES.get(raw.upper())
    if legacy is not None:
        return legacy
    try:
        return ElementState(raw.upper())
    except ValueError:
        return None


def is_new(value) -> bool:
    return parse_state(value) is ElementState.NEW


def is_persisted(value) -> bool:
    return parse_state(value) is ElementState.PERSISTED


def is_removed(value) -> bool:
    return parse_state(value) is ElementState.REMOVED


def is_valid_state(value) -> bool:
    return parse_state(value) is not None


def all_states() -> list[str]:
    return [s.value for s in ElementState]


def describe(value) -> str:
    state = parse_state(value)
    if state is None:
        return "Unknown state"
    return _DESCRIPTIONS[state]

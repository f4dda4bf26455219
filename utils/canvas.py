"""
Canvas elements stored in memories.memory_data.

The canvas is a list of elements of three kinds (photo, text, pen) with a
shared geometry block. Only photo elements matter to storage: each one
references a photo id and carries the lifecycle state the client assigned.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from core.states import ElementState, parse_state

PHOTO = "photo"
TEXT = "text"
PEN = "pen"


@dataclass
class ElementBase:
    id: str
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 100
    rotation: float = 0


@dataclass
class PhotoElement:
    base: ElementBase
    photo_id: str
    state: Optional[ElementState] = None
    original_width: Optional[int] = None
    original_height: Optional[int] = None
    size: int = 0
    type: str = PHOTO

    def to_metadata(self) -> dict:
        """Upload properties the editor kept on the element, unset ones omitted."""
        meta = {
            "originalWidth": self.original_width,
            "originalHeight": self.original_height,
            "size": self.size or None,
        }
        return {k: v for k, v in meta.items() if v is not None}


@dataclass
class TextElement:
    base: ElementBase
    text: str = "New Text"
    font_size: int = 24
    font_family: str = "Arial"
    fill: str = "#000000"
    align: str = "left"
    type: str = TEXT


@dataclass
class PenElement:
    base: ElementBase
    points: list[float] = field(default_factory=list)
    stroke_color: str = "#000000"
    stroke_width: float = 2
    closed: bool = False
    type: str = PEN


CanvasElement = Union[PhotoElement, TextElement, PenElement]


def _base(raw: dict) -> ElementBase:
    return ElementBase(
        id=str(raw.get("id") or ""),
        x=raw.get("x") or 0,
        y=raw.get("y") or 0,
        width=raw.get("width") or 100,
        height=raw.get("height") or 100,
        rotation=raw.get("rotation") or 0,
    )


def parse_element(raw: dict) -> CanvasElement:
    kind = (raw.get("type") or "").strip().lower()
    if kind == PHOTO:
        return PhotoElement(
            base=_base(raw),
            photo_id=str(raw.get("photoId") or raw.get("id") or ""),
            state=parse_state(raw.get("state")),
            original_width=raw.get("originalWidth"),
            original_height=raw.get("originalHeight"),
            size=raw.get("size") or 0,
        )
    if kind == TEXT:
        # Font size is clamped the same way the editor clamps it
        return TextElement(
            base=_base(raw),
            text=raw.get("text") or "New Text",
            font_size=max(8, min(int(raw.get("fontSize") or 24), 144)),
            font_family=raw.get("fontFamily") or "Arial",
            fill=raw.get("fill") or "#000000",
            align=raw.get("align") or "left",
        )
    if kind == PEN:
        return PenElement(
            base=_base(raw),
            points=list(raw.get("points") or []),
            stroke_color=raw.get("strokeColor") or "#000000",
            stroke_width=raw.get("strokeWidth") or 2,
            closed=bool(raw.get("closed") or False),
        )
    raise ValueError(f"Unknown element type: {kind!r}")


def parse_elements(memory_data: Optional[dict]) -> list[CanvasElement]:
    if not isinstance(memory_data, dict):
        return []
    raw_elements = memory_data.get("elements") or []
    return [parse_element(r) for r in raw_elements if isinstance(r, dict)]


def photo_elements(memory_data: Optional[dict]) -> list[PhotoElement]:
    return [e for e in parse_elements(memory_data) if isinstance(e, PhotoElement)]


def settle_photo_states(memory_data: Optional[dict], persisted_ids: set, dropped_ids: set) -> Optional[dict]:
    """Rewrite photo elements after a save.

    Elements whose photo was removed are dropped, elements whose photo is now
    persisted are marked PERSISTED, everything else is left as the client sent it.
    """
    if not isinstance(memory_data, dict):
        return memory_data
    kept = []
    for raw in memory_data.get("elements") or []:
        if isinstance(raw, dict) and (raw.get("type") or "").lower() == PHOTO:
            photo_id = str(raw.get("photoId") or raw.get("id") or "")
            if photo_id in dropped_ids:
                continue
            if photo_id in persisted_ids:
                raw = {**raw, "state": ElementState.PERSISTED.value}
        kept.append(raw)
    return {**memory_data, "elements": kept}

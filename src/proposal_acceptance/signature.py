from __future__ import annotations

import asyncio
import base64
import io
import logging
import math
from dataclasses import dataclass
from typing import List, NamedTuple, Protocol

from PIL import Image, ImageDraw
from pydantic import BaseModel

logger = logging.getLogger(__name__)

BEGIN_EVENTS = frozenset({"mousedown", "pointerdown", "touchstart"})
MOVE_EVENTS = frozenset({"mousemove", "pointermove", "touchmove"})
END_EVENTS = frozenset(
    {"mouseup", "mouseleave", "pointerup", "pointerleave", "pointercancel", "touchend", "touchcancel"}
)


class Point(NamedTuple):
    x: float
    y: float


class DrawingSurface(Protocol):
    """Where the signature is drawn: its on-screen origin and pixel density."""

    left: float
    top: float
    device_pixel_ratio: float

    def measure(self) -> tuple[float, float]:
        """Return the laid-out (width, height) in CSS pixels; width is 0 until laid out."""
        ...


@dataclass
class StaticSurface:
    width: float
    height: float = 0.0
    device_pixel_ratio: float = 1.0
    left: float = 0.0
    top: float = 0.0

    def measure(self) -> tuple[float, float]:
        return self.width, self.height


class SignatureArtifact(BaseModel):
    image: str
    has_ink: bool
    width: int
    height: int


class SignaturePad:
    """Freehand stroke recorder backed by a Pillow raster."""

    def __init__(
        self,
        *,
        height: int = 250,
        stroke_color: str = "#000000",
        line_width: float = 2.0,
    ) -> None:
        self._css_height = height
        self._stroke_color = stroke_color
        self._line_width = line_width
        self._image: Image.Image | None = None
        self._draw: ImageDraw.ImageDraw | None = None
        self._dpr = 1.0
        self._has_ink = False
        self._drawing = False
        self._last: Point | None = None
        self._strokes: List[List[Point]] = []
        self.surface: DrawingSurface | None = None

    @property
    def initialized(self) -> bool:
        return self._image is not None

    @property
    def has_ink(self) -> bool:
        return self._has_ink

    @property
    def is_drawing(self) -> bool:
        return self._drawing

    @property
    def stroke_count(self) -> int:
        return len(self._strokes)

    @property
    def size(self) -> tuple[int, int] | None:
        return self._image.size if self._image is not None else None

    def try_initialize(self, surface: DrawingSurface) -> bool:
        width, _ = surface.measure()
        if not width or width <= 0:
            return False
        self._dpr = surface.device_pixel_ratio or 1.0
        self._new_canvas(width)
        self.surface = surface
        return True

    async def initialize(self, surface: DrawingSurface, *, attempts: int = 10, delay: float = 0.2) -> bool:
        """Size the pad once the surface is laid out.

        Retries ``attempts`` times, ``delay`` seconds apart, then gives up and
        returns False. Giving up is not an error: a later call can still
        initialise the pad.
        """
        for attempt in range(attempts + 1):
            if self.try_initialize(surface):
                logger.debug("Signature surface ready", extra={"attempt": attempt, "size": self.size})
                return True
            if attempt < attempts:
                await asyncio.sleep(delay)
        logger.debug("Signature surface not laid out, giving up", extra={"attempts": attempts})
        return False

    def begin(self, point: Point) -> None:
        if self._draw is None:
            return
        self._drawing = True
        self._last = point
        self._strokes.append([point])

    def extend(self, point: Point) -> None:
        if not self._drawing or self._draw is None or self._last is None:
            return
        self._segment(self._last, point)
        self._strokes[-1].append(point)
        self._last = point
        self._has_ink = True

    def end(self) -> None:
        self._drawing = False
        self._last = None

    def clear(self) -> None:
        if self._image is None:
            return
        width = self._image.size[0] / self._dpr
        self._new_canvas(width)

    def export(self) -> SignatureArtifact:
        if self._image is None:
            raise RuntimeError("Signature pad has not been initialised")
        buffer = io.BytesIO()
        self._image.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        width, height = self._image.size
        return SignatureArtifact(
            image=f"data:image/png;base64,{encoded}",
            has_ink=self._has_ink,
            width=width,
            height=height,
        )

    def _new_canvas(self, css_width: float) -> None:
        size = (
            max(1, math.ceil(css_width * self._dpr)),
            max(1, math.ceil(self._css_height * self._dpr)),
        )
        self._image = Image.new("RGBA", size, (0, 0, 0, 0))
        self._draw = ImageDraw.Draw(self._image)
        self._has_ink = False
        self._drawing = False
        self._last = None
        self._strokes = []

    def _segment(self, start: Point, end: Point) -> None:
        assert self._draw is not None
        width = max(1, round(self._line_width * self._dpr))
        a = (start.x * self._dpr, start.y * self._dpr)
        b = (end.x * self._dpr, end.y * self._dpr)
        self._draw.line([a, b], fill=self._stroke_color, width=width, joint="curve")
        # Round caps
        radius = width / 2
        for x, y in (a, b):
            self._draw.ellipse([x - radius, y - radius, x + radius, y + radius], fill=self._stroke_color)


class GestureEvent(BaseModel):
    type: str
    client_x: float = 0.0
    client_y: float = 0.0


class GestureAdapter:
    """Feeds mouse, pointer and touch events into a pad as begin/extend/end."""

    def __init__(self, pad: SignaturePad) -> None:
        self._pad = pad

    def dispatch(self, event: GestureEvent) -> bool:
        kind = event.type.lower()
        if kind in BEGIN_EVENTS:
            self._pad.begin(self._to_point(event))
        elif kind in MOVE_EVENTS:
            self._pad.extend(self._to_point(event))
        elif kind in END_EVENTS:
            self._pad.end()
        else:
            return False
        return True

    def _to_point(self, event: GestureEvent) -> Point:
        surface = self._pad.surface
        left = surface.left if surface is not None else 0.0
        top = surface.top if surface is not None else 0.0
        return Point(event.client_x - left, event.client_y - top)


__all__ = [
    "DrawingSurface",
    "GestureAdapter",
    "GestureEvent",
    "Point",
    "SignatureArtifact",
    "SignaturePad",
    "StaticSurface",
]

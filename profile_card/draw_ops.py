"""
Draw operations produced by the Layout Engine and consumed, in order, by the
Renderer. Later operations paint over earlier ones; there are no blend modes.

Colours are RGBA tuples. Stroke bounds are outer bounds: the outline is drawn
inward from them, `width` pixels thick.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from PIL import Image

from .template_model import FontSpec

Color = Tuple[int, int, int, int]


@dataclass(frozen=True)
class ClipShape:
    kind: str  # 'circle' or 'rounded'
    radius: float = 0


@dataclass(frozen=True)
class FillRect:
    x: float
    y: float
    width: float
    height: float
    color: Color


@dataclass(frozen=True)
class RoundedRect:
    x: float
    y: float
    width: float
    height: float
    radius: float
    color: Color


@dataclass(frozen=True)
class StrokeRect:
    x: float
    y: float
    width: float
    height: float
    color: Color
    line_width: float
    radius: float = 0


@dataclass(frozen=True)
class StrokeCircle:
    x: float
    y: float
    size: float
    color: Color
    line_width: float


@dataclass(frozen=True)
class BlitImage:
    image: Image.Image
    x: float
    y: float
    width: float
    height: float
    clip: Optional[ClipShape] = None


@dataclass(frozen=True)
class FillText:
    text: str
    x: float
    y: float
    font: FontSpec
    color: Color
    anchor: str = 'ls'


@dataclass(frozen=True)
class ProgressBar:
    x: float
    y: float
    width: float
    height: float
    radius: float
    fraction: float
    bg_color: Color
    fill_color: Color
    border_color: Color
    border_width: float = 2


DrawOperation = Union[FillRect, RoundedRect, StrokeRect, StrokeCircle, BlitImage, FillText, ProgressBar]

"""
Layout Engine: merges a template document with one request's values into an
ordered list of draw operations.

Layer order is background, template overlay, sidebar, avatar, text slots,
XP bar, coins. Resolution failures for the background override and the
avatar end the render with a CardError; every other asset degrades to a
skipped layer or a text run.
"""

import logging
import re
from typing import Callable, List, Optional, Sequence

from PIL import ImageColor

from . import config
from .draw_ops import (BlitImage, ClipShape, Color, DrawOperation, FillRect, FillText,
                       ProgressBar, RoundedRect, StrokeCircle, StrokeRect)
from .errors import IMAGE_GENERATION_FAILED, INVALID_BACKGROUND, CardError, ResolutionError
from .render_request import RenderRequest
from .resolver import ResourceResolver, is_color_string, is_glyph, is_url
from .template_model import CoinsSpec, FontSpec, StatsSpec, TemplateDocument, TextSlot

logger = logging.getLogger(__name__)
if config.DEBUG_RENDERING:
    logger.setLevel(logging.DEBUG)

Measure = Callable[[str, FontSpec], float]

_CSS_RGBA = re.compile(
    r'^rgba\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d*\.?\d+)(%?)\s*\)$',
    re.IGNORECASE,
)


def parse_color(value) -> Optional[Color]:
    """Parse a CSS-style colour into RGBA, or None if it is not one."""
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    match = _CSS_RGBA.match(value)
    if match:
        r, g, b = (min(255, int(c)) for c in match.group(1, 2, 3))
        alpha = float(match.group(4)) / (100 if match.group(5) else 1)
        return (r, g, b, round(min(max(alpha, 0.0), 1.0) * 255))
    try:
        rgb = ImageColor.getrgb(value)
    except ValueError:
        return None
    return rgb if len(rgb) == 4 else rgb + (255,)


def _color(value, default: str) -> Color:
    return parse_color(value) or parse_color(default)


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def xp_fraction(xp: float, max_xp: float) -> float:
    """Fill fraction of the XP bar, clamped to [0, 1]; 0 when max_xp is not positive."""
    if max_xp <= 0:
        return 0.0
    return min(max(xp / max(max_xp, 1), 0.0), 1.0)


def wrap_text(text: str, max_width: float, max_lines: Optional[int],
              measure: Measure, font: FontSpec) -> List[str]:
    """
    Greedily pack words into lines no wider than max_width.

    A word wider than max_width sits alone on its own line rather than being
    broken. Once max_lines lines exist the remaining words are dropped.
    """
    lines: List[str] = []
    current: List[str] = []
    for word in text.split():
        if not current or measure(' '.join(current + [word]), font) <= max_width:
            current.append(word)
            continue
        lines.append(' '.join(current))
        current = [word]
        if max_lines and len(lines) >= max_lines:
            return lines
    if current and (not max_lines or len(lines) < max_lines):
        lines.append(' '.join(current))
    return lines


def slot_value(name: str, request: RenderRequest) -> Optional[str]:
    """The literal string a named text slot displays, or None for unknown slots."""
    if name == 'username':
        return request.username
    if name == 'tag':
        return request.username
    if name == 'bio':
        return request.bio or ''
    if name == 'level':
        return f"Lv {format_number(request.level or 0)}"
    if name == 'xp':
        if request.xp is None or request.max_xp is None:
            return ''
        return f"{format_number(request.xp)}/{format_number(request.max_xp)}"
    if name == 'coins':
        return request.coins if request.coins is not None else ''
    return None


class LayoutEngine:
    """Builds draw operations; resolves every asset it needs through the resolver."""

    def __init__(self, resolver: ResourceResolver, measure: Measure):
        self.resolver = resolver
        self.measure = measure

    def build_operations(self, document: TemplateDocument, request: RenderRequest) -> List[DrawOperation]:
        meta = document.meta
        operations: List[DrawOperation] = []

        operations += self._background(document, request, meta.width, meta.height)
        operations += self._overlay(document, meta.width, meta.height)
        operations += self._sidebar(document, meta.height)
        operations += self._avatar(document, request)

        stats_ops = self._stats(document, request)
        operations += self._text(document, request, skip_xp=bool(stats_ops))
        operations += stats_ops
        operations += self._coins(document, request)

        logger.debug(f"Layout for '{document.name}' produced {len(operations)} operations")
        return operations

    def _background(self, document: TemplateDocument, request: RenderRequest,
                    width: int, height: int) -> Sequence[DrawOperation]:
        override = request.background_override
        if not override:
            color = _color(document.default_background, config.DEFAULT_BACKGROUND)
            return [FillRect(0, 0, width, height, color)]

        if is_url(override):
            try:
                resolved = self.resolver.resolve(override)
            except ResolutionError as e:
                logger.warning(f"Background override could not be loaded: {e}")
                raise CardError(INVALID_BACKGROUND, 400) from e
            return [BlitImage(resolved.image, 0, 0, width, height)]

        color = parse_color(override) if is_color_string(override) else None
        if color is None:
            raise CardError(INVALID_BACKGROUND, 400)
        return [FillRect(0, 0, width, height, color)]

    def _overlay(self, document: TemplateDocument, width: int, height: int) -> Sequence[DrawOperation]:
        resolved = self.resolver.resolve_optional(config.TEMPLATE_OVERLAY_FILE, document.asset_base)
        if not resolved.available:
            return []
        return [BlitImage(resolved.image, 0, 0, width, height)]

    def _sidebar(self, document: TemplateDocument, canvas_height: int) -> Sequence[DrawOperation]:
        sidebar = document.sidebar
        if not sidebar.enabled:
            return []

        height = sidebar.height or max(canvas_height - sidebar.y, 0)
        operations: List[DrawOperation] = [
            RoundedRect(sidebar.x, sidebar.y, sidebar.width, height, sidebar.radius,
                        _color(sidebar.color, 'rgba(0, 0, 0, 0.35)')),
        ]

        # items stack top to bottom, each advancing the baseline by its own lineHeight
        base_y = sidebar.y + sidebar.padding
        for item in sidebar.items:
            if item.text:
                operations.append(FillText(item.text, sidebar.x + sidebar.padding, base_y + item.y_offset,
                                           item.font, _color(item.color, config.DEFAULT_TEXT_COLOR)))
            base_y += item.line_height
        return operations

    def _avatar(self, document: TemplateDocument, request: RenderRequest) -> Sequence[DrawOperation]:
        try:
            resolved = self.resolver.resolve(request.avatar_source)
        except ResolutionError as e:
            logger.warning(f"Avatar could not be loaded: {e}")
            raise CardError(IMAGE_GENERATION_FAILED, 400, 'invalid avatarURL') from e
        if not resolved.available:
            raise CardError(IMAGE_GENERATION_FAILED, 400, 'invalid avatarURL')

        avatar = document.avatar
        if not avatar.enabled:
            return []

        if avatar.shape == 'rounded':
            clip = ClipShape('rounded', avatar.radius)
        else:
            clip = ClipShape('circle', avatar.size / 2)
        operations: List[DrawOperation] = [
            BlitImage(resolved.image, avatar.x, avatar.y, avatar.size, avatar.size, clip),
        ]

        border = avatar.border
        if border is not None:
            # outer bounds inflated by half the line width put the stroke centre on the clip edge
            half = border.width / 2
            color = _color(border.color, config.DEFAULT_TEXT_COLOR)
            outer = avatar.size + border.width
            if clip.kind == 'circle':
                operations.append(StrokeCircle(avatar.x - half, avatar.y - half, outer, color, border.width))
            else:
                operations.append(StrokeRect(avatar.x - half, avatar.y - half, outer, outer, color,
                                             border.width, radius=avatar.radius + half))
        return operations

    def _text(self, document: TemplateDocument, request: RenderRequest,
              skip_xp: bool) -> Sequence[DrawOperation]:
        operations: List[DrawOperation] = []
        for slot in document.text_slots:
            if not slot.enabled or (skip_xp and slot.name == 'xp'):
                continue
            value = slot_value(slot.name, request)
            if value is None:
                logger.debug(f"No value bound to text slot '{slot.name}'")
                continue
            if not value:
                continue
            operations += self._slot_operations(slot, slot.prefix + value)
        return operations

    def _slot_operations(self, slot: TextSlot, value: str) -> List[DrawOperation]:
        color = _color(slot.color, config.DEFAULT_TEXT_COLOR)
        if slot.max_width is None:
            return [FillText(value, slot.x, slot.y, slot.font, color)]

        line_height = slot.line_height or slot.font.size * 1.25
        lines = wrap_text(value, slot.max_width, slot.max_lines, self.measure, slot.font)
        return [FillText(line, slot.x, slot.y + index * line_height, slot.font, color)
                for index, line in enumerate(lines)]

    def _stats(self, document: TemplateDocument, request: RenderRequest) -> List[DrawOperation]:
        if request.level is None or request.xp is None or request.max_xp is None:
            return []
        stats = document.stats
        if not stats.enabled:
            return []

        xp_slot = document.text_slot('xp')
        x = stats.x if stats.x is not None else (xp_slot.x if xp_slot else 200)
        y = stats.y if stats.y is not None else (xp_slot.y if xp_slot else 320)

        operations: List[DrawOperation] = [
            ProgressBar(x, y, stats.width, stats.height, stats.radius,
                        xp_fraction(request.xp, request.max_xp),
                        _color(stats.bg_color, StatsSpec.bg_color),
                        _color(stats.fill_color, StatsSpec.fill_color),
                        _color(stats.border_color, StatsSpec.border_color),
                        stats.border_width),
        ]

        if xp_slot is None or (xp_slot.enabled and xp_slot.show_xp_text):
            label = f"{format_number(request.xp)}/{format_number(request.max_xp)}"
            operations.append(FillText(label, x, y + stats.height + stats.label_gap, stats.label_font,
                                       _color(stats.label_color, config.DEFAULT_TEXT_COLOR)))
        return operations

    def _coins(self, document: TemplateDocument, request: RenderRequest) -> List[DrawOperation]:
        if request.coins is None:
            return []
        coins = document.coins or CoinsSpec()
        if not coins.enabled:
            return []

        icon_ref = request.coin_icon or coins.icon or config.DEFAULT_COIN_GLYPH
        font = coins.text_font()
        color = _color(coins.color, CoinsSpec.color)
        middle = coins.y + coins.size / 2

        if not is_glyph(icon_ref):
            resolved = self.resolver.resolve_optional(icon_ref, document.asset_base)
            if resolved.available:
                return [
                    BlitImage(resolved.image, coins.x, coins.y, coins.size, coins.size),
                    FillText(request.coins, coins.x + coins.size + coins.gap, middle, font, color, anchor='lm'),
                ]
            logger.warning(f"Coin icon unavailable, drawing it as text: {icon_ref}")

        return [FillText(f"{icon_ref} {request.coins}", coins.x, middle, font, color, anchor='lm')]


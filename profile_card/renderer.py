import io
import logging
import os
from functools import lru_cache
from typing import Sequence

from PIL import Image, ImageChops, ImageDraw, ImageFont

from . import config
from .draw_ops import (BlitImage, DrawOperation, FillRect, FillText, ProgressBar, RoundedRect,
                       StrokeCircle, StrokeRect)
from .errors import EncodeFailed
from .template_model import FontSpec

logger = logging.getLogger(__name__)
if config.DEBUG_RENDERING:
    logger.setLevel(logging.DEBUG)


@lru_cache(maxsize=64)
def load_font(fonts_dir: str, spec: FontSpec) -> ImageFont.ImageFont:
    """
    Load a font face for a FontSpec.

    Looks for <family>[-Bold].ttf/.otf in fonts_dir, then DejaVu Sans from the
    system font path, then Pillow's built-in default face at the same size.
    """
    size = max(1, int(round(spec.size)))
    if spec.bold:
        names = [f"{spec.family}-Bold", f"{spec.family}Bold", f"{spec.family} Bold"]
    else:
        names = [spec.family, f"{spec.family}-Regular"]

    candidates = [os.path.join(fonts_dir, name + ext) for name in names for ext in ('.ttf', '.otf')]
    candidates.append(config.FALLBACK_FONT_BOLD if spec.bold else config.FALLBACK_FONT_REGULAR)

    for path in candidates:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue

    logger.warning(f"No font face found for {spec}; using Pillow default")
    return ImageFont.load_default(size=size)


def _box(x, y, width, height):
    x0, y0 = round(x), round(y)
    return (x0, y0, max(x0, round(x + width) - 1), max(y0, round(y + height) - 1))


class CardRenderer:
    """
    Executes draw operations, strictly in order, on a fresh transparent RGBA
    surface and encodes the result as PNG. Each operation is painted on its
    own layer and alpha-composited over what is already there.
    """

    def __init__(self, fonts_dir: str = config.FONTS_DIR):
        self.fonts_dir = fonts_dir
        self._measure_draw = ImageDraw.Draw(Image.new('RGBA', (1, 1)))
        self._painters = {
            FillRect: self._fill_rect,
            RoundedRect: self._rounded_rect,
            StrokeRect: self._stroke_rect,
            StrokeCircle: self._stroke_circle,
            BlitImage: self._blit_image,
            FillText: self._fill_text,
            ProgressBar: self._progress_bar,
        }

    def font(self, spec: FontSpec) -> ImageFont.ImageFont:
        return load_font(self.fonts_dir, spec)

    def measure_text(self, text: str, spec: FontSpec) -> float:
        """Advance width of `text` in pixels."""
        return self._measure_draw.textlength(text, font=self.font(spec))

    def execute(self, operations: Sequence[DrawOperation], width: int, height: int) -> bytes:
        """
        Paint every operation and return PNG bytes.

        Raises:
            EncodeFailed: the finished surface could not be encoded
        """
        surface = Image.new('RGBA', (width, height), (0, 0, 0, 0))
        for operation in operations:
            painter = self._painters.get(type(operation))
            if painter is None:
                raise TypeError(f"Unsupported draw operation: {type(operation).__name__}")
            layer = Image.new('RGBA', surface.size, (0, 0, 0, 0))
            painter(layer, operation)
            surface = Image.alpha_composite(surface, layer)

        buffer = io.BytesIO()
        try:
            surface.save(buffer, format='PNG')
        except (OSError, ValueError) as e:
            raise EncodeFailed(f"PNG encoding failed: {e}") from e
        logger.debug(f"Rendered {len(operations)} operations into {width}x{height} PNG "
                     f"({buffer.tell()} bytes)")
        return buffer.getvalue()

    def _fill_rect(self, layer: Image.Image, op: FillRect) -> None:
        ImageDraw.Draw(layer).rectangle(_box(op.x, op.y, op.width, op.height), fill=op.color)

    def _rounded_rect(self, layer: Image.Image, op: RoundedRect) -> None:
        radius = min(op.radius, op.width / 2, op.height / 2)
        ImageDraw.Draw(layer).rounded_rectangle(_box(op.x, op.y, op.width, op.height),
                                                radius=max(0, radius), fill=op.color)

    def _stroke_rect(self, layer: Image.Image, op: StrokeRect) -> None:
        draw = ImageDraw.Draw(layer)
        box = _box(op.x, op.y, op.width, op.height)
        line_width = max(1, int(round(op.line_width)))
        radius = min(op.radius, op.width / 2, op.height / 2)
        if radius > 0:
            draw.rounded_rectangle(box, radius=radius, outline=op.color, width=line_width)
        else:
            draw.rectangle(box, outline=op.color, width=line_width)

    def _stroke_circle(self, layer: Image.Image, op: StrokeCircle) -> None:
        ImageDraw.Draw(layer).ellipse(_box(op.x, op.y, op.size, op.size), outline=op.color,
                                      width=max(1, int(round(op.line_width))))

    def _blit_image(self, layer: Image.Image, op: BlitImage) -> None:
        size = (max(1, int(round(op.width))), max(1, int(round(op.height))))
        image = op.image if op.image.size == size else op.image.resize(size, Image.Resampling.LANCZOS)
        if image.mode != 'RGBA':
            image = image.convert('RGBA')

        if op.clip is not None:
            mask = Image.new('L', size, 0)
            mask_draw = ImageDraw.Draw(mask)
            bounds = (0, 0, size[0] - 1, size[1] - 1)
            if op.clip.kind == 'circle':
                mask_draw.ellipse(bounds, fill=255)
            else:
                radius = min(op.clip.radius, size[0] / 2, size[1] / 2)
                mask_draw.rounded_rectangle(bounds, radius=max(0, radius), fill=255)
            image = image.copy()
            image.putalpha(ImageChops.multiply(image.getchannel('A'), mask))

        layer.paste(image, (int(round(op.x)), int(round(op.y))))

    def _fill_text(self, layer: Image.Image, op: FillText) -> None:
        ImageDraw.Draw(layer).text((op.x, op.y), op.text, font=self.font(op.font), fill=op.color,
                                   anchor=op.anchor)

    def _progress_bar(self, layer: Image.Image, op: ProgressBar) -> None:
        draw = ImageDraw.Draw(layer)
        radius = max(0, min(op.radius, op.width / 2, op.height / 2))
        draw.rounded_rectangle(_box(op.x, op.y, op.width, op.height), radius=radius, fill=op.bg_color)

        fill_width = op.width * min(max(op.fraction, 0.0), 1.0)
        if fill_width >= 1:
            fill_radius = min(radius, fill_width / 2)
            draw.rounded_rectangle(_box(op.x, op.y, fill_width, op.height), radius=fill_radius,
                                   fill=op.fill_color)

        if op.border_width > 0:
            draw.rounded_rectangle(_box(op.x, op.y, op.width, op.height), radius=radius,
                                   outline=op.border_color, width=max(1, int(round(op.border_width))))

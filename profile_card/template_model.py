"""
Template documents: loading, caching and the typed sections read from them.

A template is a directory (local or HTTP-served) containing template.json and
optionally template.png. The loader never repairs a document; the section
readers below apply per-field defaults when the Layout Engine asks for them,
so a partially specified template still renders.
"""

import json
import logging
import math
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple
from urllib.parse import quote

import requests

from . import config
from .errors import TemplateNotFound
from .resolver import is_url
from .resource_cache import ResourceCache

logger = logging.getLogger(__name__)

_TEMPLATE_NAME = re.compile(r'^[A-Za-z0-9_-]+$')
_FONT = re.compile(
    r'^\s*(?:(italic|oblique|normal)\s+)?'
    r'(?:(bold|bolder|lighter|normal|[1-9]00)\s+)?'
    r'(\d+(?:\.\d+)?)px\s*(.*?)\s*$',
    re.IGNORECASE,
)

KNOWN_SLOTS = ('username', 'tag', 'bio', 'level', 'xp', 'coins')


def freeze(value: Any) -> Any:
    """Recursively turn dicts into read-only mappings and lists into tuples."""
    if isinstance(value, dict):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(freeze(v) for v in value)
    return value


def _section(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _number(value: Any, default):
    """Numeric field value, or default for booleans, non-numbers, NaN and infinities."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def _positive_int(value: Any, default: int) -> int:
    number = _number(value, None)
    if number is None or number <= 0:
        return default
    return int(number)


def _optional_positive(value: Any) -> Optional[float]:
    number = _number(value, None)
    if number is None or number <= 0:
        return None
    return number


def _text(value: Any, default: Optional[str]) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else default


def _flag(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


@dataclass(frozen=True)
class FontSpec:
    """A CSS-style font shorthand, e.g. "bold 28px Arial"."""
    size: float = 16
    bold: bool = False
    family: str = 'sans-serif'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'FontSpec':
        match = _FONT.match(value or '')
        if not match:
            return cls.parse(config.DEFAULT_FONT) if value != config.DEFAULT_FONT else cls()
        _, weight, size, family = match.groups()
        weight = (weight or 'normal').lower()
        bold = weight in ('bold', 'bolder') or (weight.isdigit() and int(weight) >= 600)
        family = family.split(',')[0].strip().strip('"\'') or 'sans-serif'
        return cls(size=float(size), bold=bold, family=family)


@dataclass(frozen=True)
class Meta:
    width: int = config.DEFAULT_WIDTH
    height: int = config.DEFAULT_HEIGHT

    @classmethod
    def from_config(cls, raw: Mapping) -> 'Meta':
        raw = _section(raw)
        return cls(width=_positive_int(raw.get('width'), config.DEFAULT_WIDTH),
                   height=_positive_int(raw.get('height'), config.DEFAULT_HEIGHT))


class SidebarItemKind(Enum):
    TEXT = 'text'


@dataclass(frozen=True)
class SidebarTextItem:
    text: str = ''
    color: str = config.DEFAULT_TEXT_COLOR
    font: FontSpec = field(default_factory=FontSpec)
    y_offset: float = 0
    line_height: float = 24

    kind = SidebarItemKind.TEXT

    @classmethod
    def from_config(cls, raw: Mapping) -> 'SidebarTextItem':
        return cls(text=str(raw.get('text', '')),
                   color=_text(raw.get('color'), config.DEFAULT_TEXT_COLOR),
                   font=FontSpec.parse(_text(raw.get('font'), config.DEFAULT_FONT)),
                   y_offset=_number(raw.get('yOffset'), 0),
                   line_height=_number(raw.get('lineHeight'), 24))


_SIDEBAR_ITEM_TYPES = {
    SidebarItemKind.TEXT: SidebarTextItem,
}


@dataclass(frozen=True)
class SidebarSpec:
    enabled: bool = False
    x: float = 0
    y: float = 0
    width: float = 220
    height: Optional[float] = None
    radius: float = 16
    color: str = 'rgba(0, 0, 0, 0.35)'
    padding: float = 16
    items: Tuple[SidebarTextItem, ...] = ()

    @classmethod
    def from_config(cls, raw: Mapping) -> 'SidebarSpec':
        raw = _section(raw)
        items = []
        for entry in raw.get('items') or ():
            entry = _section(entry)
            try:
                kind = SidebarItemKind(entry.get('type'))
            except ValueError:
                logger.warning(f"Ignoring sidebar item with unknown type: {entry.get('type')!r}")
                continue
            items.append(_SIDEBAR_ITEM_TYPES[kind].from_config(entry))
        return cls(enabled=_flag(raw.get('enabled'), False),
                   x=_number(raw.get('x'), 0),
                   y=_number(raw.get('y'), 0),
                   width=_number(raw.get('width'), 220),
                   height=_optional_positive(raw.get('height')),
                   radius=_number(raw.get('radius'), 16),
                   color=_text(raw.get('color'), cls.color),
                   padding=_number(raw.get('padding'), 16),
                   items=tuple(items))


@dataclass(frozen=True)
class BorderSpec:
    width: float = 4
    color: str = config.DEFAULT_TEXT_COLOR


@dataclass(frozen=True)
class AvatarSpec:
    enabled: bool = True
    x: float = 40
    y: float = 40
    size: float = 128
    shape: str = 'circle'
    radius: float = 16
    border: Optional[BorderSpec] = None

    @classmethod
    def from_config(cls, raw: Mapping) -> 'AvatarSpec':
        raw = _section(raw)
        shape = raw.get('shape')
        border = None
        border_raw = raw.get('border')
        if isinstance(border_raw, Mapping):
            width = _number(border_raw.get('width'), 4)
            if width > 0:
                border = BorderSpec(width=width,
                                    color=_text(border_raw.get('color'), config.DEFAULT_TEXT_COLOR))
        return cls(enabled=_flag(raw.get('enabled'), True),
                   x=_number(raw.get('x'), 40),
                   y=_number(raw.get('y'), 40),
                   size=_positive_int(raw.get('size'), 128),
                   shape=shape if shape in ('circle', 'rounded') else 'circle',
                   radius=_number(raw.get('radius'), 16),
                   border=border)


@dataclass(frozen=True)
class TextSlot:
    name: str
    enabled: bool = True
    font: FontSpec = field(default_factory=FontSpec)
    color: str = config.DEFAULT_TEXT_COLOR
    x: float = 0
    y: float = 0
    prefix: str = ''
    max_width: Optional[float] = None
    max_lines: Optional[int] = None
    line_height: Optional[float] = None
    show_xp_text: bool = True

    @classmethod
    def from_config(cls, name: str, raw: Mapping) -> 'TextSlot':
        raw = _section(raw)
        max_lines = _optional_positive(raw.get('maxLines'))
        return cls(name=name,
                   enabled=_flag(raw.get('enabled'), True),
                   font=FontSpec.parse(_text(raw.get('font'), config.DEFAULT_FONT)),
                   color=_text(raw.get('color'), config.DEFAULT_TEXT_COLOR),
                   x=_number(raw.get('x'), 0),
                   y=_number(raw.get('y'), 0),
                   prefix=raw.get('prefix') if isinstance(raw.get('prefix'), str) else '',
                   max_width=_optional_positive(raw.get('maxWidth')),
                   max_lines=int(max_lines) if max_lines else None,
                   line_height=_optional_positive(raw.get('lineHeight')),
                   show_xp_text=_flag(raw.get('showXPText'), True))


@dataclass(frozen=True)
class CoinsSpec:
    enabled: bool = True
    x: float = 600
    y: float = 60
    size: float = 32
    color: str = '#ffd700'
    font: Optional[FontSpec] = None
    weight: str = 'bold'
    icon: Optional[str] = None
    gap: float = 8

    @classmethod
    def from_config(cls, raw: Mapping) -> 'CoinsSpec':
        raw = _section(raw)
        font = _text(raw.get('font'), None)
        return cls(enabled=_flag(raw.get('enabled'), True),
                   x=_number(raw.get('x'), 600),
                   y=_number(raw.get('y'), 60),
                   size=_positive_int(raw.get('size'), 32),
                   color=_text(raw.get('color'), cls.color),
                   font=FontSpec.parse(font) if font else None,
                   weight=str(raw.get('weight') or 'bold'),
                   icon=_text(raw.get('icon'), None),
                   gap=_number(raw.get('gap'), 8))

    def text_font(self) -> FontSpec:
        if self.font is not None:
            return self.font
        return FontSpec.parse(f"{self.weight} {round(self.size * 0.75)}px sans-serif")


@dataclass(frozen=True)
class StatsSpec:
    enabled: bool = True
    x: Optional[float] = None
    y: Optional[float] = None
    width: float = 400
    height: float = 24
    radius: float = 12
    bg_color: str = '#3a3a3a'
    fill_color: str = '#5865f2'
    border_color: str = '#ffffff'
    border_width: float = 2
    label_color: str = config.DEFAULT_TEXT_COLOR
    label_font: FontSpec = field(default_factory=lambda: FontSpec(size=14))
    label_gap: float = 20

    @classmethod
    def from_config(cls, raw: Mapping) -> 'StatsSpec':
        raw = _section(raw)
        x, y = _number(raw.get('x'), None), _number(raw.get('y'), None)
        return cls(enabled=_flag(raw.get('enabled'), True),
                   x=x, y=y,
                   width=_positive_int(raw.get('width'), 400),
                   height=_positive_int(raw.get('height'), 24),
                   radius=_number(raw.get('radius'), 12),
                   bg_color=_text(raw.get('bgColor'), cls.bg_color),
                   fill_color=_text(raw.get('fillColor'), cls.fill_color),
                   border_color=_text(raw.get('borderColor'), cls.border_color),
                   border_width=max(0, _number(raw.get('borderWidth'), 2)),
                   label_color=_text(raw.get('labelColor'), config.DEFAULT_TEXT_COLOR),
                   label_font=FontSpec.parse(_text(raw.get('labelFont'), '14px sans-serif')),
                   label_gap=_number(raw.get('labelGap'), 20))


@dataclass(frozen=True)
class TemplateDocument:
    """A parsed template.json; config is deeply read-only once built."""
    name: str
    config: Mapping
    asset_base: str

    @property
    def meta(self) -> Meta:
        return Meta.from_config(self.config.get('meta'))

    @property
    def default_background(self) -> Optional[str]:
        return _text(_section(self.config.get('background')).get('defaultColor'), None)

    @property
    def sidebar(self) -> SidebarSpec:
        return SidebarSpec.from_config(self.config.get('sidebar'))

    @property
    def avatar(self) -> AvatarSpec:
        return AvatarSpec.from_config(self.config.get('avatar'))

    @property
    def text_slots(self) -> Tuple[TextSlot, ...]:
        slots = _section(self.config.get('text'))
        return tuple(TextSlot.from_config(name, raw) for name, raw in slots.items())

    def text_slot(self, name: str) -> Optional[TextSlot]:
        raw = _section(self.config.get('text')).get(name)
        return TextSlot.from_config(name, raw) if raw is not None else None

    @property
    def coins(self) -> Optional[CoinsSpec]:
        raw = self.config.get('coins')
        return CoinsSpec.from_config(raw) if isinstance(raw, Mapping) else None

    @property
    def stats(self) -> StatsSpec:
        return StatsSpec.from_config(self.config.get('stats'))


class TemplateLoader:
    """Loads template documents by name, once per name, through the shared cache."""

    def __init__(self, cache: ResourceCache, root: str = config.TEMPLATE_ROOT,
                 session: Optional[requests.Session] = None,
                 timeout: Optional[float] = config.FETCH_TIMEOUT_SECONDS):
        self.cache = cache
        self.root = root
        self.session = session or requests.Session()
        self.timeout = timeout

    def asset_base(self, name: str) -> str:
        if is_url(self.root):
            return f"{self.root.rstrip('/')}/{quote(name)}/"
        return os.path.join(self.root, name)

    def load(self, name: str) -> TemplateDocument:
        """
        Return the template called `name`, reading it only on a cache miss.

        Raises:
            TemplateNotFound: unknown name, unreadable source, or not a JSON object
        """
        cached = self.cache.get_template(name)
        if cached is not None:
            return cached

        if not name or not _TEMPLATE_NAME.match(name):
            raise TemplateNotFound(name, f"invalid template name: {name!r}")

        raw = self._read(name)
        if not isinstance(raw, dict):
            raise TemplateNotFound(name, f"template {name} is not a JSON object")

        document = TemplateDocument(name=name, config=freeze(raw), asset_base=self.asset_base(name))
        self.cache.put_template(name, document)
        logger.info(f"Loaded template '{name}' from {document.asset_base}")
        return document

    def _read(self, name: str):
        base = self.asset_base(name)
        if is_url(base):
            url = base + config.TEMPLATE_CONFIG_FILE
            try:
                response = self.session.get(url, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as e:
                raise TemplateNotFound(name, f"could not fetch {url}: {e}") from e

        path = os.path.join(base, config.TEMPLATE_CONFIG_FILE)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            # ValueError covers both JSONDecodeError and UnicodeDecodeError
            raise TemplateNotFound(name, f"could not read {path}: {e}") from e

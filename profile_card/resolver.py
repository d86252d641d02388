"""
Reference resolution: turns a reference string into something drawable.

A reference is one of
    - an emoji glyph (drawn as literal text, never loaded),
    - an absolute http(s) URL (fetched and decoded),
    - a path relative to a template's asset base (read and decoded),
    - a colour expression (never passed here; callers test is_color_string first).
"""

import io
import logging
import os
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import requests
from PIL import Image, UnidentifiedImageError

from . import config
from .errors import AssetNotFound, DecodeFailed, NetworkFetchFailed, ResolutionError
from .resource_cache import ResourceCache

try:
    from cairosvg import svg2png
    SVG_SUPPORT = True
except (ImportError, OSError):
    svg2png = None
    SVG_SUPPORT = False

logger = logging.getLogger(__name__)

if not SVG_SUPPORT:
    logger.warning("cairosvg not available - SVG icons will not be decoded")

GLYPH = 'glyph'

_HEX_COLOR = re.compile(r'^#([0-9a-f]{3}){1,2}$', re.IGNORECASE)
_FUNC_COLOR = re.compile(r'^rgba?\(', re.IGNORECASE)
_NAMED_COLOR = re.compile(r'^[a-z]+$', re.IGNORECASE)
_URL = re.compile(r'^https?://', re.IGNORECASE)
_EMOJI = re.compile(
    '^['
    '\u00a9\u00ae\u203c\u2049\u2122\u2139\u2194-\u21aa\u231a-\u23ff'
    '\u24c2\u25aa-\u27bf\u2934\u2935\u2b05-\u2b55\u3030\u303d\u3297\u3299'
    '\U0001f000-\U0001faff'
    '\u200d\ufe0e\ufe0f\u20e3'
    ']+$'
)


def is_color_string(value: Optional[str]) -> bool:
    """True for #RGB / #RRGGBB, rgb()/rgba() and bare colour names."""
    if not value:
        return False
    value = value.strip()
    return bool(_HEX_COLOR.match(value) or _FUNC_COLOR.match(value) or _NAMED_COLOR.match(value))


def is_url(value: Optional[str]) -> bool:
    return bool(value) and bool(_URL.match(value.strip()))


def is_glyph(value: Optional[str]) -> bool:
    """True for short strings made only of emoji code points."""
    if not value:
        return False
    return len(value) <= config.GLYPH_MAX_LENGTH and bool(_EMOJI.match(value))


@dataclass(frozen=True)
class ResolvedImage:
    """Either a decoded RGBA image or a typed marker saying why there is none."""
    source: str
    image: Optional[Image.Image] = None
    reason: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.image is not None


class ResourceResolver:
    """Classifies references and loads images through the shared cache."""

    def __init__(self, cache: ResourceCache, session: Optional[requests.Session] = None,
                 timeout: Optional[float] = config.FETCH_TIMEOUT_SECONDS,
                 max_bytes: int = config.MAX_REMOTE_IMAGE_BYTES):
        self.cache = cache
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_bytes = max_bytes

    def resolve(self, source_ref: str, base_dir: Optional[str] = None) -> ResolvedImage:
        """
        Resolve a reference to a decoded image.

        Args:
            source_ref: URL, relative asset path, or emoji glyph
            base_dir: directory or base URL that relative paths are read from

        Returns:
            ResolvedImage; glyphs come back unavailable with reason 'glyph'

        Raises:
            AssetNotFound, NetworkFetchFailed, DecodeFailed
        """
        source_ref = (source_ref or '').strip()
        if is_glyph(source_ref):
            return ResolvedImage(source=source_ref, reason=GLYPH)

        if is_url(source_ref):
            return self._load_remote(source_ref)

        if not source_ref or base_dir is None:
            raise AssetNotFound(source_ref, f"no asset base to resolve '{source_ref}' against")

        if is_url(base_dir):
            return self._load_remote(urljoin(base_dir.rstrip('/') + '/', source_ref))

        return self._load_local(source_ref, base_dir)

    def resolve_optional(self, source_ref: str, base_dir: Optional[str] = None) -> ResolvedImage:
        """Like resolve(), but failures come back as an unavailable ResolvedImage."""
        try:
            return self.resolve(source_ref, base_dir)
        except ResolutionError as e:
            logger.warning(f"Optional asset unavailable ({e.reason}): {source_ref}")
            return ResolvedImage(source=source_ref, reason=e.reason)

    def _load_remote(self, url: str) -> ResolvedImage:
        cached = self.cache.get_image(url)
        if cached is not None:
            return ResolvedImage(source=url, image=cached)

        logger.info(f"Fetching remote image: {url}")
        try:
            response = self.session.get(url, timeout=self.timeout, stream=True,
                                        headers={'User-Agent': config.USER_AGENT})
            try:
                response.raise_for_status()
                data = self._read_capped(url, response)
            finally:
                response.close()
        except requests.RequestException as e:
            raise NetworkFetchFailed(url, f"fetch failed for {url}: {e}") from e

        image = self._decode(url, data)
        self.cache.put_image(url, image)
        return ResolvedImage(source=url, image=image)

    def _read_capped(self, url: str, response) -> bytes:
        """Read a streamed body, giving up as soon as it passes max_bytes."""
        declared = response.headers.get('Content-Length', '')
        if declared.isdigit() and int(declared) > self.max_bytes:
            raise NetworkFetchFailed(url, f"{url} declares {declared} bytes, limit is {self.max_bytes}")

        buffer = io.BytesIO()
        for chunk in response.iter_content(chunk_size=64 * 1024):
            buffer.write(chunk)
            if buffer.tell() > self.max_bytes:
                raise NetworkFetchFailed(url, f"{url} exceeds {self.max_bytes} bytes")
        return buffer.getvalue()

    def _load_local(self, relative_path: str, base_dir: str) -> ResolvedImage:
        try:
            base_real = os.path.realpath(base_dir)
            full_path = os.path.realpath(os.path.join(base_real, relative_path))
            escapes = os.path.commonpath([full_path, base_real]) != base_real
        except (OSError, ValueError) as e:
            # embedded NUL bytes and similar malformed paths
            raise AssetNotFound(relative_path, f"unusable asset path {relative_path!r}: {e}") from e
        if escapes:
            raise AssetNotFound(relative_path, f"'{relative_path}' escapes the asset directory")

        cached = self.cache.get_image(full_path)
        if cached is not None:
            return ResolvedImage(source=full_path, image=cached)

        if not os.path.isfile(full_path):
            raise AssetNotFound(full_path)

        try:
            with open(full_path, 'rb') as f:
                data = f.read()
        except (OSError, ValueError) as e:
            raise AssetNotFound(full_path, f"could not read {full_path}: {e}") from e

        image = self._decode(full_path, data)
        self.cache.put_image(full_path, image)
        return ResolvedImage(source=full_path, image=image)

    def _decode(self, source: str, data: bytes) -> Image.Image:
        if _looks_like_svg(source, data):
            if not SVG_SUPPORT:
                raise DecodeFailed(source, f"SVG support unavailable for {source}")
            try:
                data = svg2png(bytestring=data)
            except Exception as e:
                raise DecodeFailed(source, f"SVG rasterisation failed for {source}: {e}") from e

        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            return image.convert('RGBA')
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise DecodeFailed(source, f"could not decode {source}: {e}") from e


def _looks_like_svg(source: str, data: bytes) -> bool:
    if source.lower().split('?', 1)[0].endswith('.svg'):
        return True
    head = data[:256].lstrip().lower()
    return head.startswith(b'<svg') or (head.startswith(b'<?xml') and b'<svg' in data[:1024].lower())

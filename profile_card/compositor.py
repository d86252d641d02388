import logging
import time
from dataclasses import dataclass
from typing import Optional

from . import config
from .errors import (IMAGE_GENERATION_FAILED, TEMPLATE_NOT_FOUND, CardError, EncodeFailed,
                     TemplateNotFound)
from .layout_engine import LayoutEngine
from .render_request import RenderRequest
from .renderer import CardRenderer
from .resolver import ResourceResolver
from .resource_cache import ResourceCache
from .template_model import TemplateLoader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderResult:
    template: str
    width: int
    height: int
    png: bytes


class ProfileCardCompositor:
    """
    Owns the shared cache and wires loader, resolver, layout and renderer
    together. One instance serves every request of the process.
    """

    def __init__(self, cache: Optional[ResourceCache] = None,
                 resolver: Optional[ResourceResolver] = None,
                 loader: Optional[TemplateLoader] = None,
                 renderer: Optional[CardRenderer] = None):
        self.cache = cache or ResourceCache(ttl=config.CACHE_TTL_SECONDS)
        self.resolver = resolver or ResourceResolver(self.cache)
        self.loader = loader or TemplateLoader(self.cache)
        self.renderer = renderer or CardRenderer()
        self.layout = LayoutEngine(self.resolver, self.renderer.measure_text)

    def render(self, request: RenderRequest) -> RenderResult:
        """
        Render one card.

        Raises:
            CardError: ERR-0003 unknown template, ERR-0005 bad background,
                ERR-0004 unusable avatar (400) or encoding failure (500)
        """
        render_start = time.time()
        try:
            document = self.loader.load(request.template_name)
        except TemplateNotFound as e:
            logger.warning(f"Template lookup failed: {e}")
            raise CardError(TEMPLATE_NOT_FOUND, 400) from e

        operations = self.layout.build_operations(document, request)
        layout_time = time.time() - render_start

        meta = document.meta
        try:
            png = self.renderer.execute(operations, meta.width, meta.height)
        except EncodeFailed as e:
            logger.error(f"Encoding failed for template '{document.name}': {e}", exc_info=True)
            raise CardError(IMAGE_GENERATION_FAILED, 500, details=str(e)) from e

        total_time = time.time() - render_start
        logger.info(f"Rendered '{document.name}' card for {request.username} "
                    f"({meta.width}x{meta.height}, {len(operations)} ops, "
                    f"layout {layout_time:.3f}s, total {total_time:.3f}s)")
        return RenderResult(template=document.name, width=meta.width, height=meta.height, png=png)

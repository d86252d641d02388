"""
Templated profile-card compositor.

Resolves a named template plus a user's avatar, bio and stats into a PNG card.
The Flask service lives in profile_card.app.
"""

from .compositor import ProfileCardCompositor, RenderResult
from .errors import (AssetNotFound, CardError, DecodeFailed, EncodeFailed, NetworkFetchFailed,
                     ResolutionError, TemplateNotFound)
from .layout_engine import LayoutEngine, wrap_text, xp_fraction
from .render_request import RenderRequest
from .renderer import CardRenderer
from .resolver import ResolvedImage, ResourceResolver, is_color_string, is_glyph, is_url
from .resource_cache import ResourceCache
from .template_model import TemplateDocument, TemplateLoader

__all__ = [
    # Pipeline
    'ProfileCardCompositor',
    'RenderRequest',
    'RenderResult',
    'LayoutEngine',
    'CardRenderer',

    # Resources
    'ResourceCache',
    'ResourceResolver',
    'ResolvedImage',
    'TemplateDocument',
    'TemplateLoader',
    'is_color_string',
    'is_glyph',
    'is_url',

    # Layout helpers
    'wrap_text',
    'xp_fraction',

    # Errors
    'CardError',
    'ResolutionError',
    'AssetNotFound',
    'NetworkFetchFailed',
    'DecodeFailed',
    'TemplateNotFound',
    'EncodeFailed',
]

"""
Configuration constants for the profile card rendering service.
"""

import os


def _env_float(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


ASSETS_DIR = os.path.join(os.path.dirname(__file__), 'assets')

# ===== TEMPLATES =====
# Either a local directory or an http(s) base URL. Each template lives in
# <TEMPLATE_ROOT>/<name>/template.json with an optional template.png overlay.
TEMPLATE_ROOT = os.environ.get('TEMPLATE_ROOT', os.path.join(ASSETS_DIR, 'canvas', 'templates'))
TEMPLATE_CONFIG_FILE = 'template.json'
TEMPLATE_OVERLAY_FILE = 'template.png'
DEFAULT_TEMPLATE = 'default'

# ===== CANVAS DEFAULTS =====
DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 400
DEFAULT_BACKGROUND = '#1e1e1e'
DEFAULT_TEXT_COLOR = '#ffffff'
DEFAULT_FONT = '16px sans-serif'

# Coins fall back to this glyph when neither the request nor the template names an icon
DEFAULT_COIN_GLYPH = '🪙'
GLYPH_MAX_LENGTH = 8

# ===== FONTS =====
FONTS_DIR = os.environ.get('FONTS_DIR', os.path.join(ASSETS_DIR, 'fonts'))
FALLBACK_FONT_REGULAR = 'DejaVuSans.ttf'
FALLBACK_FONT_BOLD = 'DejaVuSans-Bold.ttf'

# ===== CACHE CONFIGURATION =====
# None keeps templates and images for the lifetime of the process.
# A number of seconds makes entries older than that refetch on next access.
CACHE_TTL_SECONDS = _env_float('CACHE_TTL_SECONDS', None)

# ===== NETWORK =====
FETCH_TIMEOUT_SECONDS = _env_float('FETCH_TIMEOUT_SECONDS', 15.0)
MAX_REMOTE_IMAGE_BYTES = 8 * 1024 * 1024
USER_AGENT = 'ProfileCard-Renderer/1.0'

# ===== SERVER =====
HOST = os.environ.get('HOST', '0.0.0.0')
PORT = int(os.environ.get('PORT', '3000'))

# ===== DEBUGGING FLAGS =====
DEBUG_RENDERING = _env_flag('DEBUG_RENDERING')
DEBUG_CACHE = _env_flag('DEBUG_CACHE')

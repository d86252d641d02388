"""
Error taxonomy for profile card rendering.

Resolution and template errors are raised by the lower layers and converted
into a CardError (an error code plus HTTP status) at the stage that can
produce them. Only CardError ever reaches the HTTP boundary.
"""

from typing import Dict, Optional

USERNAME_MISSING = 'ERR-0001'
AVATAR_MISSING = 'ERR-0002'
TEMPLATE_NOT_FOUND = 'ERR-0003'
IMAGE_GENERATION_FAILED = 'ERR-0004'
INVALID_BACKGROUND = 'ERR-0005'
# Reserved: icon failures degrade to a text run instead of surfacing this code
ICON_NOT_FOUND = 'ERR-0006'

ERROR_MESSAGES: Dict[str, str] = {
    USERNAME_MISSING: 'username not provided',
    AVATAR_MISSING: 'avatarURL not provided',
    TEMPLATE_NOT_FOUND: 'template not found',
    IMAGE_GENERATION_FAILED: 'failed to generate image',
    INVALID_BACKGROUND: 'invalid or unreachable background',
    ICON_NOT_FOUND: 'icon could not be loaded',
}


class CardError(Exception):
    """A terminal render failure carrying the public error envelope."""

    def __init__(self, error_id: str, status: int = 400, message: Optional[str] = None,
                 details: Optional[str] = None):
        self.error_id = error_id
        self.status = status
        self.message = message or ERROR_MESSAGES.get(error_id, 'unknown error')
        self.details = details
        super().__init__(f"{error_id}: {self.message}")

    def to_dict(self) -> dict:
        body = {
            'success': False,
            'errorID': self.error_id,
            'error': self.message,
        }
        if self.details:
            body['details'] = self.details
        return body


class ResolutionError(Exception):
    """A reference could not be turned into a decoded image."""

    reason = 'unresolved'

    def __init__(self, source: str, message: str = ''):
        self.source = source
        super().__init__(message or f"{self.reason}: {source}")


class AssetNotFound(ResolutionError):
    reason = 'not_found'


class NetworkFetchFailed(ResolutionError):
    reason = 'network'


class DecodeFailed(ResolutionError):
    reason = 'decode'


class TemplateNotFound(Exception):
    def __init__(self, name: str, message: str = ''):
        self.name = name
        super().__init__(message or f"template not found: {name}")


class EncodeFailed(Exception):
    pass

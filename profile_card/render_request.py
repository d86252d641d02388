from dataclasses import dataclass
from typing import Mapping, Optional

from . import config
from .errors import AVATAR_MISSING, USERNAME_MISSING, CardError


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_number(value: Optional[str]) -> Optional[float]:
    """Parse a query value as a number; anything non-numeric counts as absent."""
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if number != number or number in (float('inf'), float('-inf')):
        return None
    return number


@dataclass(frozen=True)
class RenderRequest:
    """The dynamic values for one card render, built once per HTTP call."""
    username: str
    avatar_source: str
    bio: Optional[str] = None
    level: Optional[float] = None
    xp: Optional[float] = None
    max_xp: Optional[float] = None
    coins: Optional[str] = None
    coin_icon: Optional[str] = None
    template_name: str = config.DEFAULT_TEMPLATE
    background_override: Optional[str] = None
    want_json: bool = False

    @classmethod
    def from_args(cls, args: Mapping) -> 'RenderRequest':
        """
        Build a request from query parameters.

        Raises:
            CardError: ERR-0001 without username, ERR-0002 without avatarURL
        """
        username = _clean(args.get('username'))
        if not username:
            raise CardError(USERNAME_MISSING, 400)

        avatar = _clean(args.get('avatarURL'))
        if not avatar:
            raise CardError(AVATAR_MISSING, 400)

        return cls(
            username=username,
            avatar_source=avatar,
            bio=_clean(args.get('bio')),
            level=_parse_number(_clean(args.get('level'))),
            xp=_parse_number(_clean(args.get('xp'))),
            max_xp=_parse_number(_clean(args.get('maxXP'))),
            coins=_clean(args.get('coins')),
            coin_icon=_clean(args.get('coinIcon')),
            template_name=_clean(args.get('template')) or config.DEFAULT_TEMPLATE,
            background_override=_clean(args.get('bg')),
            want_json=str(args.get('json', '')).strip().lower() == 'true',
        )

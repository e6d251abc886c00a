"""Display name parsing (``[host][/unix]:D[.S]``)."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from .errors import InputError
from .models import DisplayAddress

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = ":0"
_UNIX_SUFFIX = "/unix"
_NUMBER_RE = re.compile(r"(\d+)(?:\.(\d+))?", re.ASCII)


def parse_display(text: str) -> DisplayAddress:
    """Parse a display name into host, display number, screen and transport.

    An empty host or a ``/unix`` suffix selects the Unix-domain socket; the
    suffix is removed from the returned host. The host is everything before
    the last colon so numeric IPv6 hosts survive.
    """
    if text is None:
        raise InputError("display name is missing")
    host, sep, numbers = text.rpartition(":")
    if not sep:
        raise InputError(f"display name {text!r} has no ':' separator")

    match = _NUMBER_RE.fullmatch(numbers)
    if match is None:
        raise InputError(f"invalid display or screen number in {text!r}")

    is_unix = not host
    if host.endswith(_UNIX_SUFFIX):
        host = host[: -len(_UNIX_SUFFIX)]
        is_unix = True

    return DisplayAddress(
        host=host,
        sequence_number=int(match.group(1)),
        screen_number=int(match.group(2)) if match.group(2) is not None else 0,
        is_unix_transport=is_unix,
    )


def default_display_name(env: Mapping[str, str], fallback: str = DEFAULT_DISPLAY_NAME) -> str:
    name = env.get("DISPLAY")
    if name:
        return name
    logger.warning(
        "no DISPLAY environment variable found, trying default display %s",
        fallback,
        extra={"event": "display_fallback"},
    )
    return fallback

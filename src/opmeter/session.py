"""
Session — Process-lifetime identifier attached to every meter.
"""

from uuid import uuid4

from opmeter.config import get_session_config


# Stable for the lifetime of the process
session_uuid: str = uuid4().hex


def short_session_uuid() -> str:
    """Trailing characters of the session UUID, sized by SessionConfig."""
    size = get_session_config().uuid_size
    return session_uuid[-size:]

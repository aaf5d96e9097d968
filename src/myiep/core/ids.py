"""
Identifier Generator

UUID4 strings for every entity. Falls back to a pseudo-random UUID when the
platform has no CSPRNG; collisions are less unlikely there, which is
acceptable for a single-user local database.
"""

from __future__ import annotations

import logging
import os
import random
import uuid

logger = logging.getLogger(__name__)

_warned_fallback = False


def generate_id() -> str:
    """Generate a new unique identifier.

    Returns:
        UUID4 string (e.g. '3f2b8c1e-...')
    """
    global _warned_fallback

    try:
        return str(uuid.UUID(bytes=os.urandom(16), version=4))
    except NotImplementedError:
        if not _warned_fallback:
            logger.warning("os.urandom unavailable, using pseudo-random identifiers")
            _warned_fallback = True
        return str(uuid.UUID(int=random.getrandbits(128), version=4))

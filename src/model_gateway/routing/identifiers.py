"""Operation identifier generation."""

from __future__ import annotations

import uuid

# Backend experiment names and tag values reject a leading digit.
OPERATION_ID_PREFIX = "a"


def new_operation_id() -> str:
    """Return a 32-character random hex identifier starting with a letter.

    The first hex digit is overwritten rather than prefixed so the length
    stays fixed.
    """
    return OPERATION_ID_PREFIX + uuid.uuid4().hex[1:]

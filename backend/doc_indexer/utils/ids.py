"""ID helpers."""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Generate a random UUID4 string.

    Qdrant only accepts unsigned integers or UUIDs as point ids, so the
    canonical hyphenated form is kept.
    """
    return str(uuid.uuid4())

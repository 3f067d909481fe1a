from __future__ import annotations

import uuid


def generate_id(prefix: str | None = None) -> str:
    """Opaque unique id, optionally prefixed (``prd_<uuid4>``)."""
    value = str(uuid.uuid4())
    return f"{prefix}_{value}" if prefix else value


def id_factory(prefix: str):
    """Column default producing prefixed ids."""
    def _default():
        return generate_id(prefix)
    return _default

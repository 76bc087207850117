"""
Type guards for loosely typed setting values.

Settings are stored as arbitrary JSON per owner and edited from the UI, so
the stored shape is never trusted: every read goes through one of these
guards and falls back to a default when the shape does not match.
"""

from typing import Any


def as_bool(value: Any, default: bool = False) -> bool:
    return value if isinstance(value, bool) else default


def as_str(value: Any, default: str | None = None) -> str | None:
    return value if isinstance(value, str) and value else default


def as_str_list(value: Any, default: list[str] | None = None) -> list[str] | None:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    return default


def as_dict(value: Any, default: dict | None = None) -> dict | None:
    return dict(value) if isinstance(value, dict) else default

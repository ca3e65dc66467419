from __future__ import annotations

from .post_schema import FIELD_ALIASES, PostContent

_ATTRIBUTE_NAMES = frozenset(FIELD_ALIASES.values())


def resolve_field(field: str) -> str:
    """Map a wire key (`Заголовок`) or attribute name (`title`) to the attribute name."""
    name = (field or "").strip()
    if name in FIELD_ALIASES:
        return FIELD_ALIASES[name]
    if name in _ATTRIBUTE_NAMES:
        return name
    raise KeyError(f"Unknown post field: {field!r}")


def set_field(record: PostContent, field: str, value: str) -> PostContent:
    """
    Return a copy of record with one field replaced.

    Edited content is not validated; the user is trusted.
    """
    return record.model_copy(update={resolve_field(field): str(value)})

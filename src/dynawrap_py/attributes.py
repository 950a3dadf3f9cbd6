from __future__ import annotations

import logging

from .errors import ValidationError

logger = logging.getLogger(__name__)

SEPARATOR = "::"
DEFAULT_TYPE = "S"
SCALAR_TYPES = frozenset({"S", "N", "B"})
SET_TYPES = frozenset({"SS", "NS", "BS"})
TYPE_TAGS = SCALAR_TYPES | SET_TYPES


def parse_attribute(token: str, *, strict: bool = False) -> tuple[str, str]:
    """Split an attribute token such as ``"Age::N"`` into ``("Age", "N")``.

    A token without a separator is a string attribute. Tokens with more than one
    separator keep the text before the first separator as the name and fall back
    to ``S`` no matter what follows; unknown type tags fall back to ``S`` too.
    With ``strict=True`` both malformed cases raise ``ValidationError`` instead.
    """
    if not isinstance(token, str) or not token:
        raise ValidationError(f"attribute token must be a non-empty string: {token!r}")

    parts = token.split(SEPARATOR)
    name = parts[0]
    if not name:
        raise ValidationError(f"attribute token has an empty name: {token!r}")

    if len(parts) == 1:
        return name, DEFAULT_TYPE

    if len(parts) > 2:
        if strict:
            raise ValidationError(f"attribute token has more than one separator: {token!r}")
        logger.warning("attribute token %r has more than one separator; using type S", token)
        return name, DEFAULT_TYPE

    type_tag = parts[1]
    if type_tag not in TYPE_TAGS:
        if strict:
            raise ValidationError(f"unknown attribute type in token: {token!r}")
        logger.warning("attribute token %r has unknown type %r; using type S", token, type_tag)
        return name, DEFAULT_TYPE

    return name, type_tag


def element_type(type_tag: str) -> str:
    """Scalar kind of a set kind's elements (``SS`` -> ``S``); scalars map to themselves."""
    if type_tag in SET_TYPES:
        return type_tag[0]
    return type_tag

"""Category filter expressions for schedule rules.

Two dialects are stored in ``filter_condition``:

* pipe-delimited, written by the current rule editor: ``(Alpha|Beta)``
* legacy SQL-style: ``(category='alpha' OR category='beta')``

Anything else fails open: a malformed filter must not silence a rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Union

from .dto import CandidateRecord

logger = logging.getLogger(__name__)

_BODY_RE = re.compile(r"\((.*?)\)")
_LEGACY_FRAGMENT_RE = re.compile(r"category='(\w+)'")
_CATEGORY_NAME_RE = re.compile(r"^\w[\w .&-]*$")


@dataclass(frozen=True)
class AnyCategory:
    """No restriction. ``reason`` is set when a malformed expression failed open."""

    reason: str | None = None

    @property
    def malformed(self) -> bool:
        return self.reason is not None


@dataclass(frozen=True)
class CategorySet:
    """Allow-list of exact, case-sensitive category names."""

    categories: frozenset[str]
    dialect: str = "pipe"

    def __contains__(self, category: object) -> bool:
        return category in self.categories


CategoryFilter = Union[AnyCategory, CategorySet]


def parse_filter(expression: str | None) -> CategoryFilter:
    """Parse a filter expression into a tagged filter value."""
    if expression is None or not expression.strip():
        return AnyCategory()

    match = _BODY_RE.search(expression)
    body = match.group(1).strip() if match else ""
    if not body:
        return _fail_open(expression, "no parenthesized body")

    if "category=" in body:
        values = {_title_case(v) for v in _LEGACY_FRAGMENT_RE.findall(body)}
        if values:
            return CategorySet(frozenset(values), dialect="legacy")
        return _fail_open(expression, "no category='...' fragments")

    tokens = [t.strip() for t in body.split("|")]
    names = [t for t in tokens if t]
    if names and all(_CATEGORY_NAME_RE.match(t) for t in names):
        return CategorySet(frozenset(names), dialect="pipe")

    return _fail_open(expression, "unrecognised dialect")


def matches(record: CandidateRecord, expression: str | CategoryFilter | None) -> bool:
    """Return True when the record passes the rule's category filter."""
    parsed = expression if isinstance(expression, (AnyCategory, CategorySet)) else parse_filter(expression)
    if isinstance(parsed, AnyCategory):
        return True
    if not record.category:
        return False
    return record.category in parsed


def _title_case(value: str) -> str:
    return value[:1].upper() + value[1:].lower()


def _fail_open(expression: str, reason: str) -> AnyCategory:
    logger.debug("filter_condition_unparsed", extra={"filter_condition": expression, "reason": reason})
    return AnyCategory(reason=reason)

"""Single-clause SCIM filter parsing (RFC 7644 Section 3.4.2.2, subset).

Supported shape::

    <attribute> <op> "<value>"      op in eq | ne | co | sw | ew

Only the first clause found in the string is used, so
``userName eq "a@b.com" and active eq "true"`` filters on userName alone.
Anything that cannot be parsed, and the ``ne`` operator, compile to no
predicate at all: listing stays available for clients sending filters we do
not understand.
"""
from __future__ import annotations
import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.sql.elements import ColumnElement

from scim_provisioning.core.store import User

logger = logging.getLogger(__name__)

FILTER_PATTERN = re.compile(r'([A-Za-z][\w.]*)\s+(eq|ne|co|sw|ew)\s+"([^"]+)"', re.IGNORECASE)


class FilterOp(enum.Enum):
    EQ = "eq"
    CONTAINS = "co"
    STARTS_WITH = "sw"
    ENDS_WITH = "ew"
    UNSUPPORTED = "unsupported"


_OPERATORS = {
    "eq": FilterOp.EQ,
    "co": FilterOp.CONTAINS,
    "sw": FilterOp.STARTS_WITH,
    "ew": FilterOp.ENDS_WITH,
}

# SCIM attribute (lowercased) → users column name. Unknown attributes use email.
ATTRIBUTE_MAP = {
    "username": "email",
    "name.givenname": "name",
    "name.familyname": "name",
    "name.formatted": "name",
    "displayname": "name",
    "emails.value": "email",
    "emails": "email",
    "active": "active",
}
DEFAULT_FIELD = "email"


@dataclass(frozen=True)
class ScimFilter:
    op: FilterOp
    field: str = DEFAULT_FIELD
    value: str = ""

    @property
    def is_supported(self) -> bool:
        return self.op is not FilterOp.UNSUPPORTED

    def to_criterion(self) -> Optional[ColumnElement[bool]]:
        """Compile to a SQLAlchemy predicate over ``User``; None means no filter."""
        if self.op is FilterOp.UNSUPPORTED:
            return None

        column = getattr(User, self.field)

        if self.field == "active":
            flag = _parse_bool(self.value)
            if self.op is not FilterOp.EQ or flag is None:
                return None
            return column.is_(flag)

        if self.op is FilterOp.EQ:
            return column == self.value
        if self.op is FilterOp.CONTAINS:
            return column.icontains(self.value, autoescape=True)
        if self.op is FilterOp.STARTS_WITH:
            return column.istartswith(self.value, autoescape=True)
        return column.iendswith(self.value, autoescape=True)


NO_FILTER = ScimFilter(FilterOp.UNSUPPORTED)


def parse_filter(filter_str: Optional[str]) -> ScimFilter:
    """Parse a filter string. Never raises; bad input yields NO_FILTER."""
    if not filter_str or not isinstance(filter_str, str):
        return NO_FILTER

    match = FILTER_PATTERN.search(filter_str)
    if not match:
        logger.info("Ignoring unsupported SCIM filter: %r", filter_str)
        return NO_FILTER

    attribute, operator, value = match.groups()
    op = _OPERATORS.get(operator.lower())
    if op is None:
        # ne is recognised but not honoured
        logger.info("Ignoring SCIM filter operator %r in %r", operator, filter_str)
        return NO_FILTER

    field = ATTRIBUTE_MAP.get(attribute.lower(), DEFAULT_FIELD)
    return ScimFilter(op=op, field=field, value=value)


def _parse_bool(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None

"""Lexical SQL classification for permission enforcement.

Maps free-form SQL text to a coarse operation category (read, ddl, dml) by
inspecting the leading clause only. This is a fast-path filter, not a SQL
parser: anything that is not recognizably DDL or DML is treated as a read.
"""

from __future__ import annotations

import re
from typing import Final

from pgportal.errors import EmptyStatement, PermissionDenied
from pgportal.policy.permissions import Grant, Permission

_COMMENT: Final[re.Pattern[str]] = re.compile(r"/\*.*?\*/|--[^\n]*", re.DOTALL)
_WHITESPACE: Final[re.Pattern[str]] = re.compile(r"\s+")

_DDL_KEYWORDS: Final[tuple[str, ...]] = ("CREATE", "DROP", "ALTER", "TRUNCATE", "COMMENT")
_DML_KEYWORDS: Final[tuple[str, ...]] = ("INSERT", "UPDATE", "DELETE", "MERGE", "UPSERT")


def _leading(keywords: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(rf"^{kw}(?:\s|$)") for kw in keywords)


# Checked in order; DDL first.
_CATEGORY_PATTERNS: Final[tuple[tuple[Permission, tuple[re.Pattern[str], ...]], ...]] = (
    (Permission.ddl, _leading(_DDL_KEYWORDS)),
    (Permission.dml, _leading(_DML_KEYWORDS)),
)


def normalize_sql(sql: str) -> str:
    """Strip comments, collapse whitespace and uppercase the statement."""
    without_comments = _COMMENT.sub(" ", sql)
    return _WHITESPACE.sub(" ", without_comments).strip().upper()


def classify(sql: str) -> Permission:
    """Return the permission category a statement requires.

    Leading empty statements (``;``) are skipped.

    Raises:
        EmptyStatement: If nothing remains after stripping comments, whitespace
            and leading semicolons.
    """
    normalized = normalize_sql(sql).lstrip("; ")
    if not normalized:
        raise EmptyStatement()

    for category, patterns in _CATEGORY_PATTERNS:
        if any(pattern.match(normalized) for pattern in patterns):
            return category
    return Permission.read


def authorize(sql: str, grant: Grant) -> Permission:
    """Check a statement against a grant, failing closed.

    Returns:
        The derived category when it is granted.

    Raises:
        EmptyStatement: If the statement is empty.
        PermissionDenied: If the derived category is not in the grant.
    """
    category = classify(sql)
    if category not in grant:
        raise PermissionDenied(category, grant)
    return category

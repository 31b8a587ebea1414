"""Read-only statement guard.

Classifies a SQL string by its leading keyword, rejects anything that is not a
read, and decides the row cap. All of this happens on the text alone, before
the statement is sent to an engine: the credentials behind a connection may
well have write access.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from db_explorer.errors import UnsupportedStatementError

logger = logging.getLogger(__name__)

# No query ever returns more rows than this
HARD_ROW_CEILING = 500

# Leading keywords every backend accepts
READ_ONLY_KEYWORDS = frozenset({"select", "with", "explain"})

# Statements a data-modifying CTE body can hold
_WRITE_KEYWORDS = r"insert|update|delete|merge"

# Places where a write can follow an allowed leading keyword. Write keywords
# anywhere else are plain identifiers (SQLite reserves few of them).
_HIDDEN_WRITES = (
    # WITH x AS (DELETE ...), WITH x AS MATERIALIZED (INSERT ...)
    re.compile(
        r"\bas\s*(?:not\s+)?(?:materialized\s*)?\(\s*(" + _WRITE_KEYWORDS + r")\b"
    ),
    # SELECT ... INTO new_table
    re.compile(r"\bselect\b.*?\b(into)\b", re.DOTALL),
    # SELECT ... FOR UPDATE / FOR SHARE
    re.compile(r"\bfor\s+(?:no\s+key\s+)?(update|share|key\s+share)\b"),
)

# Options between EXPLAIN and the statement it explains
_EXPLAIN_PREFIX = re.compile(
    r"\Aexplain(?:\s*\([^)]*\)|\s+analy[sz]e|\s+verbose|\s+query\s+plan)*\s*"
)

# Statements EXPLAIN may wrap; EXPLAIN ANALYZE runs its target
_EXPLAINABLE_KEYWORDS = frozenset({"select", "with", "values"})

_LEADING_NOISE = re.compile(r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*.*?\*/)*", re.DOTALL)
_KEYWORD = re.compile(r"[a-z_]+")
# LIMIT n, LIMIT -1, LIMIT ALL, LIMIT (n), LIMIT ?, LIMIT :n
_LIMIT_CLAUSE = re.compile(r"\blimit\b\s*[^\s;]")
_LITERALS_AND_COMMENTS = re.compile(
    r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|--[^\n]*|/\*.*?\*/", re.DOTALL
)


@dataclass(frozen=True)
class PreparedQuery:
    """A statement that passed the guard, ready to execute."""

    sql: str
    keyword: str
    cap: int
    has_limit: bool
    rewritten: bool


def leading_keyword(sql: str) -> str:
    """Return the lowercased first keyword, skipping whitespace and comments."""
    normalized = sql.lower()
    body = normalized[_LEADING_NOISE.match(normalized).end():]
    match = _KEYWORD.match(body)
    return match.group(0) if match else ""


def effective_cap(limit: Optional[int]) -> int:
    """Row cap for a caller limit: ``min(limit, HARD_ROW_CEILING)``."""
    if limit is None:
        return HARD_ROW_CEILING
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")
    return min(limit, HARD_ROW_CEILING)


def has_limit_clause(sql: str) -> bool:
    """Check if the statement already carries a LIMIT clause, in any form."""
    return bool(_LIMIT_CLAUSE.search(_strip_literals(sql)))


def _blank_literals(sql: str) -> str:
    """Replace literals and comments with spaces, keeping every offset."""
    return _LITERALS_AND_COMMENTS.sub(lambda m: " " * len(m.group(0)), sql)


def _strip_literals(sql: str) -> str:
    return _blank_literals(sql).lower()


def _first_keyword(text: str) -> str:
    match = _KEYWORD.match(text.lstrip())
    return match.group(0) if match else ""


def validate_statement(sql: str, allowed: frozenset[str] = READ_ONLY_KEYWORDS) -> str:
    """
    Reject any statement that is not a read.

    Args:
        sql: Raw SQL text
        allowed: Leading keywords accepted by the target backend

    Returns:
        The statement's leading keyword

    Raises:
        UnsupportedStatementError: If the statement is not read-only
    """
    keyword = leading_keyword(sql)
    if keyword not in allowed:
        logger.warning("Rejected statement with leading keyword %r", keyword)
        raise UnsupportedStatementError(
            f"Only {', '.join(sorted(k.upper() for k in allowed))} statements "
            f"are allowed. This connection is read-only. Got: {keyword.upper() or '(empty)'}",
            keyword=keyword,
        )

    body = _strip_literals(sql)
    statements = [part.strip() for part in body.split(";")]
    if any(statements[1:]):
        extra = next(part for part in statements[1:] if part)
        found = _first_keyword(extra)
        logger.warning("Rejected stacked statement starting with %r", found)
        raise UnsupportedStatementError(
            f"Multiple statements are not allowed. Got a second statement: "
            f"{found.upper() or '(unknown)'}",
            keyword=found,
        )

    if keyword == "explain":
        explained = statements[0]
        target = _first_keyword(explained[_EXPLAIN_PREFIX.match(explained).end():])
        if target not in _EXPLAINABLE_KEYWORDS:
            logger.warning("Rejected EXPLAIN of %r", target)
            raise UnsupportedStatementError(
                f"EXPLAIN is only allowed for read statements. "
                f"Got: EXPLAIN {target.upper() or '(empty)'}",
                keyword=target,
            )

    for pattern in _HIDDEN_WRITES:
        match = pattern.search(body)
        if match:
            found = " ".join(match.group(1).split()).upper()
            logger.warning("Rejected %s statement containing %s", keyword.upper(), found)
            raise UnsupportedStatementError(
                f"Statement contains write keyword {found}. "
                f"Only read-only statements are allowed.",
                keyword=keyword,
            )

    if keyword == "pragma" and "=" in body:
        logger.warning("Rejected PRAGMA assignment")
        raise UnsupportedStatementError(
            "PRAGMA assignments are not allowed. Only read-only statements are allowed.",
            keyword=keyword,
        )

    return keyword


def prepare_query(
    sql: str,
    limit: Optional[int] = None,
    allowed: frozenset[str] = READ_ONLY_KEYWORDS,
    rewritable: frozenset[str] = READ_ONLY_KEYWORDS,
) -> PreparedQuery:
    """
    Validate a statement and bound the number of rows it can return.

    A LIMIT is appended when the statement has none and its kind accepts one.
    The original text, casing included, is otherwise left untouched.

    Args:
        sql: Raw SQL text
        limit: Caller row cap (None for the hard ceiling)
        allowed: Leading keywords accepted by the target backend
        rewritable: Leading keywords that accept an appended LIMIT clause

    Returns:
        Prepared statement with its effective cap

    Raises:
        UnsupportedStatementError: If the statement is not read-only
        ValueError: If limit is not a positive integer
    """
    keyword = validate_statement(sql, allowed)
    cap = effective_cap(limit)
    has_limit = has_limit_clause(sql)

    if has_limit or keyword not in rewritable:
        return PreparedQuery(
            sql=sql, keyword=keyword, cap=cap, has_limit=has_limit, rewritten=False
        )

    # Only comments and whitespace can follow a ";" once validated
    terminator = _blank_literals(sql).find(";")
    stripped = (sql if terminator < 0 else sql[:terminator]).rstrip()
    # Newline ends a trailing "--" comment before the appended clause
    return PreparedQuery(
        sql=f"{stripped}\nLIMIT {cap}",
        keyword=keyword,
        cap=cap,
        has_limit=False,
        rewritten=True,
    )


def apply_cap(rows: Sequence[Any], prepared: PreparedQuery) -> tuple[list[Any], bool]:
    """
    Cut rows to the cap and report whether the cap cut anything.

    A rewritten statement never yields more than ``cap`` rows; reaching the cap
    counts as truncation because the appended LIMIT, not the caller, stopped it.
    Otherwise the executor fetched up to ``cap + 1`` rows and truncation means
    the extra row showed up.
    """
    if prepared.rewritten:
        kept = list(rows[: prepared.cap])
        return kept, len(kept) >= prepared.cap

    return list(rows[: prepared.cap]), len(rows) > prepared.cap

"""Unit Tests for the read-only statement guard

Validates:
- Leading keyword classification (case, whitespace, comments)
- Rejection of writes, including writes hidden behind an allowed keyword
- Row cap computation
- LIMIT rewriting and truncation bookkeeping
"""

import pytest

from db_explorer.core.guard import (
    HARD_ROW_CEILING,
    READ_ONLY_KEYWORDS,
    apply_cap,
    effective_cap,
    has_limit_clause,
    leading_keyword,
    prepare_query,
    validate_statement,
)
from db_explorer.errors import UnsupportedStatementError

SQLITE_KEYWORDS = READ_ONLY_KEYWORDS | {"pragma"}


class TestLeadingKeyword:
    """Test leading keyword detection."""

    @pytest.mark.parametrize(
        "sql,expected",
        [
            ("SELECT 1", "select"),
            ("   select 1", "select"),
            ("\n\tWith x AS (SELECT 1) SELECT * FROM x", "with"),
            ("-- comment\nSELECT 1", "select"),
            ("/* block\ncomment */ EXPLAIN SELECT 1", "explain"),
            ("-- one\n/* two */\n  -- three\nselect 1", "select"),
            ("PRAGMA table_info(users)", "pragma"),
            ("", ""),
            ("-- only a comment", ""),
        ],
    )
    def test_leading_keyword(self, sql, expected):
        """Test that comments and whitespace are skipped."""
        assert leading_keyword(sql) == expected


class TestValidateStatement:
    """Test statement validation."""

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM users",
            "with t AS (SELECT 1 AS n) SELECT n FROM t",
            "EXPLAIN SELECT 1",
            "SELECT replace(name, 'a', 'b') FROM users",
            "SELECT 'DELETE FROM users' AS text_literal",
            "SELECT \"update\" FROM audit",
            "SELECT created_at, updated_at FROM users",
            "SELECT id, detach, merge FROM t",
            "SELECT attach, vacuum, reindex, replace FROM settings",
            "SELECT * FROM t WHERE merge = 1 ORDER BY detach",
            "SELECT 1;",
            "SELECT 1; -- trailing comment",
            "EXPLAIN QUERY PLAN SELECT * FROM t",
            "EXPLAIN (ANALYZE, BUFFERS) SELECT * FROM t",
            "EXPLAIN ANALYZE WITH x AS (SELECT 1) SELECT * FROM x",
        ],
    )
    def test_read_statements_pass(self, sql):
        """Test that reads pass, including ones mentioning write words in literals."""
        assert validate_statement(sql) in READ_ONLY_KEYWORDS

    @pytest.mark.parametrize(
        "sql,keyword",
        [
            ("DELETE FROM t", "delete"),
            ("insert into t values (1)", "insert"),
            ("UPDATE t SET a = 1", "update"),
            ("DROP TABLE t", "drop"),
            ("CREATE TABLE x (a INT)", "create"),
            ("  -- sneaky\n  TRUNCATE t", "truncate"),
            ("ATTACH DATABASE 'x.db' AS x", "attach"),
            ("", ""),
        ],
    )
    def test_writes_rejected(self, sql, keyword):
        """Test that non-read leading keywords are rejected."""
        with pytest.raises(UnsupportedStatementError) as exc_info:
            validate_statement(sql)

        assert exc_info.value.keyword == keyword
        assert "read-only" in str(exc_info.value)

    def test_rejection_names_keyword(self):
        """Test that the error message names the offending keyword."""
        with pytest.raises(UnsupportedStatementError, match="Got: DELETE"):
            validate_statement("delete from t")

    def test_rejection_is_value_error(self):
        """Test that callers catching ValueError also catch rejections."""
        with pytest.raises(ValueError):
            validate_statement("DROP TABLE t")

    @pytest.mark.parametrize(
        "sql",
        [
            "WITH gone AS (DELETE FROM t RETURNING *) SELECT * FROM gone",
            "WITH gone AS(DELETE FROM t RETURNING *) SELECT * FROM gone",
            "SELECT * INTO backup FROM users",
            "WITH x AS MATERIALIZED (INSERT INTO t VALUES (1) RETURNING *) SELECT * FROM x",
            "SELECT 1; DROP TABLE users",
            "SELECT 1; SELECT 2",
            "SELECT * FROM t FOR UPDATE",
            "SELECT * FROM t FOR NO KEY UPDATE",
            "EXPLAIN ANALYZE DELETE FROM t",
            "EXPLAIN (ANALYZE) UPDATE t SET a = 1",
        ],
    )
    def test_hidden_writes_rejected(self, sql):
        """Test that writes behind an allowed keyword are rejected."""
        with pytest.raises(UnsupportedStatementError):
            validate_statement(sql)

    def test_pragma_only_where_allowed(self):
        """Test that PRAGMA is accepted only when the backend allows it."""
        assert validate_statement("PRAGMA table_info(t)", SQLITE_KEYWORDS) == "pragma"

        with pytest.raises(UnsupportedStatementError):
            validate_statement("PRAGMA table_info(t)")

    def test_pragma_assignment_rejected(self):
        """Test that PRAGMA writes are rejected."""
        with pytest.raises(UnsupportedStatementError, match="PRAGMA"):
            validate_statement("PRAGMA journal_mode = WAL", SQLITE_KEYWORDS)


class TestEffectiveCap:
    """Test row cap computation."""

    def test_default_cap(self):
        """Test that no limit means the hard ceiling."""
        assert effective_cap(None) == HARD_ROW_CEILING == 500

    @pytest.mark.parametrize(
        "limit,expected",
        [(1, 1), (10, 10), (500, 500), (501, 500), (10_000, 500)],
    )
    def test_cap_never_exceeds_ceiling(self, limit, expected):
        """Test that the cap is min(limit, 500)."""
        assert effective_cap(limit) == expected

    @pytest.mark.parametrize("limit", [0, -5, 2.5, "10", True])
    def test_invalid_limit(self, limit):
        """Test that non-positive or non-integer limits are rejected."""
        with pytest.raises(ValueError, match="positive integer"):
            effective_cap(limit)


class TestPrepareQuery:
    """Test LIMIT rewriting."""

    def test_limit_appended(self):
        """Test that a LIMIT is appended when the statement has none."""
        prepared = prepare_query("SELECT * FROM t")

        assert prepared.sql == "SELECT * FROM t\nLIMIT 500"
        assert prepared.rewritten is True
        assert prepared.cap == 500

    def test_trailing_semicolon_removed(self):
        """Test that a trailing semicolon does not end up before the LIMIT."""
        prepared = prepare_query("SELECT * FROM t;  \n", limit=20)

        assert prepared.sql == "SELECT * FROM t\nLIMIT 20"

    def test_comment_after_semicolon_dropped(self):
        """Test that the LIMIT lands before the semicolon, not after a comment."""
        prepared = prepare_query("SELECT * FROM t; -- done", limit=5)

        assert prepared.sql == "SELECT * FROM t\nLIMIT 5"

    def test_trailing_comment_kept_on_own_line(self):
        """Test that the appended LIMIT is not swallowed by a line comment."""
        prepared = prepare_query("SELECT * FROM t -- all rows", limit=5)

        assert prepared.sql.endswith("-- all rows\nLIMIT 5")

    def test_existing_limit_untouched(self):
        """Test that statements with their own LIMIT run verbatim."""
        sql = "select * from t LiMiT 10"
        prepared = prepare_query(sql)

        assert prepared.sql == sql
        assert prepared.has_limit is True
        assert prepared.rewritten is False

    def test_pragma_never_rewritten(self):
        """Test that PRAGMA statements do not get a LIMIT."""
        prepared = prepare_query(
            "PRAGMA table_info(t)", allowed=SQLITE_KEYWORDS, rewritable=READ_ONLY_KEYWORDS
        )

        assert prepared.sql == "PRAGMA table_info(t)"
        assert prepared.rewritten is False

    def test_original_casing_preserved(self):
        """Test that classification does not alter the executed text."""
        prepared = prepare_query("SeLeCt Name FROM \"Users\"")

        assert prepared.sql.startswith("SeLeCt Name FROM \"Users\"")

    def test_rejected_before_limit_check(self):
        """Test that a bad statement fails even with a bad limit."""
        with pytest.raises(UnsupportedStatementError):
            prepare_query("DELETE FROM t", limit=0)

    def test_has_limit_clause(self):
        """Test LIMIT detection."""
        assert has_limit_clause("SELECT 1 LIMIT 3")
        assert has_limit_clause("select 1\nlimit\n3")
        assert not has_limit_clause("SELECT rate_limit FROM t")
        assert not has_limit_clause("SELECT 'limit 5' AS note FROM t")

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM t LIMIT -1",
            "SELECT * FROM t LIMIT ALL",
            "SELECT * FROM t LIMIT (5)",
            "SELECT * FROM t LIMIT ?",
            "SELECT * FROM t LIMIT :n",
            "SELECT * FROM t LIMIT 10 OFFSET 5",
        ],
    )
    def test_any_limit_form_left_alone(self, sql):
        """Test that no second LIMIT is appended to an existing one."""
        prepared = prepare_query(sql)

        assert prepared.sql == sql
        assert prepared.rewritten is False


class TestApplyCap:
    """Test truncation bookkeeping."""

    def test_rewritten_statement_reaching_cap_is_truncated(self):
        """Test that hitting the appended LIMIT counts as truncation."""
        prepared = prepare_query("SELECT * FROM t", limit=3)
        rows, truncated = apply_cap([1, 2, 3], prepared)

        assert rows == [1, 2, 3]
        assert truncated is True

    def test_rewritten_statement_under_cap(self):
        """Test that fewer rows than the cap is not truncation."""
        prepared = prepare_query("SELECT * FROM t", limit=3)
        rows, truncated = apply_cap([1, 2], prepared)

        assert rows == [1, 2]
        assert truncated is False

    def test_own_limit_within_cap(self):
        """Test that a caller's own LIMIT never reports truncation."""
        prepared = prepare_query("SELECT * FROM t LIMIT 10")
        rows, truncated = apply_cap(list(range(10)), prepared)

        assert len(rows) == 10
        assert truncated is False

    def test_own_limit_above_cap(self):
        """Test that the guard cuts an oversized LIMIT and says so."""
        prepared = prepare_query("SELECT * FROM t LIMIT 1000")
        rows, truncated = apply_cap(list(range(501)), prepared)

        assert len(rows) == 500
        assert truncated is True

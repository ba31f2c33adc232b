"""Tests for statement classification and result helpers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from mysqlui.query import (
    QueryResult,
    format_cell,
    is_dangerous_query,
    leading_keyword,
    quote_identifier,
    split_statements,
)


@pytest.mark.parametrize(
    "sql",
    [
        "DROP TABLE users",
        "drop database shop",
        "DELETE FROM users WHERE id = 1",
        "TRUNCATE orders",
        "UPDATE users SET active = 0",
        "update users set note = 'where'",
        "  -- cleanup\nDELETE FROM logs",
        "/* nightly */ truncate table logs",
        "SELECT 1; DROP TABLE users",
        "UPDATE users SET active = (SELECT MAX(flag) FROM flags WHERE id = 1)",
        "WITH x AS (SELECT 1) DELETE FROM users",
        "UPDATE users SET",
    ],
)
def test_dangerous_statements_are_flagged(sql: str) -> None:
    assert is_dangerous_query(sql) is True


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM users",
        "SELECT 'drop table users'",
        "INSERT INTO users (name) VALUES ('delete me')",
        "UPDATE users SET active = 0 WHERE id = 3",
        "update users set active = 0\nwhere id in (1, 2)",
        "UPDATE users SET active = 0 WHERE id IN (SELECT user_id FROM bans WHERE expired = 1)",
        "# drop everything\nSELECT 1",
        "",
    ],
)
def test_safe_statements_are_not_flagged(sql: str) -> None:
    assert is_dangerous_query(sql) is False


def test_leading_keyword_skips_comments_and_parentheses() -> None:
    assert leading_keyword("-- note\n# other\n/* x */ (SELECT 1)") == "select"
    assert leading_keyword("   ") == ""


def test_split_statements_respects_quotes() -> None:
    sql = "SELECT ';'; INSERT INTO t VALUES (\"a;b\"); SELECT `x;y` FROM t;;"

    assert split_statements(sql) == [
        "SELECT ';'",
        'INSERT INTO t VALUES ("a;b")',
        "SELECT `x;y` FROM t",
    ]


def test_split_statements_drops_comment_only_pieces() -> None:
    assert split_statements("SELECT 1; -- trailing note") == ["SELECT 1"]


def test_format_cell_renders_driver_values() -> None:
    assert format_cell(None) == "NULL"
    assert format_cell(True) == "TRUE"
    assert format_cell(Decimal("9.50")) == "9.50"
    assert format_cell(b"hello") == "hello"
    assert format_cell(b"\xff\xfe") == "(binary data)"
    assert format_cell(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02 03:04:05"
    assert format_cell(date(2024, 1, 2)) == "2024-01-02"


def test_quote_identifier_escapes_backticks() -> None:
    assert quote_identifier("order") == "`order`"
    assert quote_identifier("we`ird") == "`we``ird`"


def test_query_result_count_prefers_rows() -> None:
    rows = QueryResult(columns=("a",), rows=(("1",),), status="1 row(s) returned", elapsed_ms=3, row_count=1)
    write = QueryResult(columns=(), rows=(), status="2 row(s) affected", elapsed_ms=1, affected_rows=2)

    assert rows.returns_rows is True
    assert rows.count == 1
    assert write.returns_rows is False
    assert write.count == 2

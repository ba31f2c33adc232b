"""Query results and SQL statement classification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
import re

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError, TokenError
from sqlglot.tokens import Token, TokenType

DIALECT = "mysql"
DANGEROUS_KEYWORDS = frozenset({"drop", "delete", "truncate"})
READ_ONLY_KEYWORDS = frozenset({"select", "show", "describe", "desc", "explain", "use", "set"})

_LINE_COMMENT = re.compile(r"^(--[^\n]*(\n|$)|#[^\n]*(\n|$))")
_BLOCK_COMMENT = re.compile(r"^/\*.*?\*/", re.DOTALL)
_WORD = re.compile(r"[A-Za-z_]+")


class QueryExecutionError(RuntimeError):
    """Raised when the server rejects a statement."""


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized statement output handed to the navigator and the UI.

    Row values are already rendered to text; ``columns`` is empty for
    statements that only report an affected-row count.
    """

    columns: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    status: str
    elapsed_ms: int
    row_count: int | None = None
    affected_rows: int | None = None

    @property
    def returns_rows(self) -> bool:
        return self.row_count is not None

    @property
    def count(self) -> int:
        """Rows returned for row sets, rows affected otherwise."""

        if self.row_count is not None:
            return self.row_count
        return self.affected_rows or 0


def strip_leading_comments(sql: str) -> str:
    """Drop whitespace and leading ``--``, ``#`` and ``/* */`` comments."""

    text = sql.lstrip()
    while text:
        match = _LINE_COMMENT.match(text) or _BLOCK_COMMENT.match(text)
        if not match:
            break
        text = text[match.end():].lstrip()
    return text


def leading_keyword(sql: str) -> str:
    """Lower-cased first keyword of the statement, or ``""``."""

    text = strip_leading_comments(sql).lstrip("(").lstrip()
    match = _WORD.match(text)
    return match.group(0).lower() if match else ""


def tokenize(sql: str) -> list[Token]:
    """MySQL tokens of ``sql``; comments are attached to tokens, not emitted."""

    return sqlglot.tokenize(sql, read=DIALECT)


def split_statements(sql: str) -> list[str]:
    """Split on ``;`` outside quotes and comments and drop empty pieces.

    Text the tokenizer rejects (an unterminated quote, say) comes back as a
    single statement so the server reports the error.
    """

    try:
        tokens = tokenize(sql)
    except TokenError:
        return [sql.strip()] if strip_leading_comments(sql) else []
    statements: list[str] = []
    current: list[Token] = []
    for token in [*tokens, None]:
        if token is None or token.token_type is TokenType.SEMICOLON:
            if current:
                statements.append(sql[current[0].start : current[-1].end + 1])
            current = []
        else:
            current.append(token)
    return statements


def is_dangerous_query(sql: str) -> bool:
    """Whether any statement needs explicit confirmation before running.

    A statement is dangerous when its leading keyword is DROP, DELETE or
    TRUNCATE, when it parses to a DROP or DELETE (``WITH ... DELETE`` too),
    or when it is an UPDATE whose own WHERE clause is missing; a WHERE inside
    a subquery does not count. Keywords inside literals and comments never
    match. Statements that do not parse are dangerous unless they start with
    a read-only keyword.
    """

    return any(_statement_is_dangerous(statement) for statement in split_statements(sql))


def _statement_is_dangerous(statement: str) -> bool:
    keyword = leading_keyword(statement)
    if keyword in DANGEROUS_KEYWORDS:
        return True
    try:
        expr = sqlglot.parse_one(statement, read=DIALECT)
    except SqlglotError:
        return keyword not in READ_ONLY_KEYWORDS
    if isinstance(expr, (exp.Drop, exp.Delete)):
        return True
    return isinstance(expr, exp.Update) and not expr.args.get("where")


def format_cell(value: object) -> str:
    """Render a driver value as display text."""

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return "(binary data)"
    if isinstance(value, (datetime, date, time)):
        return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    return str(value)


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier."""

    return "`" + name.replace("`", "``") + "`"


__all__ = [
    "QueryExecutionError",
    "QueryResult",
    "format_cell",
    "is_dangerous_query",
    "leading_keyword",
    "quote_identifier",
    "split_statements",
    "strip_leading_comments",
    "tokenize",
]

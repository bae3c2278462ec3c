import sqlite3
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any, Sequence

import psycopg
from psycopg.rows import dict_row

from .config import Settings
from .dialect import normalize_sql_for_postgres
from .log import get_logger

logger = get_logger(__name__)


class QueryError(Exception):
    """The engine rejected a statement (syntax, constraint, connectivity)."""

    def __init__(self, backend_message: str, *, unique_violation: bool = False):
        super().__init__(backend_message)
        self.backend_message = backend_message
        self.unique_violation = unique_violation


@dataclass(frozen=True)
class SqliteEngine:
    path: str
    kind: str = field(default='sqlite', init=False)


@dataclass(frozen=True)
class PostgresEngine:
    dsn: str
    kind: str = field(default='postgresql', init=False)

    def __repr__(self) -> str:
        return 'PostgresEngine(dsn=***)'


EngineKind = SqliteEngine | PostgresEngine


@dataclass(frozen=True)
class ExecutionResult:
    rows: list[dict[str, Any]]
    affected: int


def resolve_engine(settings: Settings) -> EngineKind:
    # An empty DSN is valid: libpq falls back to the PG* environment variables.
    if settings.db_type == 'postgresql' or settings.database_url:
        return PostgresEngine(dsn=settings.database_url)
    return SqliteEngine(path=settings.sqlite_path)


def is_read_statement(statement: str) -> bool:
    return statement.strip().lower().startswith('select')


class Database:
    def __init__(self, engine: EngineKind):
        self.engine = engine
        if isinstance(engine, PostgresEngine):
            self._run = self._execute_postgres
        else:
            self._run = self._execute_sqlite

    @property
    def kind(self) -> str:
        return self.engine.kind

    def execute(self, statement: str, params: Sequence[Any] = ()) -> ExecutionResult:
        return self._run(statement, params)

    def insert(self, statement: str, params: Sequence[Any] = ()) -> int | None:
        """Run an INSERT and return the generated ``id``."""
        if self.kind == 'postgresql':
            statement = f"{statement.rstrip().rstrip(';')} RETURNING id"
        result = self.execute(statement, params)
        if not result.rows:
            return None
        return result.rows[0].get('id')

    def test_connection(self) -> bool:
        probe = 'SELECT NOW() AS now' if self.kind == 'postgresql' else 'SELECT 1 AS ok'
        try:
            self.execute(probe)
        except QueryError as exc:
            logger.error('%s connection test failed: %s', self.kind, exc)
            return False
        logger.info('Connected to %s database', self.kind)
        return True

    def _connect_sqlite(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.engine.path)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    def _execute_sqlite(self, statement: str, params: Sequence[Any]) -> ExecutionResult:
        try:
            with closing(self._connect_sqlite()) as conn:
                if is_read_statement(statement):
                    rows = [dict(row) for row in conn.execute(statement, tuple(params)).fetchall()]
                    return ExecutionResult(rows=rows, affected=len(rows))

                cursor = conn.execute(statement, tuple(params))
                conn.commit()
                return ExecutionResult(rows=[{'id': cursor.lastrowid}], affected=cursor.rowcount)
        except sqlite3.Error as exc:
            logger.error('Database query error: %s', exc)
            unique = isinstance(exc, sqlite3.IntegrityError) and 'UNIQUE constraint failed' in str(exc)
            raise QueryError(str(exc), unique_violation=unique) from exc

    def _execute_postgres(self, statement: str, params: Sequence[Any]) -> ExecutionResult:
        text = normalize_sql_for_postgres(statement)
        try:
            with closing(
                psycopg.connect(
                    self.engine.dsn,
                    row_factory=dict_row,
                    cursor_factory=psycopg.RawCursor,
                    prepare_threshold=None,
                )
            ) as conn:
                with conn.cursor() as cur:
                    cur.execute(text, tuple(params) or None)
                    rows = cur.fetchall() if cur.description is not None else []
                    affected = cur.rowcount
                conn.commit()
        except psycopg.Error as exc:
            logger.error('Database query error: %s', exc)
            unique = isinstance(exc, psycopg.errors.UniqueViolation)
            raise QueryError(str(exc), unique_violation=unique) from exc
        return ExecutionResult(rows=[dict(row) for row in rows], affected=affected)

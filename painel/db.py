import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterable, List

from flask import current_app, g


logger = logging.getLogger("painel")


class Database:
    def __init__(self, backend: str, connection, cursor_factory=None):
        self.backend = backend
        self._conn = connection
        self._cursor_factory = cursor_factory

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=self._cursor_factory)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    in_double = False
    for ch in sql:
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == ";" and not in_single and not in_double:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def is_postgres_url(db_path: str) -> bool:
    return str(db_path or "").lower().startswith("postgres")


def _connect_database(db_path: str) -> Database:
    if is_postgres_url(db_path):
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError as exc:
            raise RuntimeError("psycopg2 nao instalado. Use o extra 'postgres'.") from exc
        conn = psycopg2.connect(db_path)
        conn.autocommit = False
        return Database("postgres", conn, cursor_factory=psycopg2.extras.RealDictCursor)

    directory = os.path.dirname(os.path.abspath(db_path))
    os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return Database("sqlite", conn)


@contextmanager
def transaction(db: Database):
    """Commits every write issued inside the block, or none of them."""
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    db.commit()


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def get_read_db():
    if "db_read" not in g:
        read_url = current_app.config.get("DATABASE_READ_URL")
        if not read_url:
            return get_db()
        g.db_read = _connect_database(read_url)
    return g.db_read


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()
    db_read = g.pop("db_read", None)
    if db_read is not None:
        db_read.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
    else:
        _init_db_sqlite(db)
    db.commit()
    logger.info("schema_initialized", extra={"db_backend": db.backend})


SCHEMA_TABLES = (
    "devolucao_historico",
    "produtos_devolvidos",
    "devolucoes",
    "ocorrencias",
    "auth_users",
)


def _init_db_sqlite(db: Database):
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS auth_users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            display_name TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS devolucoes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            usuario_id TEXT NOT NULL,
            data TEXT NOT NULL,
            cliente TEXT NOT NULL,
            vendedor TEXT NOT NULL DEFAULT '',
            rede TEXT NOT NULL DEFAULT '',
            cidade TEXT NOT NULL DEFAULT '',
            uf TEXT NOT NULL DEFAULT '',
            motorista TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'pendente'
                CHECK (status IN ('pendente', 'em_analise', 'revisado', 'finalizado')),
            observacao TEXT NOT NULL DEFAULT '',
            anexos TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS produtos_devolvidos (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            devolucao_id INTEGER NOT NULL REFERENCES devolucoes(id) ON DELETE CASCADE,
            posicao INTEGER NOT NULL DEFAULT 0,
            codigo TEXT NOT NULL DEFAULT '',
            produto TEXT NOT NULL,
            familia TEXT NOT NULL DEFAULT '',
            grupo TEXT NOT NULL DEFAULT '',
            quantidade REAL NOT NULL DEFAULT 0 CHECK (quantidade >= 0),
            tipo TEXT NOT NULL DEFAULT '',
            motivo TEXT NOT NULL DEFAULT '',
            estado TEXT NOT NULL DEFAULT '',
            reincidencia TEXT NOT NULL DEFAULT ''
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS devolucao_historico (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            devolucao_id INTEGER NOT NULL REFERENCES devolucoes(id) ON DELETE CASCADE,
            usuario TEXT NOT NULL,
            data TEXT NOT NULL,
            alteracao TEXT NOT NULL
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS ocorrencias (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            usuario_id TEXT NOT NULL,
            data TEXT NOT NULL,
            cliente TEXT NOT NULL,
            vendedor TEXT NOT NULL DEFAULT '',
            rede TEXT NOT NULL DEFAULT '',
            cidade TEXT NOT NULL DEFAULT '',
            uf TEXT NOT NULL DEFAULT '',
            motorista TEXT NOT NULL DEFAULT '',
            reincidencia TEXT NOT NULL DEFAULT '',
            setor_responsavel TEXT NOT NULL DEFAULT '',
            motivo_ocorrencia TEXT NOT NULL DEFAULT '',
            resumo_ocorrencia TEXT NOT NULL DEFAULT '',
            tratativa TEXT NOT NULL DEFAULT '',
            impactos TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    _create_indexes(db)


def _init_db_postgres(db: Database) -> None:
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS auth_users (
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            display_name TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS devolucoes (
            id SERIAL PRIMARY KEY,
            usuario_id TEXT NOT NULL,
            data TEXT NOT NULL,
            cliente TEXT NOT NULL,
            vendedor TEXT NOT NULL DEFAULT '',
            rede TEXT NOT NULL DEFAULT '',
            cidade TEXT NOT NULL DEFAULT '',
            uf TEXT NOT NULL DEFAULT '',
            motorista TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'pendente'
                CHECK (status IN ('pendente', 'em_analise', 'revisado', 'finalizado')),
            observacao TEXT NOT NULL DEFAULT '',
            anexos TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS produtos_devolvidos (
            id SERIAL PRIMARY KEY,
            devolucao_id INTEGER NOT NULL REFERENCES devolucoes(id) ON DELETE CASCADE,
            posicao INTEGER NOT NULL DEFAULT 0,
            codigo TEXT NOT NULL DEFAULT '',
            produto TEXT NOT NULL,
            familia TEXT NOT NULL DEFAULT '',
            grupo TEXT NOT NULL DEFAULT '',
            quantidade DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (quantidade >= 0),
            tipo TEXT NOT NULL DEFAULT '',
            motivo TEXT NOT NULL DEFAULT '',
            estado TEXT NOT NULL DEFAULT '',
            reincidencia TEXT NOT NULL DEFAULT ''
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS devolucao_historico (
            id SERIAL PRIMARY KEY,
            devolucao_id INTEGER NOT NULL REFERENCES devolucoes(id) ON DELETE CASCADE,
            usuario TEXT NOT NULL,
            data TEXT NOT NULL,
            alteracao TEXT NOT NULL
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS ocorrencias (
            id SERIAL PRIMARY KEY,
            usuario_id TEXT NOT NULL,
            data TEXT NOT NULL,
            cliente TEXT NOT NULL,
            vendedor TEXT NOT NULL DEFAULT '',
            rede TEXT NOT NULL DEFAULT '',
            cidade TEXT NOT NULL DEFAULT '',
            uf TEXT NOT NULL DEFAULT '',
            motorista TEXT NOT NULL DEFAULT '',
            reincidencia TEXT NOT NULL DEFAULT '',
            setor_responsavel TEXT NOT NULL DEFAULT '',
            motivo_ocorrencia TEXT NOT NULL DEFAULT '',
            resumo_ocorrencia TEXT NOT NULL DEFAULT '',
            tratativa TEXT NOT NULL DEFAULT '',
            impactos TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    _create_indexes(db)


def _create_indexes(db: Database) -> None:
    db.execute("CREATE INDEX IF NOT EXISTS idx_devolucoes_usuario ON devolucoes (usuario_id, data)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_produtos_devolucao ON produtos_devolvidos (devolucao_id, posicao)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_historico_devolucao ON devolucao_historico (devolucao_id, id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_ocorrencias_usuario ON ocorrencias (usuario_id, data)")


def table_exists(db: Database, table: str) -> bool:
    if db.backend == "postgres":
        row = db.execute(
            """
            SELECT 1
            FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name = ?
            """,
            (table,),
        ).fetchone()
        return row is not None

    row = db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
        (table,),
    ).fetchone()
    return row is not None

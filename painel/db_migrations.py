from __future__ import annotations

from pathlib import Path

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask

from painel.db import is_postgres_url

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Tables whose row counts `flask db status` reports.
RECORD_TABLES = ("devolucoes", "produtos_devolvidos", "ocorrencias", "auth_users")


def to_sqlalchemy_url(raw_db_path: str) -> str:
    """Turns DB_PATH (a file path or a database URL) into the URL Alembic connects with."""
    raw = (raw_db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH nao configurado; defina DATABASE_URL ou DB_PATH.")
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://") :]
    if is_postgres_url(raw) or raw.startswith("sqlite"):
        return raw
    return f"sqlite:///{Path(raw).expanduser().resolve().as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    ini_path = PROJECT_ROOT / "alembic.ini"
    if not ini_path.is_file():
        raise RuntimeError(f"Arquivo de migrations ausente: {ini_path}")
    cfg = AlembicConfig(str(ini_path))
    cfg.set_main_option("script_location", (PROJECT_ROOT / "migrations").as_posix())
    cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(app.config["DB_PATH"]))
    return cfg


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Schema do painel: migrations Alembic, criacao local e conferencia."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        command.upgrade(build_alembic_config(app), revision)
        click.echo(f"Schema do painel atualizado para {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        command.downgrade(build_alembic_config(app), revision)
        click.echo(f"Schema do painel revertido para {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        command.current(build_alembic_config(app), verbose=True)

    @db_group.command("init")
    @click.option("--sem-usuarios", "skip_users", is_flag=True, help="Nao copia APP_USERS para auth_users.")
    def db_init(skip_users: bool) -> None:
        """Cria as tabelas sem Alembic e registra os usuarios configurados."""
        from painel.auth import sync_configured_users
        from painel.db import get_db, init_db

        with app.app_context():
            init_db()
            click.echo("Tabelas de devolucoes e ocorrencias criadas.")
            if not skip_users:
                total = sync_configured_users(get_db(), app.config.get("APP_USERS"))
                click.echo(f"{total} usuario(s) de APP_USERS registrados.")

    @db_group.command("status")
    def db_status() -> None:
        """Lista as tabelas do painel e quantos registros cada uma guarda."""
        from painel.db import SCHEMA_TABLES, get_db, table_exists

        missing = []
        with app.app_context():
            db = get_db()
            for table in SCHEMA_TABLES:
                if not table_exists(db, table):
                    missing.append(table)
                    click.echo(f"{table}: ausente")
                elif table in RECORD_TABLES:
                    total = db.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()["total"]
                    click.echo(f"{table}: {total}")
                else:
                    click.echo(f"{table}: ok")
        if missing:
            raise click.ClickException("Schema incompleto; rode `flask db upgrade` ou `flask db init`.")

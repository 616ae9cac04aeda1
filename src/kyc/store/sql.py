"""SQLAlchemy metadata and engine helpers for the durable record tier."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Engine
from sqlalchemy.engine import URL
from sqlalchemy.orm import sessionmaker

from kyc.settings import Settings, get_settings

TIMESTAMP = sa.DateTime(timezone=True)
IDENTIFIER_TYPE = sa.String(length=64)

METADATA = sa.MetaData()

kyc_records = sa.Table(
    "kyc_records",
    METADATA,
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("identifier", IDENTIFIER_TYPE, nullable=False),
    sa.Column("first_name", sa.Text(), nullable=False, server_default=""),
    sa.Column("last_name", sa.Text(), nullable=False, server_default=""),
    sa.Column("address", sa.Text(), nullable=False, server_default=""),
    sa.Column("phone_number", sa.Text(), nullable=True),
    sa.Column("email", sa.Text(), nullable=True),
    sa.Column("tax_country", sa.Text(), nullable=False, server_default=""),
    sa.Column("income", sa.Integer(), nullable=True),
    sa.Column("cached_at", TIMESTAMP, nullable=False),
    sa.UniqueConstraint("identifier", name="uq_kyc_records_identifier"),
)


def _resolve_database_url(settings: Settings | None = None) -> str:
    """Return the SQLAlchemy URL considering overrides and the configured SQLite path."""

    resolved = settings or get_settings()
    if resolved.storage.database_url:
        return resolved.storage.database_url

    sqlite_path = Path(resolved.storage.sqlite_path)
    return URL.create("sqlite", database=sqlite_path.as_posix()).render_as_string(hide_password=False)


def build_engine(*, echo: bool | None = None, settings: Settings | None = None) -> Engine:
    """Instantiate a SQLAlchemy engine aligned with project settings."""

    resolved = settings or get_settings()
    url = _resolve_database_url(resolved)
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite:///"):
        connect_args["check_same_thread"] = False
        database = url.removeprefix("sqlite:///")
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    if echo is None:
        echo = resolved.storage.echo_sql
    return sa.create_engine(url, echo=echo, future=True, pool_pre_ping=True, connect_args=connect_args)


def create_schema(engine: Engine) -> None:
    """Create the durable tier tables when they do not exist yet."""

    METADATA.create_all(engine)


def session_factory(*, settings: Settings | None = None, engine: Engine | None = None) -> sessionmaker:
    """Return a configured sessionmaker bound to the active engine, creating the schema."""

    bound = engine or build_engine(settings=settings)
    create_schema(bound)
    return sessionmaker(bind=bound, autoflush=False, autocommit=False, future=True)

"""Database engine and connections."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Connection, create_engine
from sqlalchemy.engine import Engine


def create_database_engine(database_url: str) -> Engine:
    """Create the pooled engine for the relational store."""
    return create_engine(database_url, pool_pre_ping=True)


@contextmanager
def transaction(engine: Engine) -> Generator[Connection, None, None]:
    """Get a connection wrapped in a transaction (commit on success)."""
    with engine.begin() as conn:
        yield conn

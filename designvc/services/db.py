# designvc/services/db.py
from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from designvc.models.version import Base

logger = logging.getLogger(__name__)

_WRITE_LOCK = "designvc_write_lock"


def _sqlite_on_connect(dbapi_conn, _record):
    # let SQLAlchemy emit BEGIN itself instead of pysqlite deferring it
    dbapi_conn.isolation_level = None


def _sqlite_on_begin(conn):
    if conn.get_execution_options().get(_WRITE_LOCK):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


class Database:
    """
    Owns the SQLAlchemy engine for the version table.

    Built explicitly and handed to whoever needs it; `open()` on startup,
    `close()` on shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Engine | None = None
        self._sessions: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def open(self) -> "Database":
        if self._engine is not None:
            return self

        kwargs: dict = {"echo": self.echo}
        url = make_url(self.url)
        if url.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # one shared connection, otherwise every session gets its own empty db
                kwargs["poolclass"] = StaticPool

        self._engine = create_engine(self.url, **kwargs)
        if url.get_backend_name() == "sqlite":
            event.listen(self._engine, "connect", _sqlite_on_connect)
            event.listen(self._engine, "begin", _sqlite_on_begin)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        logger.info(f"Opened database {url.render_as_string(hide_password=True)}")
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Closed database")

    def session(self) -> Session:
        if self._sessions is None:
            raise RuntimeError("Database is not open")
        return self._sessions()

    @staticmethod
    def lock_for_write(session: Session) -> None:
        """
        Call first thing inside `session.begin()`. On SQLite the transaction
        starts with BEGIN IMMEDIATE, so reads made before the first write
        (e.g. the current max version number) already hold the write lock.
        Other backends ignore the option and rely on the unique constraint.
        """
        session.connection(execution_options={_WRITE_LOCK: True})

"""
core/database.py -- Engine ownership and transaction scoping for the stores.

One Database is constructed at process start (api/main.py lifespan or the
main.py CLI) and handed by reference to every store. Nothing in the codebase
creates engines on its own, and there is no module-level connection pool.

The stores (auth/store.py, tenants/store.py) declare their tables on the shared
`metadata` below and call metadata.create_all() from their constructors, so
one engine holds the whole schema and a single transaction can span users,
roles, tenants, and ledgers.

Transaction model:
  Every store method takes an optional `conn`. When a workflow passes the
  Connection yielded by Database.transaction(), the method joins that
  transaction. When it passes nothing, Database.connect(None) opens a short
  transaction of its own and commits it on exit. An exception raised inside
  either `with` block rolls the transaction back before it propagates.

Layer rule: core/ may not import from api/, auth/, or tenants/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger("tenantguard.database")

metadata = MetaData()


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL mode and foreign keys on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the SQLAlchemy Engine and hands out transactional connections.

    Usage:
        db = Database("sqlite:///tenantguard.db")
        user_store = UserStore(db)
        with db.transaction() as conn:
            user_store.create_user(user, conn=conn)
            user_store.assign_role(user_id, role_id, conn=conn)
        db.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a Connection inside BEGIN; COMMIT on clean exit, ROLLBACK on error."""
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def connect(self, conn: Connection | None = None) -> Iterator[Connection]:
        """Join the caller's transaction if one is given, else open a new one."""
        if conn is not None:
            yield conn
            return
        with self.engine.begin() as own:
            yield own

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
            return True
        except Exception:
            logger.warning("Database ping failed", exc_info=True)
            return False

    def close(self) -> None:
        self.engine.dispose()

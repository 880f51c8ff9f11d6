# fulfillment/data/database.py
import functools
import uuid
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from fulfillment.utils.logging import get_logger
from fulfillment.utils.retry import serializable_retrying
from fulfillment.utils.settings import DATABASE_URL

logger = get_logger(__name__)

SERIALIZABLE = "SERIALIZABLE"

_UOW_DEPTH = "unit_of_work_depth"

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def configure_sqlite(engine: Engine) -> Engine:
    """
    pysqlite issues its own BEGIN lazily and breaks SAVEPOINT; take over
    transaction control and start every transaction with BEGIN IMMEDIATE so
    writers are serialized the way SERIALIZABLE would on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        return configure_sqlite(create_engine(url, connect_args=connect_args, **kwargs))
    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def in_unit_of_work(db: Session) -> bool:
    return db.info.get(_UOW_DEPTH, 0) > 0


@contextmanager
def unit_of_work(db: Session, isolation_level: str | None = None):
    """
    Transaction scope for one core operation.

    The outermost unit commits on success and rolls back on any exception;
    nested units join the outer transaction and leave commit/rollback to it.
    The isolation level only applies when the unit opens the transaction.
    """
    depth = db.info.get(_UOW_DEPTH, 0)
    db.info[_UOW_DEPTH] = depth + 1
    try:
        if depth:
            yield db
            return

        if isolation_level and db.get_bind().dialect.name != "sqlite":
            if db.in_transaction():
                logger.debug(f"Session already in a transaction, {isolation_level} not applied")
            else:
                db.connection(execution_options={"isolation_level": isolation_level})

        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
    finally:
        db.info[_UOW_DEPTH] = depth


def transactional(isolation_level: str | None = SERIALIZABLE):
    """
    Run a service method ``(self, db, ...)`` in its own unit of work, retrying
    serialization failures when it is the outermost one.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, db: Session, *args, **kwargs):
            if in_unit_of_work(db):
                return fn(self, db, *args, **kwargs)
            for attempt in serializable_retrying():
                with attempt:
                    with unit_of_work(db, isolation_level):
                        return fn(self, db, *args, **kwargs)

        return wrapper

    return decorator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings

# Get DB connection string from the environment-backed settings.
DATABASE_URL = get_settings().database_url


def enable_sqlite_savepoints(engine):
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINTs behave."""

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


if DATABASE_URL.startswith("sqlite"):
    # FastAPI runs sync routes in a threadpool.
    engine = enable_sqlite_savepoints(
        create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
    )
else:
    # Create the SQLAlchemy engine.
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

# Create a configured "Session" class for database interactions.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative ORM models.
Base = declarative_base()


def get_db():
    """FastAPI dependency to get a DB session for a single request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        # Ensure the session is always closed after the request is finished.
        db.close()

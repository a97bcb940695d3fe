from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.engine.url import make_url
from config.settings import settings
from db.base import Base
import logging
import socket

logger = logging.getLogger(__name__)

engine_kwargs = {"pool_pre_ping": True, "pool_recycle": 300}

# Pass to Session.connection() to start a transaction that writes.
# SQLite takes the write lock at BEGIN; other dialects ignore the option.
WRITE_TRANSACTION_OPTIONS = {"sqlite_immediate": True}


def _configure_sqlite_transactions(engine):
    """Control BEGIN on SQLite so writers can be serialized up front.

    pysqlite defers BEGIN until the first write, which lets two recorders both
    pass a check before either writes. Transactions started with
    WRITE_TRANSACTION_OPTIONS use BEGIN IMMEDIATE; everything else stays a
    plain deferred BEGIN, and WAL keeps those readers off the writers' lock.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's own transaction handling so we control BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get("sqlite_immediate"):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


def make_engine(database_url: str):
    """Build a sync engine for the given URL (SQLite or PostgreSQL)."""
    try:
        url = make_url(database_url)
    except Exception:
        # Fallback to raw string
        return create_engine(database_url, **engine_kwargs)

    # SQLite
    if url.drivername.startswith("sqlite"):
        sqlite_engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS},
            **engine_kwargs,
        )
        return _configure_sqlite_transactions(sqlite_engine)

    pool_kwargs = {"pool_size": settings.DB_POOL_SIZE, "max_overflow": settings.DB_MAX_OVERFLOW}

    # Postgres with psycopg2: resolve IPv4 to avoid IPv6 issues inside containers
    if url.drivername.startswith("postgresql") and url.host:
        try:
            infos = socket.getaddrinfo(url.host, url.port or 5432, family=socket.AF_INET, type=socket.SOCK_STREAM)
            ipv4 = infos[0][4][0] if infos else None
        except Exception as e:
            logger.warning(f"IPv4 DNS resolution failed for {url.host}: {e}")
            ipv4 = None
        if ipv4:
            try:
                import psycopg2  # type: ignore

                def _creator():
                    return psycopg2.connect(
                        host=ipv4,
                        port=url.port or 5432,
                        user=url.username,
                        password=url.password,
                        dbname=url.database,
                        sslmode=url.query.get("sslmode", "prefer"),
                        connect_timeout=10,
                        application_name="marketplace-views",
                    )
                return create_engine(url, creator=_creator, **pool_kwargs, **engine_kwargs)
            except Exception as e:
                logger.warning(f"IPv4 creator connect fallback: {e}")
        # Default engine
        return create_engine(url, **pool_kwargs, **engine_kwargs)

    # Default
    return create_engine(url, **engine_kwargs)


engine = make_engine(settings.DATABASE_URL_SYNC)

# Create sessionmaker
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def create_tables(bind=None):
    """Create all tables"""
    # Import models so every table is registered on Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

# PostgreSQL SQLSTATEs worth retrying: deadlock, lock_timeout, serialization failure, statement timeout
TRANSIENT_PGCODES = {"40P01", "55P03", "40001", "57014"}

# pysqlite reports contention only through the message text
TRANSIENT_SQLITE_MESSAGES = ("database is locked", "database table is locked", "database is busy")


class ViewEngineError(Exception):
    """Base class for view engine failures"""


class ValidationError(ViewEngineError):
    """Malformed input (e.g. a non-positive entity id)"""


class NotFoundError(ViewEngineError):
    """The viewed shop or product does not exist"""

    def __init__(self, entity_kind: str, entity_id: int):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(f"{entity_kind} {entity_id} not found")


class TransientError(ViewEngineError):
    """Lock timeout, deadlock or lost connection; the whole operation may be retried"""


class StorageError(ViewEngineError):
    """Any other persistence failure"""


def _sqlstate(orig) -> str:
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None) or ""


def is_transient_db_error(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if not isinstance(exc, OperationalError):
        return False
    code = _sqlstate(exc.orig)
    # Class 08: connection exceptions
    if code in TRANSIENT_PGCODES or code.startswith("08"):
        return True
    message = str(exc.orig).lower()
    return any(m in message for m in TRANSIENT_SQLITE_MESSAGES)


def translate_db_error(exc: SQLAlchemyError) -> ViewEngineError:
    """Map a SQLAlchemy exception onto the engine's error taxonomy."""
    if is_transient_db_error(exc):
        return TransientError(f"Database temporarily unavailable: {getattr(exc, 'orig', exc)}")
    return StorageError(f"Database error: {exc}")

"""
View recording for shops and products.

One engine serves both entity kinds. Recording a view runs as a single
transaction: pick the dedup policy, lock the visitor key, look for a prior
view inside the window, and either report the current total or append a
ledger row and bump the aggregate. The ledger row and the increment are
always committed together or not at all.
"""
from datetime import datetime
from typing import Callable, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.dedup import select_policy
from core.errors import NotFoundError, StorageError, ValidationError, translate_db_error
from core.identity import VisitorIdentity
from db.session import WRITE_TRANSACTION_OPTIONS
from crud.views import ViewCounter, ViewLedger, get_view_target
from schemas.view import ViewRecordResult, ViewStats

logger = logging.getLogger(__name__)


def _check_entity_id(entity_id) -> int:
    if isinstance(entity_id, bool) or not isinstance(entity_id, int) or entity_id <= 0:
        raise ValidationError(f"Invalid entity id: {entity_id!r}")
    return entity_id


def _target(entity_kind):
    try:
        return get_view_target(entity_kind)
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown entity kind: {entity_kind!r}") from None


class ViewRecorder:
    """Records deduplicated views for the database the given session is bound to.

    Recording runs in its own session and transaction, so the caller's pending
    work is neither committed nor rolled back by it. `clock` overrides the
    database clock (tests).
    """

    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock

    def record_view(self, entity_kind, entity_id: int, identity: VisitorIdentity) -> ViewRecordResult:
        target = _target(entity_kind)
        entity_id = _check_entity_id(entity_id)
        session = Session(bind=self.db.get_bind(), autoflush=False)
        try:
            return self._record(session, target, entity_id, identity)
        finally:
            session.close()

    def _record(self, session: Session, target, entity_id: int, identity: VisitorIdentity) -> ViewRecordResult:
        ledger = ViewLedger(session, target)
        counter = ViewCounter(session, target)

        try:
            session.connection(execution_options=WRITE_TRANSACTION_OPTIONS)
            now = self.clock() if self.clock else ledger.server_now()
            policy = select_policy(identity)

            if not counter.exists(entity_id):
                raise NotFoundError(target.kind.value, entity_id)

            ledger.lock_visitor(entity_id, policy)
            if ledger.exists_matching(entity_id, policy, now):
                views = counter.get(entity_id)
                session.commit()
                return ViewRecordResult(views=views or 0, is_new=False)

            ledger.append(entity_id, identity.user_id, identity.address, identity.signature, now)
            views = counter.increment_and_get(entity_id)
            if views is None:
                # Entity deleted between the existence check and the update
                raise NotFoundError(target.kind.value, entity_id)

            session.commit()
            logger.debug(
                f"Recorded {target.kind.value} {entity_id} view via {policy.tier.value} tier (total={views})"
            )
            return ViewRecordResult(views=views, is_new=True)

        except NotFoundError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            error = translate_db_error(e)
            logger.error(f"Error recording {target.kind.value} {entity_id} view: {error}")
            raise error from e
        except Exception as e:
            session.rollback()
            logger.error(f"Error recording {target.kind.value} {entity_id} view: {e}")
            raise

    def get_view_count(self, entity_kind, entity_id: int) -> int:
        target = _target(entity_kind)
        entity_id = _check_entity_id(entity_id)
        try:
            views = ViewCounter(self.db, target).get(entity_id)
        except SQLAlchemyError as e:
            raise translate_db_error(e) from e
        if views is None:
            raise NotFoundError(target.kind.value, entity_id)
        return views

    def get_view_stats(self, entity_kind, entity_id: int) -> ViewStats:
        """Informational read over the ledger; no locking."""
        target = _target(entity_kind)
        entity_id = _check_entity_id(entity_id)
        try:
            stats = ViewLedger(self.db, target).stats(entity_id)
        except SQLAlchemyError as e:
            logger.error(f"Error reading {target.kind.value} {entity_id} view stats: {e}")
            raise StorageError(f"Database error: {e}") from e
        return ViewStats(**stats)


def record_view(db: Session, entity_kind, entity_id: int, identity: VisitorIdentity) -> ViewRecordResult:
    return ViewRecorder(db).record_view(entity_kind, entity_id, identity)


def get_view_count(db: Session, entity_kind, entity_id: int) -> int:
    return ViewRecorder(db).get_view_count(entity_kind, entity_id)


def get_view_stats(db: Session, entity_kind, entity_id: int) -> ViewStats:
    return ViewRecorder(db).get_view_stats(entity_kind, entity_id)

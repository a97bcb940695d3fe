import logging
from dataclasses import dataclass
from datetime import timezone
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config.settings import settings
from crud.views import EntityKind, get_view_target

logger = logging.getLogger(__name__)

_scheduler: Optional[BackgroundScheduler] = None


@dataclass
class ViewCountDrift:
    entity_kind: str
    entity_id: int
    views: int
    ledger_count: int


def find_view_count_drift(db: Session, entity_kind) -> List[ViewCountDrift]:
    """Entities whose `views` total disagrees with their ledger row count.

    Read-only. Every accepted view writes one ledger row and one increment in
    the same transaction, so any hit here means something bypassed the recorder.
    """
    target = get_view_target(entity_kind)
    entity = target.entity_model
    ledger = target.ledger_model

    ledger_counts = (
        select(target.ledger_entity_id.label("entity_id"), func.count(ledger.id).label("n"))
        .group_by(target.ledger_entity_id)
        .subquery()
    )
    counted = func.coalesce(ledger_counts.c.n, 0)
    rows = db.execute(
        select(entity.id, func.coalesce(entity.views, 0), counted)
        .outerjoin(ledger_counts, ledger_counts.c.entity_id == entity.id)
        .where(func.coalesce(entity.views, 0) != counted)
        .order_by(entity.id)
    ).all()
    return [ViewCountDrift(target.kind.value, r[0], r[1], r[2]) for r in rows]


def audit_tick(session_factory=None) -> List[ViewCountDrift]:
    if session_factory is None:
        from db.session import SessionLocal
        session_factory = SessionLocal
    drift: List[ViewCountDrift] = []
    db = session_factory()
    try:
        for kind in EntityKind:
            try:
                found = find_view_count_drift(db, kind)
            except Exception as e:
                logger.warning("View audit failed for %s: %s", kind.value, e)
                continue
            for d in found:
                logger.warning(
                    "View count drift on %s %s: views=%s ledger=%s",
                    d.entity_kind, d.entity_id, d.views, d.ledger_count,
                )
            drift.extend(found)
        if not drift:
            logger.info("View audit clean")
    finally:
        db.close()
    return drift


def start_view_audit_scheduler() -> Optional[BackgroundScheduler]:
    global _scheduler
    if _scheduler is not None:
        return _scheduler
    if not settings.VIEW_AUDIT_ENABLED:
        logger.info("View audit disabled")
        return None
    try:
        sched = BackgroundScheduler(timezone=str(timezone.utc))
        sched.add_job(audit_tick, 'interval', seconds=settings.VIEW_AUDIT_INTERVAL_SECONDS, id='view-audit', max_instances=1, coalesce=True)
        sched.start()
        _scheduler = sched
        logger.info("View audit scheduler started: every %ss", settings.VIEW_AUDIT_INTERVAL_SECONDS)
        return sched
    except Exception as e:
        logger.warning("Failed to start view audit scheduler: %s", e)
        return None


def shutdown_view_audit_scheduler():
    global _scheduler
    try:
        if _scheduler:
            _scheduler.shutdown(wait=False)
            _scheduler = None
            logger.info("View audit scheduler stopped")
    except Exception as e:
        logger.warning("Error stopping view audit scheduler: %s", e)

from sqlalchemy import update

from core.audit import audit_tick, find_view_count_drift
from core.identity import VisitorIdentity
from core.views import ViewRecorder
from crud.views import EntityKind
from models.shop import Shop


def test_no_drift_after_recording(db, clock, shop, product):
    recorder = ViewRecorder(db, clock=clock)
    recorder.record_view(EntityKind.SHOP, shop, VisitorIdentity(None, "192.0.2.1", "a"))
    recorder.record_view(EntityKind.SHOP, shop, VisitorIdentity(None, "192.0.2.2", "a"))
    recorder.record_view(EntityKind.PRODUCT, product, VisitorIdentity(None, "192.0.2.1", "a"))

    assert find_view_count_drift(db, EntityKind.SHOP) == []
    assert find_view_count_drift(db, EntityKind.PRODUCT) == []


def test_drift_is_reported_not_repaired(db, clock, shop, other_shop, session_factory):
    ViewRecorder(db, clock=clock).record_view(EntityKind.SHOP, shop, VisitorIdentity(None, "192.0.2.1", "a"))
    db.execute(update(Shop).where(Shop.id == other_shop).values(views=4))
    db.commit()

    drift = audit_tick(session_factory)

    assert len(drift) == 1
    assert drift[0].entity_kind == "shop"
    assert drift[0].entity_id == other_shop
    assert drift[0].views == 4
    assert drift[0].ledger_count == 0

    # The audit only reads
    db.expire_all()
    assert db.get(Shop, other_shop).views == 4
    db.commit()

from sqlalchemy import distinct, func, select, text, update
from sqlalchemy.orm import Session
from typing import NamedTuple, Optional, Type
from datetime import datetime
import enum
import hashlib
import logging

from config.settings import settings
from core.dedup import DedupPolicy
from models.product import Product
from models.shop import Shop
from models.view import ProductView, ShopView

logger = logging.getLogger(__name__)


class EntityKind(str, enum.Enum):
    SHOP = "shop"
    PRODUCT = "product"


class ViewTarget(NamedTuple):
    """Entity table carrying the `views` aggregate plus its ledger table"""

    kind: EntityKind
    entity_model: Type
    ledger_model: Type
    ledger_entity_column: str

    @property
    def ledger_entity_id(self):
        return getattr(self.ledger_model, self.ledger_entity_column)


VIEW_TARGETS = {
    EntityKind.SHOP: ViewTarget(EntityKind.SHOP, Shop, ShopView, "shop_id"),
    EntityKind.PRODUCT: ViewTarget(EntityKind.PRODUCT, Product, ProductView, "product_id"),
}


def get_view_target(kind) -> ViewTarget:
    return VIEW_TARGETS[EntityKind(kind)]


def _advisory_lock_id(kind: EntityKind, entity_id: int, policy: DedupPolicy) -> int:
    """Fold (kind, entity, tier, visitor) into a signed 64-bit advisory lock id"""
    raw = repr((kind.value, entity_id) + policy.lock_key).encode("utf-8")
    return int.from_bytes(hashlib.blake2b(raw, digest_size=8).digest(), "big", signed=True)


class ViewLedger:
    """Append-only log of accepted views for one entity kind"""

    def __init__(self, db: Session, target: ViewTarget):
        self.db = db
        self.target = target

    def server_now(self) -> datetime:
        """Database clock, so every app instance stamps and compares on the same time base"""
        return self.db.execute(select(func.now())).scalar_one()

    def lock_visitor(self, entity_id: int, policy: DedupPolicy) -> None:
        """Serialize concurrent recorders for the same entity and visitor.

        On PostgreSQL a transaction-scoped advisory lock covers the case where no
        matching ledger row exists yet, which FOR UPDATE alone cannot lock.
        On SQLite the recording transaction already holds the write lock from BEGIN IMMEDIATE.
        """
        if self.db.get_bind().dialect.name != "postgresql":
            return
        self.db.execute(text(f"SET LOCAL lock_timeout = {int(settings.DB_LOCK_TIMEOUT_MS)}"))
        self.db.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": _advisory_lock_id(self.target.kind, entity_id, policy)},
        )

    def exists_matching(self, entity_id: int, policy: DedupPolicy, now: datetime) -> bool:
        """Locking read: is there an accepted view by this visitor inside the window?"""
        ledger = self.target.ledger_model
        stmt = (
            select(ledger.id)
            .where(self.target.ledger_entity_id == entity_id)
            .where(ledger.viewed_at >= policy.window_start(now))
        )
        for column, value in policy.match.items():
            stmt = stmt.where(getattr(ledger, column) == value)
        stmt = stmt.limit(1).with_for_update()
        return self.db.execute(stmt).first() is not None

    def append(self, entity_id: int, user_id: Optional[int], address: str, signature: str, now: datetime):
        event = self.target.ledger_model(
            user_id=user_id,
            ip_address=address,
            user_agent=signature,
            viewed_at=now,
        )
        setattr(event, self.target.ledger_entity_column, entity_id)
        self.db.add(event)
        self.db.flush()
        return event

    def stats(self, entity_id: int) -> dict:
        ledger = self.target.ledger_model
        row = self.db.execute(
            select(
                func.count(ledger.id),
                func.count(distinct(ledger.user_id)),
                func.count(distinct(ledger.ip_address)),
                func.max(ledger.viewed_at),
            ).where(self.target.ledger_entity_id == entity_id)
        ).one()
        return {
            "total_views": row[0] or 0,
            "unique_users": row[1] or 0,
            "unique_addresses": row[2] or 0,
            "last_viewed_at": row[3],
        }


class ViewCounter:
    """The `views` column on the shop/product row"""

    def __init__(self, db: Session, target: ViewTarget):
        self.db = db
        self.target = target

    def exists(self, entity_id: int) -> bool:
        entity = self.target.entity_model
        return self.db.execute(select(entity.id).where(entity.id == entity_id)).first() is not None

    def get(self, entity_id: int) -> Optional[int]:
        """Current total, or None when the entity does not exist"""
        entity = self.target.entity_model
        row = self.db.execute(select(entity.views).where(entity.id == entity_id)).first()
        if row is None:
            return None
        return row[0] or 0

    def increment_and_get(self, entity_id: int) -> Optional[int]:
        """Single-statement increment; None when no row was updated"""
        entity = self.target.entity_model
        row = self.db.execute(
            update(entity)
            .where(entity.id == entity_id)
            .values(views=func.coalesce(entity.views, 0) + 1)
            .returning(entity.views)
            .execution_options(synchronize_session=False)
        ).first()
        if row is None:
            return None
        return row[0]

"""
Append-only view ledgers.

Shops and products keep physically separate ledgers with an identical
schema. The entity id is deliberately not a foreign key: deleting a shop or
product must not retract its view history.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from sqlalchemy.sql import func
from db.base import Base


class ViewEventMixin:
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True)  # set only for authenticated visitors
    ip_address = Column(String(64), nullable=False, default="unknown")
    user_agent = Column(Text, nullable=False, default="unknown")
    viewed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ShopView(ViewEventMixin, Base):
    __tablename__ = "shop_views"

    shop_id = Column(Integer, nullable=False)

    # One index per dedup predicate
    __table_args__ = (
        Index("ix_shop_views_ip_dedup", "shop_id", "ip_address", "viewed_at"),
        Index("ix_shop_views_user_dedup", "shop_id", "user_id", "viewed_at"),
        Index("ix_shop_views_agent_dedup", "shop_id", "ip_address", "user_agent", "viewed_at"),
    )


class ProductView(ViewEventMixin, Base):
    __tablename__ = "product_views"

    product_id = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_product_views_ip_dedup", "product_id", "ip_address", "viewed_at"),
        Index("ix_product_views_user_dedup", "product_id", "user_id", "viewed_at"),
        Index("ix_product_views_agent_dedup", "product_id", "ip_address", "user_agent", "viewed_at"),
    )

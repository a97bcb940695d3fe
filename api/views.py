from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from db.session import get_db
from core.auth import get_optional_user_id
from core.identity import VisitorIdentity, resolve_visitor_identity
from core.views import ViewRecorder
from crud.views import EntityKind
from schemas.view import ViewCountResponse, ViewRecordResponse, ViewStatsResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["views"])


def get_visitor_identity(
    request: Request,
    user_id: Optional[int] = Depends(get_optional_user_id),
) -> VisitorIdentity:
    """Dependency: resolve who is viewing from proxy headers, socket peer and session"""
    return resolve_visitor_identity(
        user_id=user_id,
        forwarded_for=request.headers.get("x-forwarded-for"),
        real_ip=request.headers.get("x-real-ip"),
        peer_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def _record(db: Session, kind: EntityKind, entity_id: int, identity: VisitorIdentity) -> dict:
    result = ViewRecorder(db).record_view(kind, entity_id, identity)
    return {
        "success": True,
        "message": "View recorded" if result.is_new else "View already counted",
        "data": result,
    }


def _count(db: Session, kind: EntityKind, entity_id: int) -> dict:
    views = ViewRecorder(db).get_view_count(kind, entity_id)
    return {"success": True, "data": {"views": views}}


def _stats(db: Session, kind: EntityKind, entity_id: int) -> dict:
    stats = ViewRecorder(db).get_view_stats(kind, entity_id)
    return {"success": True, "data": stats}


@router.post("/products/{product_id}/view", response_model=ViewRecordResponse)
def record_product_view(
    product_id: int,
    identity: VisitorIdentity = Depends(get_visitor_identity),
    db: Session = Depends(get_db),
):
    """Count a product page view (public)"""
    return _record(db, EntityKind.PRODUCT, product_id, identity)


@router.post("/shops/{shop_id}/view", response_model=ViewRecordResponse)
def record_shop_view(
    shop_id: int,
    identity: VisitorIdentity = Depends(get_visitor_identity),
    db: Session = Depends(get_db),
):
    """Count a shop page view (public)"""
    return _record(db, EntityKind.SHOP, shop_id, identity)


@router.get("/products/{product_id}/views", response_model=ViewCountResponse)
def product_view_count(product_id: int, db: Session = Depends(get_db)):
    return _count(db, EntityKind.PRODUCT, product_id)


@router.get("/shops/{shop_id}/views", response_model=ViewCountResponse)
def shop_view_count(shop_id: int, db: Session = Depends(get_db)):
    return _count(db, EntityKind.SHOP, shop_id)


# Ownership checks for the stats routes belong to the caller's auth layer
@router.get("/products/{product_id}/views/stats", response_model=ViewStatsResponse)
def product_view_stats(product_id: int, db: Session = Depends(get_db)):
    return _stats(db, EntityKind.PRODUCT, product_id)


@router.get("/shops/{shop_id}/views/stats", response_model=ViewStatsResponse)
def shop_view_stats(shop_id: int, db: Session = Depends(get_db)):
    return _stats(db, EntityKind.SHOP, shop_id)

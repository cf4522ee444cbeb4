from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from helitour.db.session import get_db
from helitour.api.deps import get_current_staff_user
from helitour.models.user import User
from helitour.models.payment import Refund, RefundReason
from helitour.schemas.common import PaginatedResponse
from helitour.schemas.reservation import Refund as RefundSchema

router = APIRouter(prefix="/admin/refunds", tags=["Admin - Refunds"])


@router.get("/", response_model=PaginatedResponse[RefundSchema])
def list_refunds(
    reservation_id: Optional[UUID] = Query(None),
    reason: Optional[RefundReason] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    """Refund history, newest first."""
    query = db.query(Refund)
    if reservation_id:
        query = query.filter(Refund.reservation_id == reservation_id)
    if reason:
        query = query.filter(Refund.reason == reason)

    total = query.count()
    refunds = (
        query.order_by(Refund.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return PaginatedResponse(
        data=[RefundSchema.model_validate(r) for r in refunds],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )

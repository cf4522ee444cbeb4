import logging
from uuid import UUID
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helitour.db.session import get_db
from helitour.api.deps import get_current_admin_user
from helitour.core.errors import ConflictError, PersistenceFailure, PolicyNotFound
from helitour.models.user import User
from helitour.models.cancellation_policy import CancellationPolicy
from helitour.schemas.cancellation import (
    CancellationTier,
    CancellationPolicyCreate,
    CancellationPolicyUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/cancellation-policies", tags=["Admin - Cancellation Policies"])


def _check_days_unique(db: Session, days_before: int, exclude_id=None) -> None:
    query = db.query(CancellationPolicy.id).filter(
        CancellationPolicy.days_before == days_before,
        CancellationPolicy.is_active == True,  # noqa: E712
    )
    if exclude_id:
        query = query.filter(CancellationPolicy.id != exclude_id)
    if query.first():
        raise ConflictError(f"An active tier for {days_before} days before already exists")


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to %s cancellation policy", action)
        raise PersistenceFailure(f"Failed to {action} cancellation policy")


@router.get("/", response_model=List[CancellationTier])
def list_policies(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """All tiers, including inactive ones."""
    return (
        db.query(CancellationPolicy)
        .order_by(CancellationPolicy.display_order, CancellationPolicy.days_before)
        .all()
    )


@router.post("/", response_model=CancellationTier, status_code=status.HTTP_201_CREATED)
def create_policy(
    data: CancellationPolicyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    if data.is_active:
        _check_days_unique(db, data.days_before)

    policy = CancellationPolicy(**data.model_dump())
    db.add(policy)
    _commit(db, "create")
    db.refresh(policy)
    return policy


@router.patch("/{id}", response_model=CancellationTier)
def update_policy(
    id: UUID,
    data: CancellationPolicyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    policy = db.query(CancellationPolicy).filter(CancellationPolicy.id == id).first()
    if not policy:
        raise PolicyNotFound()

    updates = data.model_dump(exclude_unset=True)
    days_before = updates.get("days_before", policy.days_before)
    is_active = updates.get("is_active", policy.is_active)
    if is_active and ("days_before" in updates or "is_active" in updates):
        _check_days_unique(db, days_before, exclude_id=policy.id)

    for field, value in updates.items():
        setattr(policy, field, value)

    _commit(db, "update")
    db.refresh(policy)
    return policy

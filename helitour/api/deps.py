from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from helitour.core.security import decode_token
from helitour.db.session import get_db
from helitour.models.customer import Customer
from helitour.models.user import User
from helitour.utils.refunds import StripeRefundGateway

bearer_scheme = HTTPBearer(auto_error=False)


def _subject_id(credentials: Optional[HTTPAuthorizationCredentials], scope: str) -> UUID:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    subject = decode_token(credentials.credentials, scope=scope)
    try:
        return UUID(subject)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_staff_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Back-office user with the admin or staff role."""
    user_id = _subject_id(credentials, scope="staff")
    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    if user.role not in ("admin", "staff"):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return user


def get_current_admin_user(
    current_user: User = Depends(get_current_staff_user),
) -> User:
    if current_user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin role required")
    return current_user


def get_current_customer(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Customer:
    """Customer identified by a my-page link token."""
    customer_id = _subject_id(credentials, scope="customer")
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=401, detail="Invalid token")
    return customer


def get_refund_gateway() -> StripeRefundGateway:
    return StripeRefundGateway()

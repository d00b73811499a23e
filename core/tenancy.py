"""Caller identity and the buyer/supplier co-ownership rules for orders.

An order belongs to one buyer and to every supplier that has at least one
item in it. There is no item-level status, so any co-supplier may drive the
status of the whole order.
"""
from typing import Optional

import jwt
from fastapi import Header, HTTPException, status, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from models.enums import UserRole
from models.order import Order
from models.user import User
from security import jwt as jwt_utils


def get_current_user(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt_utils.decode_access(token)
        user_id = int(payload.get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    return user


def require_role(*roles: str):
    """Dependency to require one of ``roles`` for the current user."""
    def _check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires {' or '.join(roles)} role",
            )
        return user
    return _check_role


require_buyer = require_role(UserRole.BUYER.value)
require_supplier = require_role(UserRole.SUPPLIER.value)
require_order_party = require_role(UserRole.BUYER.value, UserRole.SUPPLIER.value)


def is_order_supplier(order: Order, user: User) -> bool:
    return user.role == UserRole.SUPPLIER.value and user.id in order.supplier_ids


def is_order_buyer(order: Order, user: User) -> bool:
    return user.role == UserRole.BUYER.value and order.buyer_id == user.id


def is_order_party(order: Order, user: User) -> bool:
    return is_order_buyer(order, user) or is_order_supplier(order, user)

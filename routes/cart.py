from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.errors import CartNotFound
from core.tenancy import require_buyer
from models.cart import Cart
from models.user import User
from schemas.cart import (
    CartCountOut,
    CartItemAdd,
    CartItemUpdate,
    CartMergeRequest,
    CartResponse,
    CartValidationOut,
)
from services import cart as cart_service
from services import catalog
from services.projection import cart_view

router = APIRouter(prefix="/cart", tags=["cart"])


def _respond(db: Session, cart: Cart, message: str | None = None) -> CartResponse:
    products = catalog.get_products(db, (line.product_id for line in cart.items))
    return CartResponse(message=message, cart=cart_view(cart, products), summary=cart_service.cart_summary(cart))


@router.get("/", response_model=CartResponse)
def get_cart(user: User = Depends(require_buyer), db: Session = Depends(get_db)):
    cart = cart_service.get_or_create_cart(db, user.id)
    return _respond(db, cart)


@router.get("/count", response_model=CartCountOut)
def get_cart_count(user: User = Depends(require_buyer), db: Session = Depends(get_db)):
    return cart_service.cart_count(db, user.id)


@router.post("/items", response_model=CartResponse)
def add_to_cart(data: CartItemAdd, user: User = Depends(require_buyer), db: Session = Depends(get_db)):
    cart = cart_service.add_item(db, user.id, data.product_id, data.quantity, data.price)
    return _respond(db, cart, "Item added to cart")


@router.put("/items/{product_id}", response_model=CartResponse)
def update_cart_item(
    product_id: int, data: CartItemUpdate, user: User = Depends(require_buyer), db: Session = Depends(get_db)
):
    cart = cart_service.update_quantity(db, user.id, product_id, data.quantity)
    return _respond(db, cart, "Cart updated")


@router.delete("/items/{product_id}", response_model=CartResponse)
def remove_cart_item(product_id: int, user: User = Depends(require_buyer), db: Session = Depends(get_db)):
    cart = cart_service.remove_item(db, user.id, product_id)
    return _respond(db, cart, "Item removed from cart")


@router.delete("/", response_model=CartResponse)
def clear_cart(user: User = Depends(require_buyer), db: Session = Depends(get_db)):
    cart = cart_service.clear_cart(db, user.id)
    return _respond(db, cart, "Cart cleared")


@router.post("/merge", response_model=CartResponse)
def merge_cart(data: CartMergeRequest, user: User = Depends(require_buyer), db: Session = Depends(get_db)):
    lines = [cart_service.GuestLine(line.product_id, line.quantity, line.price) for line in data.items]
    if data.session_id:
        cart = cart_service.merge_guest_cart(db, user.id, data.session_id, lines)
    else:
        cart = cart_service.merge_guest_lines(db, user.id, lines)
    return _respond(db, cart, "Guest cart merged")


@router.post("/validate", response_model=CartValidationOut)
def validate_cart(user: User = Depends(require_buyer), db: Session = Depends(get_db)):
    cart, issues, valid_count = cart_service.validate_cart(db, user.id)
    return CartValidationOut(
        message="Cart is valid" if not issues else "Cart has issues that need attention",
        valid=not issues,
        issues=issues,
        valid_items_count=valid_count,
        summary=cart_service.cart_summary(cart),
    )


@router.get("/guest/{session_id}", response_model=CartResponse)
def get_guest_cart(session_id: str, db: Session = Depends(get_db)):
    cart = cart_service.get_guest_cart(db, session_id)
    if cart is None:
        raise CartNotFound()
    return _respond(db, cart)


@router.post("/guest/{session_id}/items", response_model=CartResponse)
def add_to_guest_cart(session_id: str, data: CartItemAdd, db: Session = Depends(get_db)):
    cart = cart_service.add_guest_item(db, session_id, data.product_id, data.quantity, data.price)
    return _respond(db, cart, "Item added to cart")

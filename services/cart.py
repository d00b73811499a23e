import logging
from datetime import datetime, timedelta
from typing import Iterable, NamedTuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import transaction
from core.errors import (
    CartNotFound,
    InvalidQuantity,
    ItemNotFound,
    MinimumQuantityNotMet,
    ProductNotFound,
    ProductUnavailable,
    ValidationFailed,
)
from models.cart import Cart, CartItem
from models.product import Product
from services import catalog
from services.pricing import ZERO, money, recalculate_cart, to_decimal

logger = logging.getLogger(__name__)


class GuestLine(NamedTuple):
    product_id: int
    quantity: int
    price: float | None = None


def _check_quantity(quantity) -> None:
    # bool is an int subclass; True must not count as a quantity of 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity()


def _check_purchasable(product: Product | None, quantity: int) -> Product:
    if product is None:
        raise ProductNotFound()
    if not product.is_active:
        raise ProductUnavailable(product.id, product.name)
    if quantity < product.min_order_quantity:
        raise MinimumQuantityNotMet(product.min_order_quantity)
    return product


def get_cart(db: Session, buyer_id: int) -> Cart | None:
    return db.query(Cart).filter(Cart.buyer_id == buyer_id).one_or_none()


def _require_cart(db: Session, buyer_id: int) -> Cart:
    cart = get_cart(db, buyer_id)
    if cart is None:
        raise CartNotFound()
    return cart


def _new_cart(db: Session, buyer_id: int | None = None, session_id: str | None = None) -> Cart:
    cart = Cart(
        buyer_id=buyer_id,
        session_id=session_id,
        currency=settings.DEFAULT_CURRENCY,
        total_items=0,
        total_amount=ZERO,
    )
    if session_id is not None:
        cart.expires_at = datetime.utcnow() + timedelta(days=settings.GUEST_CART_TTL_DAYS)
    db.add(cart)
    return cart


def get_or_create_cart(db: Session, buyer_id: int) -> Cart:
    cart = get_cart(db, buyer_id)
    if cart:
        return cart
    _new_cart(db, buyer_id=buyer_id)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the buyer's cart first
        db.rollback()
        return _require_cart(db, buyer_id)
    logger.debug("Created cart for buyer %s", buyer_id)
    return get_cart(db, buyer_id)


def _apply_add(db: Session, cart: Cart, product_id: int, quantity, price=None) -> CartItem:
    _check_quantity(quantity)
    product = _check_purchasable(catalog.get_product(db, product_id), quantity)
    unit_price = money(price if price is not None else product.price)
    if unit_price < ZERO:
        raise ValidationFailed("Price cannot be negative")

    now = datetime.utcnow()
    line = cart.find_line(product.id)
    if line:
        line.quantity += quantity
        line.unit_price = unit_price
        line.added_at = now
    else:
        line = CartItem(product_id=product.id, quantity=quantity, unit_price=unit_price, added_at=now)
        cart.items.append(line)
    recalculate_cart(cart, now)
    if cart.is_guest:
        cart.expires_at = now + timedelta(days=settings.GUEST_CART_TTL_DAYS)
    return line


def add_item(db: Session, buyer_id: int, product_id: int, quantity, price=None) -> Cart:
    """Add ``quantity`` of a product, summing with an existing line.

    The stored price is overwritten with ``price`` (or the live product price)
    on every add; drift is reported later by :func:`validate_cart`.
    """
    _check_quantity(quantity)
    cart = get_or_create_cart(db, buyer_id)
    with transaction(db):
        _apply_add(db, cart, product_id, quantity, price)
    logger.debug("Added %s x product %s to cart of buyer %s", quantity, product_id, buyer_id)
    return cart


def update_quantity(db: Session, buyer_id: int, product_id: int, quantity) -> Cart:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity()
    cart = _require_cart(db, buyer_id)
    line = cart.find_line(product_id)
    if line is None:
        raise ItemNotFound()

    with transaction(db):
        if quantity <= 0:
            cart.items.remove(line)
        else:
            product = catalog.get_product(db, product_id)
            if product and quantity < product.min_order_quantity:
                raise MinimumQuantityNotMet(product.min_order_quantity)
            line.quantity = quantity
            line.added_at = datetime.utcnow()
        recalculate_cart(cart)
    return cart


def remove_item(db: Session, buyer_id: int, product_id: int) -> Cart:
    cart = _require_cart(db, buyer_id)
    line = cart.find_line(product_id)
    with transaction(db):
        if line is not None:
            cart.items.remove(line)
        recalculate_cart(cart)
    return cart


def clear_cart(db: Session, buyer_id: int) -> Cart:
    cart = _require_cart(db, buyer_id)
    with transaction(db):
        cart.items.clear()
        recalculate_cart(cart)
    return cart


def merge_guest_lines(db: Session, buyer_id: int, lines: Iterable[GuestLine]) -> Cart:
    """Replay guest lines through the add-item rules into the buyer's cart.

    All lines are applied in one transaction: if any line is rejected the
    buyer's cart is left as it was.
    """
    cart = get_or_create_cart(db, buyer_id)
    merged = 0
    with transaction(db):
        for line in lines:
            _apply_add(db, cart, line.product_id, line.quantity, line.price)
            merged += 1
    logger.info("Merged %s guest line(s) into cart of buyer %s", merged, buyer_id)
    return cart


def cart_summary(cart: Cart | None) -> dict:
    if cart is None:
        return {"total_items": 0, "total_amount": 0.0, "currency": settings.DEFAULT_CURRENCY, "item_count": 0, "last_updated": None}
    return {
        "total_items": cart.total_items,
        "total_amount": float(cart.total_amount or 0),
        "currency": cart.currency,
        "item_count": len(cart.items),
        "last_updated": cart.last_updated,
    }


def cart_count(db: Session, buyer_id: int) -> dict:
    cart = get_cart(db, buyer_id)
    return {
        "count": cart.total_items if cart else 0,
        "item_count": len(cart.items) if cart else 0,
    }


def validate_cart(db: Session, buyer_id: int) -> tuple[Cart | None, list[dict], int]:
    """Cross-check every line against the live catalog without changing it.

    Returns the cart, the list of issues and the number of lines that are
    still purchasable (lines whose product is missing or inactive are not).
    """
    cart = get_cart(db, buyer_id)
    if cart is None or not cart.items:
        return cart, [], 0

    products = catalog.get_products(db, (line.product_id for line in cart.items))
    issues: list[dict] = []
    valid = 0
    for line in cart.items:
        product = products.get(line.product_id)
        if product is None:
            issues.append({
                "type": "product_not_found",
                "message": "Product no longer exists",
                "item_id": line.id,
                "product_id": line.product_id,
            })
            continue
        if not product.is_active:
            issues.append({
                "type": "product_inactive",
                "message": f"{product.name} is no longer available",
                "item_id": line.id,
                "product_id": product.id,
            })
            continue

        if line.quantity < product.min_order_quantity:
            issues.append({
                "type": "min_quantity_not_met",
                "message": f"{product.name} requires minimum quantity of {product.min_order_quantity}",
                "item_id": line.id,
                "product_id": product.id,
                "current_quantity": line.quantity,
                "min_quantity": product.min_order_quantity,
            })
        if money(product.price) != money(line.unit_price):
            issues.append({
                "type": "price_changed",
                "message": f"Price for {product.name} has changed",
                "item_id": line.id,
                "product_id": product.id,
                "old_price": float(to_decimal(line.unit_price)),
                "new_price": float(to_decimal(product.price)),
            })
        if product.stock < line.quantity:
            issues.append({
                "type": "insufficient_stock",
                "message": f"Only {product.stock} units of {product.name} available",
                "item_id": line.id,
                "product_id": product.id,
                "requested_quantity": line.quantity,
                "available_stock": product.stock,
            })
        valid += 1

    logger.debug("Validated cart of buyer %s: %s issue(s)", buyer_id, len(issues))
    return cart, issues, valid


# Guest carts

def get_guest_cart(db: Session, session_id: str, now: datetime | None = None) -> Cart | None:
    cart = db.query(Cart).filter(Cart.session_id == session_id, Cart.buyer_id.is_(None)).one_or_none()
    if cart and cart.expires_at and cart.expires_at <= (now or datetime.utcnow()):
        return None
    return cart


def get_or_create_guest_cart(db: Session, session_id: str) -> Cart:
    cart = get_guest_cart(db, session_id)
    if cart:
        return cart
    with transaction(db):
        # An expired cart for this session still holds the unique session id
        stale = db.query(Cart).filter(Cart.session_id == session_id).one_or_none()
        if stale is not None:
            db.delete(stale)
            db.flush()
        cart = _new_cart(db, session_id=session_id)
    return cart


def add_guest_item(db: Session, session_id: str, product_id: int, quantity, price=None) -> Cart:
    cart = get_or_create_guest_cart(db, session_id)
    with transaction(db):
        _apply_add(db, cart, product_id, quantity, price)
    return cart


def merge_guest_cart(db: Session, buyer_id: int, session_id: str, lines: Iterable[GuestLine] = ()) -> Cart:
    """Move a stored guest cart, plus any client-held ``lines``, into the buyer's cart.

    ``lines`` are applied first, then the stored guest lines, and the guest
    cart is deleted, all in one transaction. A rejected line leaves both
    carts as they were.
    """
    guest = get_guest_cart(db, session_id)
    lines = list(lines)
    if guest is not None:
        lines += [GuestLine(line.product_id, line.quantity, line.unit_price) for line in guest.items]
    cart = get_or_create_cart(db, buyer_id)
    with transaction(db):
        for line in lines:
            _apply_add(db, cart, line.product_id, line.quantity, line.price)
        if guest is not None:
            db.delete(guest)
    logger.info("Merged guest cart %s into cart of buyer %s", session_id, buyer_id)
    return cart


def prune_expired_guest_carts(db: Session, now: datetime | None = None) -> int:
    """Delete guest carts past their TTL. Buyer carts are never touched."""
    now = now or datetime.utcnow()
    expired = (
        db.query(Cart)
        .filter(Cart.buyer_id.is_(None), Cart.expires_at.is_not(None), Cart.expires_at <= now)
        .all()
    )
    with transaction(db):
        for cart in expired:
            db.delete(cart)
    if expired:
        logger.info("Pruned %s expired guest cart(s)", len(expired))
    return len(expired)

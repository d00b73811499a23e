"""Cart-to-order conversion.

Checkout is the only operation that writes two aggregates at once: the new
order is inserted and the buyer's cart is emptied in the same database
transaction. Either both changes are committed or neither is.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import transaction
from core.errors import EmptyCart, IncompleteAddress, MissingPaymentMethod, ProductUnavailable
from models.cart import Cart
from models.enums import OrderStatus, PaymentStatus
from models.order import Order
from models.order_item import OrderItem
from models.order_timeline import OrderTimelineEntry
from models.user import User
from schemas.order import AddressIn, CheckoutRequest
from services import catalog
from services.pricing import PricingPolicy, check_order_invariants, compute_order_totals, money, recalculate_cart

logger = logging.getLogger(__name__)

REQUIRED_ADDRESS_FIELDS = ("first_name", "last_name", "street", "city", "state", "zip_code", "country", "phone")


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str | None = None
    user_agent: str | None = None


def generate_order_number(buyer_id: int, now: datetime | None = None) -> str:
    """``PREFIX-<epoch ms>-<last 6 digits of buyer id><4 random hex>``."""
    now = now or datetime.now(timezone.utc)
    stamp = int(now.timestamp() * 1000)
    buyer_suffix = str(buyer_id).zfill(6)[-6:]
    return f"{settings.ORDER_NUMBER_PREFIX}-{stamp}-{buyer_suffix}{secrets.token_hex(2).upper()}"


def _allocate_order_number(db: Session, buyer_id: int) -> str:
    for _ in range(settings.ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number(buyer_id)
        if db.query(Order.id).filter(Order.order_number == number).first() is None:
            return number
    raise RuntimeError("Could not allocate a unique order number")


def _order_number_taken(db: Session, number: str) -> bool:
    return db.query(Order.id).filter(Order.order_number == number).first() is not None


def _complete_address(address: AddressIn, label: str) -> dict:
    data = address.model_dump()
    missing = [field for field in REQUIRED_ADDRESS_FIELDS if not data.get(field)]
    if missing:
        raise IncompleteAddress(f"{label} address is missing: {', '.join(missing)}")
    return data


def _resolve_addresses(request: CheckoutRequest) -> tuple[dict, dict]:
    shipping = request.shipping_address
    if shipping is None or not shipping.street or not shipping.city:
        raise IncompleteAddress()
    shipping_address = _complete_address(shipping, "Shipping")

    if request.same_as_shipping:
        return shipping_address, dict(shipping_address)
    if request.billing_address is None:
        raise IncompleteAddress("Billing address is required")
    return shipping_address, _complete_address(request.billing_address, "Billing")


def empty_cart(cart: Cart) -> None:
    cart.items.clear()
    recalculate_cart(cart)


def checkout(
    db: Session,
    buyer: User,
    request: CheckoutRequest,
    policy: PricingPolicy | None = None,
    client: ClientInfo | None = None,
) -> Order:
    policy = policy or PricingPolicy.from_settings(settings)
    client = client or ClientInfo()

    shipping_address, billing_address = _resolve_addresses(request)
    if request.payment_method is None:
        raise MissingPaymentMethod()

    order = None
    for _ in range(settings.ORDER_NUMBER_ATTEMPTS):
        number = _allocate_order_number(db, buyer.id)
        try:
            order = _place_order(db, buyer, request, policy, client, shipping_address, billing_address, number)
            break
        except IntegrityError:
            # A concurrent checkout took the number between the check and the insert
            if not _order_number_taken(db, number):
                logger.warning("Checkout rolled back for buyer %s", buyer.id, extra={"user_id": buyer.id})
                raise
            logger.warning("Order number %s already taken, retrying", number, extra={"user_id": buyer.id})
        except Exception:
            logger.warning("Checkout rolled back for buyer %s", buyer.id, extra={"user_id": buyer.id})
            raise
    if order is None:
        raise RuntimeError("Could not allocate a unique order number")

    logger.info(
        "Order %s created for buyer %s (%s item(s), total %s)",
        order.order_number,
        buyer.id,
        len(order.items),
        order.total_amount,
        extra={"order_number": order.order_number, "user_id": buyer.id},
    )
    db.refresh(order)
    return order


def _place_order(db, buyer, request, policy, client, shipping_address, billing_address, order_number) -> Order:
    with transaction(db):
        cart = db.query(Cart).filter(Cart.buyer_id == buyer.id).one_or_none()
        if cart is None or not cart.items:
            raise EmptyCart()

        products = catalog.get_products(db, (line.product_id for line in cart.items))
        order_items = []
        for line in cart.items:
            product = products.get(line.product_id)
            if product is None:
                raise ProductUnavailable(line.product_id)
            if not product.is_active:
                raise ProductUnavailable(product.id, product.name)
            # The cart's stored price is what the buyer agreed to
            order_items.append(
                OrderItem(
                    product_id=product.id,
                    supplier_id=product.supplier_id,
                    quantity=line.quantity,
                    unit_price=money(line.unit_price),
                )
            )

        totals = compute_order_totals(order_items, policy)
        now = datetime.utcnow()
        order = Order(
            order_number=order_number,
            buyer_id=buyer.id,
            items=order_items,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_method=request.payment_method.value,
            payment_details=request.payment_details.model_dump(mode="json", exclude_none=True),
            order_status=OrderStatus.CONFIRMED.value,
            payment_status=PaymentStatus.PAID.value,
            subtotal=totals.subtotal,
            shipping_cost=totals.shipping_cost,
            tax=totals.tax,
            discount=totals.discount,
            total_amount=totals.total_amount,
            currency=cart.currency,
            notes=request.notes,
            order_source=request.order_source.value,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            created_at=now,
            updated_at=now,
        )
        order.timeline.append(
            OrderTimelineEntry(
                status=OrderStatus.CONFIRMED.value,
                timestamp=now,
                note="Order created successfully",
                actor_id=buyer.id,
            )
        )
        check_order_invariants(order)

        db.add(order)
        db.flush()
        empty_cart(cart)
    return order

from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from core.db import Base
from models.enums import Currency


class Cart(Base):
    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    # One cart per registered buyer; guest carts have a session id instead
    buyer_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=True, index=True
    )
    session_id: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True, index=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    items = relationship(
        "CartItem",
        cascade="all, delete-orphan",
        back_populates="cart",
        order_by="CartItem.id",
    )

    @validates("currency")
    def _check_currency(self, key, value):
        return Currency.parse(value).value

    @property
    def is_guest(self) -> bool:
        return self.buyer_id is None

    def find_line(self, product_id: int) -> "CartItem | None":
        for line in self.items:
            if line.product_id == product_id:
                return line
        return None


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    cart_id: Mapped[int] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"), index=True)
    # Catalog reference resolved through services.catalog; the line outlives a deleted product
    product_id: Mapped[int] = mapped_column(Integer, index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[float] = mapped_column(Numeric(12, 2))
    added_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    cart = relationship("Cart", back_populates="items")
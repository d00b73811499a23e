from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional, Union


class CartItemAdd(BaseModel):
    product_id: int
    # Floats are accepted here so that the cart service reports non-integer quantities
    quantity: Union[int, float] = 1
    price: Optional[float] = None


class CartItemUpdate(BaseModel):
    quantity: Union[int, float]


class GuestCartLine(BaseModel):
    product_id: int
    quantity: Union[int, float]
    price: Optional[float] = None


class CartMergeRequest(BaseModel):
    items: List[GuestCartLine] = Field(default_factory=list)
    session_id: Optional[str] = Field(default=None, max_length=100)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    supplier_id: Optional[int] = None
    quantity: int
    unit_price: float
    line_total: float
    added_at: datetime


class CartOut(BaseModel):
    id: int
    currency: str
    items: List[CartItemOut]
    total_items: int
    total_amount: float
    last_updated: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class CartSummary(BaseModel):
    total_items: int
    total_amount: float
    currency: str
    item_count: int
    last_updated: Optional[datetime] = None


class CartResponse(BaseModel):
    message: Optional[str] = None
    cart: CartOut
    summary: CartSummary


class CartCountOut(BaseModel):
    count: int
    item_count: int


class CartIssue(BaseModel):
    type: str
    message: str
    item_id: int
    product_id: int
    current_quantity: Optional[int] = None
    min_quantity: Optional[int] = None
    old_price: Optional[float] = None
    new_price: Optional[float] = None
    requested_quantity: Optional[int] = None
    available_stock: Optional[int] = None


class CartValidationOut(BaseModel):
    message: str
    valid: bool
    issues: List[CartIssue]
    valid_items_count: int
    summary: CartSummary

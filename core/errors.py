"""Error taxonomy for the cart and order services.

Services raise these; ``main.py`` turns them into ``{"detail": ...}``
responses using ``status_code``.
"""


class MarketplaceError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Validation errors: bad input, nothing was changed

class ValidationFailed(MarketplaceError):
    status_code = 400


class InvalidQuantity(ValidationFailed):
    def __init__(self, message: str = "Quantity must be a whole number of at least 1"):
        super().__init__(message)


class MinimumQuantityNotMet(ValidationFailed):
    def __init__(self, minimum: int):
        super().__init__(f"Minimum order quantity is {minimum}")
        self.minimum = minimum


class IncompleteAddress(ValidationFailed):
    def __init__(self, message: str = "Complete shipping address is required"):
        super().__init__(message)


class MissingPaymentMethod(ValidationFailed):
    def __init__(self):
        super().__init__("Payment method is required")


class InvalidRefund(ValidationFailed):
    pass


# Authorization errors

class NotAuthorized(MarketplaceError):
    status_code = 403


# State errors: the operation is not allowed in the current state

class StateError(MarketplaceError):
    status_code = 400


class InvalidTransition(StateError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change order status from {current} to {requested}")
        self.current = current
        self.requested = requested


class CannotCancel(StateError):
    def __init__(self, current: str):
        super().__init__(f"Order cannot be cancelled at this stage (status: {current})")
        self.current = current


class EmptyCart(StateError):
    def __init__(self):
        super().__init__("Your cart is empty")


class CartNotFound(StateError):
    status_code = 404

    def __init__(self):
        super().__init__("Cart not found")


class ItemNotFound(StateError):
    status_code = 404

    def __init__(self):
        super().__init__("Item not found in cart")


# Consistency errors: live catalog state disagrees with the request

class ProductNotFound(MarketplaceError):
    status_code = 404

    def __init__(self):
        super().__init__("Product not found")


class ProductUnavailable(MarketplaceError):
    status_code = 400

    def __init__(self, product_id: int, product_name: str | None = None):
        if product_name:
            message = f'Product "{product_name}" is no longer available'
        else:
            message = f"Product {product_id} no longer exists"
        super().__init__(message)
        self.product_id = product_id
        self.product_name = product_name

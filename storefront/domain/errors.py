"""Exception hierarchy for the storefront services.

Every error carries the HTTP status and the machine-readable ``code`` the API
layer puts into the ``{success, code, message}`` envelope. Errors with
``expose = False`` are answered with a generic message; their detail is only
logged (and echoed back outside production).
"""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500
    code = "INTERNAL_ERROR"
    expose = True
    public_message = "Internal server error"

    def __init__(self, message: str | None = None, *, code: str | None = None, data: dict | None = None):
        self.message = message or self.public_message
        if code:
            self.code = code
        self.data = data
        super().__init__(self.message)


class ValidationError(StorefrontError):
    status_code = 400
    code = "VALIDATION_ERROR"
    public_message = "Invalid request"


class InvalidLineItem(ValidationError):
    code = "INVALID_LINE_ITEM"
    public_message = "Invalid line item"


class InvalidAddress(ValidationError):
    code = "INVALID_ADDRESS"
    public_message = "Shipping address not found"


class EmptyCart(ValidationError):
    code = "EMPTY_CART"
    public_message = "Your cart is empty"


class NotFoundError(StorefrontError):
    status_code = 404
    code = "NOT_FOUND"
    public_message = "Resource not found"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"
    public_message = "Order not found"


class PaymentNotFound(NotFoundError):
    code = "PAYMENT_NOT_FOUND"
    public_message = "Payment not found"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"
    public_message = "Product not found"


class ForbiddenError(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"
    public_message = "You do not have permission to access this resource"


class ConflictError(StorefrontError):
    status_code = 409
    code = "CONFLICT"
    public_message = "Conflicting state"


class InsufficientStock(ConflictError):
    code = "INSUFFICIENT_STOCK"
    public_message = "Insufficient stock"

    def __init__(self, product_id: int, requested: int, available: int | None = None, name: str | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        label = name or f"product {product_id}"
        super().__init__(f"Insufficient stock for {label}")


class NotCancellable(ConflictError):
    status_code = 400
    code = "ORDER_CANCELLATION_FAILED"
    public_message = "Order cannot be cancelled at this stage"


class PaymentInProgress(ConflictError):
    code = "PAYMENT_IN_PROGRESS"
    public_message = "A payment for this order is already in progress"


class OrderNotPayable(ConflictError):
    code = "ORDER_NOT_PAYABLE"
    public_message = "Order is not awaiting payment"


class GatewayError(StorefrontError):
    """Payment provider failure. The detail never reaches the client in production."""

    status_code = 500
    code = "PAYMENT_GATEWAY_ERROR"
    expose = False
    public_message = "Payment provider error"


class GatewayAuthError(GatewayError):
    code = "PAYMENT_GATEWAY_AUTH_FAILED"


class GatewayRequestError(GatewayError):
    code = "PAYMENT_GATEWAY_REQUEST_FAILED"


class PaymentOutcomeUnknown(GatewayRequestError):
    """The pay-request may have reached the provider (read timeout).

    The payment is left in flight; the callback or the reconciliation poll
    decides how it ends.
    """

    code = "PAYMENT_OUTCOME_UNKNOWN"


class PaymentInitiationFailed(GatewayError):
    """The order was committed but the gateway rejected the pay-request.

    ``data`` carries the order and payment ids so the client can retry through
    ``POST /payments``.
    """

    code = "PAYMENT_INITIATION_FAILED"
    public_message = "Order created but payment initiation failed"


class InternalError(StorefrontError):
    expose = False

class CheckoutError(Exception):
    """Base class for every error the checkout boundary reports to callers.

    ``kind`` is the machine-readable classification and ``status_code`` the
    HTTP status the API layer answers with.
    """

    kind = "CheckoutError"
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"kind": self.kind, "message": self.message}


class Unauthenticated(CheckoutError):
    kind = "Unauthenticated"
    status_code = 401
    default_message = "Authentication required"


class InvalidInput(CheckoutError):
    kind = "InvalidInput"
    status_code = 400
    default_message = "Invalid request"


class Forbidden(CheckoutError):
    kind = "Forbidden"
    status_code = 403
    default_message = "Not allowed"


class OrderNotFound(CheckoutError):
    kind = "OrderNotFound"
    status_code = 404
    default_message = "Order not found"


class Conflict(CheckoutError):
    kind = "Conflict"
    status_code = 409
    default_message = "Order number already exists"


class PaymentGatewayError(CheckoutError):
    kind = "PaymentGatewayError"
    status_code = 500
    default_message = "Payment gateway error"


class PaymentVerificationFailed(CheckoutError):
    kind = "PaymentVerificationFailed"
    status_code = 400
    default_message = "Payment verification failed"


class DownstreamStoreError(CheckoutError):
    kind = "DownstreamStoreError"
    status_code = 500
    default_message = "Failed to process order"


class IdentityProviderError(CheckoutError):
    kind = "IdentityProviderError"
    status_code = 500
    default_message = "Authentication service unavailable"

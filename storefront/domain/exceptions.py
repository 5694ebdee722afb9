from enum import Enum


class DomainException(Exception):
    pass


class CouponRejection(str, Enum):
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    NOT_YET_ACTIVE = "NotYetActive"
    EXPIRED = "Expired"
    USAGE_EXCEEDED = "UsageExceeded"
    BELOW_MINIMUM = "BelowMinimum"
    NOT_APPLICABLE = "NotApplicable"


class EmptyCartError(DomainException):
    pass


class ProductNotFoundError(DomainException):
    def __init__(self, product_id: str, variant_id: str | None = None):
        self.product_id = product_id
        self.variant_id = variant_id
        if variant_id:
            message = f"Вариант {variant_id} товара {product_id} не найден"
        else:
            message = f"Товар {product_id} не найден"
        super().__init__(message)


class VariantRequiredError(DomainException):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Для товара {product_id} нужно выбрать вариант")


class InsufficientStockError(DomainException):
    def __init__(self, product_id: str, available: int, required: int):
        self.product_id = product_id
        self.available = available
        self.required = required
        super().__init__(
            f"Недостаточно товара {product_id}. Доступно: {available}, требуется: {required}"
        )


class CouponRejectedError(DomainException):
    def __init__(self, code: str, reason: CouponRejection):
        self.code = code
        self.reason = reason
        super().__init__(f"Купон {code} не может быть применен: {reason.value}")


class OrderNotFoundError(DomainException):
    pass


class OrderAlreadyPaidError(DomainException):
    pass


class PaymentGatewayError(DomainException):
    pass

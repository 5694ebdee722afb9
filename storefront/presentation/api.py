import logging
from decimal import Decimal
from typing import Optional
from urllib.parse import parse_qsl
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.database import get_session_factory
from storefront.presentation.schemas import (
    CartItemRequest, CartResponse, CreateOrderRequest, CreateGuestOrderRequest, OrderResponse,
    CouponSummary, CouponValidationResponse, PaymentInitiationResponse, ErrorResponse
)
from storefront.application.create_order import CreateOrderUseCase, CreateOrderDTO, RequestedItem
from storefront.application.get_order import GetOrderUseCase
from storefront.application.validate_coupon import ValidateCouponUseCase
from storefront.application.manage_cart import AddCartItemUseCase, GetCartUseCase, ClearCartUseCase
from storefront.application.initiate_payment import InitiatePaymentUseCase, GatewayConfig
from storefront.application.process_payment import ProcessPaymentNotificationUseCase
from storefront.domain.pricing import PricingPolicy
from storefront.domain.signature import PaymentSignatureCodec
from storefront.domain.exceptions import (
    CouponRejection, CouponRejectedError, EmptyCartError, InsufficientStockError,
    OrderAlreadyPaidError, OrderNotFoundError, ProductNotFoundError, VariantRequiredError
)
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.infrastructure.stores import SQLAlchemyCatalogStore, SQLAlchemyCouponStore, SQLAlchemyCartStore
from storefront.infrastructure.http_clients import HTTPPaymentGatewayClient
from storefront.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

SessionFactory = async_sessionmaker[AsyncSession]


# Идентификацией занимается внешний провайдер, он передает X-User-Id
def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id or None


def require_user_id(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Требуется авторизация")
    return user_id


# Фабрики для создания use cases
def get_create_order_use_case(session_factory: SessionFactory = Depends(get_session_factory)):
    return CreateOrderUseCase(
        UnitOfWork(session_factory),
        SQLAlchemyCatalogStore(session_factory),
        SQLAlchemyCouponStore(session_factory),
        SQLAlchemyCartStore(session_factory),
        PricingPolicy.from_settings(settings),
        settings.LOW_STOCK_THRESHOLD
    )


def get_get_order_use_case(session_factory: SessionFactory = Depends(get_session_factory)):
    return GetOrderUseCase(UnitOfWork(session_factory))


def get_validate_coupon_use_case(session_factory: SessionFactory = Depends(get_session_factory)):
    return ValidateCouponUseCase(SQLAlchemyCouponStore(session_factory))


def get_add_cart_item_use_case(session_factory: SessionFactory = Depends(get_session_factory)):
    return AddCartItemUseCase(SQLAlchemyCatalogStore(session_factory), SQLAlchemyCartStore(session_factory))


def get_get_cart_use_case(session_factory: SessionFactory = Depends(get_session_factory)):
    return GetCartUseCase(SQLAlchemyCartStore(session_factory))


def get_clear_cart_use_case(session_factory: SessionFactory = Depends(get_session_factory)):
    return ClearCartUseCase(SQLAlchemyCartStore(session_factory))


def get_signature_codec() -> PaymentSignatureCodec:
    return PaymentSignatureCodec(settings.PAYFAST_PASSPHRASE)


def get_initiate_payment_use_case(
    session_factory: SessionFactory = Depends(get_session_factory),
    codec: PaymentSignatureCodec = Depends(get_signature_codec)
):
    return InitiatePaymentUseCase(UnitOfWork(session_factory), codec, GatewayConfig.from_settings(settings))


def get_process_payment_use_case(
    session_factory: SessionFactory = Depends(get_session_factory),
    codec: PaymentSignatureCodec = Depends(get_signature_codec)
):
    gateway = HTTPPaymentGatewayClient(settings.PAYFAST_VALIDATE_URL) if settings.PAYFAST_VALIDATE_ITN else None
    return ProcessPaymentNotificationUseCase(
        UnitOfWork(session_factory), codec, gateway, settings.PAYMENT_AMOUNT_TOLERANCE
    )


@router.get(
    "/coupons/validate",
    response_model=CouponValidationResponse,
    responses={400: {"model": CouponValidationResponse}, 404: {"model": CouponValidationResponse}}
)
async def validate_coupon(
    code: str = Query(min_length=1),
    subtotal: Decimal = Query(default=Decimal("0"), ge=0),
    use_case: ValidateCouponUseCase = Depends(get_validate_coupon_use_case)
):
    """Проверить купон для суммы корзины"""
    coupon, validation = await use_case(code, subtotal)
    if not validation.applicable:
        status_code = 404 if validation.reason == CouponRejection.NOT_FOUND else 400
        body = CouponValidationResponse(
            valid=False,
            reason=validation.reason,
            message=f"Купон не может быть применен: {validation.reason.value}"
        )
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
    return CouponValidationResponse(
        valid=True,
        discount=validation.discount_amount,
        coupon=CouponSummary.from_domain(coupon)
    )


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    user_id: str = Depends(require_user_id),
    use_case: GetCartUseCase = Depends(get_get_cart_use_case)
):
    """Получить корзину"""
    return CartResponse.from_items(await use_case(user_id))


@router.post(
    "/cart/items",
    response_model=CartResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def add_cart_item(
    request: CartItemRequest,
    user_id: str = Depends(require_user_id),
    use_case: AddCartItemUseCase = Depends(get_add_cart_item_use_case)
):
    """Добавить товар в корзину"""
    try:
        items = await use_case(user_id, request.product_id, request.quantity, request.variant_id)
        return CartResponse.from_items(items)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (VariantRequiredError, InsufficientStockError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/cart", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(
    user_id: str = Depends(require_user_id),
    use_case: ClearCartUseCase = Depends(get_clear_cart_use_case)
):
    """Очистить корзину"""
    await use_case(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def _create_order(use_case: CreateOrderUseCase, dto: CreateOrderDTO) -> OrderResponse:
    try:
        order = await use_case(dto)
        return OrderResponse.from_domain(order)

    except (EmptyCartError, VariantRequiredError, InsufficientStockError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CouponRejectedError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "reason": e.reason.value})
    except Exception as e:
        logger.error(f"Ошибка создания заказа: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=f"Service unavailable: {str(e)}")


@router.post(
    "/orders",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse},
               404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    user_id: str = Depends(require_user_id),
    idempotency_key: Optional[str] = Header(default=None),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Оформить заказ из корзины"""
    dto = CreateOrderDTO(
        owner_id=user_id,
        shipping_address=request.shipping_address,
        payment_method=request.payment_method,
        coupon_code=request.coupon_code,
        idempotency_key=idempotency_key
    )
    return await _create_order(use_case, dto)


@router.post(
    "/orders/guest",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_guest_order(
    request: CreateGuestOrderRequest,
    idempotency_key: Optional[str] = Header(default=None),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Оформить заказ без авторизации"""
    dto = CreateOrderDTO(
        guest_contact=request.guest_contact,
        items=[RequestedItem(**item.model_dump()) for item in request.items],
        shipping_address=request.shipping_address,
        payment_method=request.payment_method,
        coupon_code=request.coupon_code,
        idempotency_key=idempotency_key
    )
    return await _create_order(use_case, dto)


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_order(
    order_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    try:
        order = await use_case(order_id, user_id)
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Заказ не найден")


@router.post(
    "/payments/{order_id}/initiate",
    response_model=PaymentInitiationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def initiate_payment(
    order_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    use_case: InitiatePaymentUseCase = Depends(get_initiate_payment_use_case)
):
    """Данные формы для редиректа на PayFast"""
    try:
        initiation = await use_case(order_id, user_id)
        return PaymentInitiationResponse(url=initiation.url, payment_data=initiation.payment_data)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Заказ не найден")
    except OrderAlreadyPaidError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/payments/notify")
async def payment_notify(
    request: Request,
    use_case: ProcessPaymentNotificationUseCase = Depends(get_process_payment_use_case)
):
    """ITN от PayFast. Всегда 200, чтобы шлюз не повторял доставку бесконечно"""
    try:
        body = (await request.body()).decode()
        # parse_qsl сохраняет порядок полей, он нужен для подписи
        fields = dict(parse_qsl(body, keep_blank_values=True))
        outcome = await use_case(fields)
        logger.info(f"ITN обработано: {outcome.value}")
    except Exception as e:
        logger.error(f"Ошибка обработки ITN: {e}", exc_info=True)
    return Response(status_code=status.HTTP_200_OK)

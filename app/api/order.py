import logging
from decimal import Decimal
from typing import Annotated
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.config import settings
from app.dependencies import get_current_user
from app.models import Order, OrderItem, PaymentGatewayTransaction, Product, User, get_db
from app.models.status import GatewayProvider, TransactionStatus
from app.schemas.orders import (
    OrderCreateRequest,
    OrderCreateResponse,
    OrderItemResponse,
    OrderResponse,
    OrderStatusResponse,
)
from app.services.exceptions import GatewayUnreachable
from app.services.gateway_client import gateway_amount
from app.services.moneroo_service import MonerooClient
from app.services.payment_gateways import get_checkout_client
from app.services.payments import generate_order_number, generate_reference_code

router = APIRouter()
logger = logging.getLogger(__name__)


def _checkout_return_url(return_url: str, reference_code: str) -> str:
    """Validate the return URL and tag it with the order reference so the frontend can poll status."""
    parts = urlsplit(return_url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="return_url must be an absolute http(s) URL",
        )
    if parts.username or parts.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="return_url must not contain credentials",
        )
    query = urlencode([*parse_qsl(parts.query, keep_blank_values=True), ("reference", reference_code)])
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        reference_code=order.reference_code,
        total_amount=order.total_amount,
        currency=order.currency,
        status=order.status,
        payment_status=order.payment_status,
        fulfillment_status=order.fulfillment_status,
        created_at=order.created_at.isoformat() if order.created_at else "",
        items=[OrderItemResponse.model_validate(item) for item in order.items],
    )


@router.post(
    "",
    response_model=OrderCreateResponse,
    summary="Create order and get checkout URL",
)
async def create_order(
    body: OrderCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    gateway: Annotated[MonerooClient | None, Depends(get_checkout_client)],
):
    """
    Create an order from the given products and open a Moneroo checkout for it.
    Items are snapshotted at purchase time; the payment transaction starts as pending.
    """
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment gateway is not configured",
        )

    reference_code = generate_reference_code()
    return_url = _checkout_return_url(body.return_url or settings.MONEROO_RETURN_URL, reference_code)

    product_ids = [item.product_id for item in body.items]
    products = {
        product.id: product
        for product in db.query(Product).filter(Product.id.in_(product_ids), Product.is_active.is_(True)).all()
    }
    missing = [product_id for product_id in product_ids if product_id not in products]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product(s) not found: {', '.join(str(product_id) for product_id in missing)}",
        )
    currencies = {products[product_id].currency for product_id in product_ids}
    if len(currencies) > 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="All products in an order must share one currency",
        )
    currency = currencies.pop() if currencies else settings.DEFAULT_CURRENCY

    order = Order(
        order_number=generate_order_number(),
        reference_code=reference_code,
        user_id=current_user.id,
        currency=currency,
        total_amount=Decimal("0"),
    )
    subtotal = Decimal("0")
    for requested in body.items:
        product = products[requested.product_id]
        price = Decimal(product.price)
        line_total = price * requested.quantity
        subtotal += line_total
        order.items.append(
            OrderItem(
                product_id=product.id,
                vendor_id=product.vendor_id,
                product_name=product.name,
                price=price,
                quantity=requested.quantity,
                total=line_total,
                is_digital=product.is_digital,
                digital_file_url=product.digital_file_url,
            )
        )
    try:
        gateway_amount(subtotal, currency)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    order.subtotal = subtotal
    order.total_amount = subtotal
    db.add(order)
    db.flush()

    try:
        session = await gateway.initialize_payment(
            amount=order.total_amount,
            currency=currency,
            description=f"Order {order.order_number}",
            customer_email=current_user.email,
            customer_name=current_user.display_name,
            return_url=return_url,
            metadata={"order_number": order.order_number, "reference_code": order.reference_code},
        )
    except GatewayUnreachable as exc:
        db.rollback()
        logger.warning("Checkout for user id=%s failed: %s", current_user.id, exc.message)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.to_detail())

    db.add(
        PaymentGatewayTransaction(
            provider=GatewayProvider.MONEROO.value,
            transaction_id=session.transaction_id,
            reference_code=order.reference_code,
            order_id=order.id,
            amount=order.total_amount,
            currency=currency,
            status=TransactionStatus.PENDING.value,
        )
    )
    db.commit()
    db.refresh(order)
    logger.info("Order %s created with Moneroo payment %s", order.order_number, session.transaction_id)

    return OrderCreateResponse(
        order_id=order.id,
        order_number=order.order_number,
        reference_code=order.reference_code,
        transaction_id=session.transaction_id,
        checkout_url=session.checkout_url,
    )


@router.get(
    "/me",
    response_model=list[OrderResponse],
    summary="List my orders",
)
def my_orders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Returns the list of orders for the current user."""
    orders = (
        db.query(Order)
        .filter(Order.user_id == current_user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [_order_response(order) for order in orders]


@router.get(
    "/{reference_code}/status",
    response_model=OrderStatusResponse,
    summary="Get order status",
)
def order_status(
    reference_code: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Returns status of an order by reference code (only for the current user's orders)."""
    order = (
        db.query(Order)
        .filter(Order.reference_code == reference_code, Order.user_id == current_user.id)
        .first()
    )
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderStatusResponse(
        order_number=order.order_number,
        reference_code=order.reference_code,
        status=order.status,
        payment_status=order.payment_status,
        fulfillment_status=order.fulfillment_status,
        total_amount=order.total_amount,
        currency=order.currency,
    )

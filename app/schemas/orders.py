from decimal import Decimal

from pydantic import BaseModel, Field


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1, le=100)


class OrderCreateRequest(BaseModel):
    items: list[OrderItemRequest] = Field(min_length=1)
    return_url: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": 1, "quantity": 1}],
                    "return_url": "https://frontend.example.com/payment-success",
                }
            ]
        }
    }


class OrderCreateResponse(BaseModel):
    order_id: int
    order_number: str
    reference_code: str
    transaction_id: str
    checkout_url: str


class OrderItemResponse(BaseModel):
    product_id: int | None
    product_name: str
    price: Decimal
    quantity: int
    total: Decimal
    is_digital: bool

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    order_number: str
    reference_code: str
    total_amount: Decimal
    currency: str
    status: str
    payment_status: str
    fulfillment_status: str
    created_at: str
    items: list[OrderItemResponse] = []


class OrderStatusResponse(BaseModel):
    order_number: str
    reference_code: str
    status: str
    payment_status: str
    fulfillment_status: str
    total_amount: Decimal
    currency: str

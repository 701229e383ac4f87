from app.schemas.admin import (
    ForceSuccessRequest,
    OverrideNotesRequest,
    OverrideResponse,
    ReconcileRequest,
    ReconcileResponse,
)
from app.schemas.orders import OrderCreateRequest, OrderCreateResponse, OrderResponse, OrderStatusResponse

__all__ = [
    "ForceSuccessRequest",
    "OverrideNotesRequest",
    "OverrideResponse",
    "ReconcileRequest",
    "ReconcileResponse",
    "OrderCreateRequest",
    "OrderCreateResponse",
    "OrderResponse",
    "OrderStatusResponse",
]

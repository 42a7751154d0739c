# liveorders/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.api.deps import get_notifier, get_session
from liveorders.schemas.orders import (
    CloseOut,
    ExpireIn,
    ItemChangeOut,
    MessageItemStatusOut,
    OrderOut,
    OrderTotalOut,
    PlaceItemIn,
    PlaceItemOut,
    ShipIn,
    ShipOut,
)
from liveorders.services.expiry_sweeper import ExpirySweeper
from liveorders.services.notifier import Notifier
from liveorders.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


# -------------------------------
# 明细
# -------------------------------
@router.post("/items", response_model=PlaceItemOut, operation_id="orders_place_item")
async def place_item(
    payload: PlaceItemIn,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    svc = OrderService(notifier)
    return await svc.place_item(
        session,
        user_id=payload.user_id,
        live_session_id=payload.live_session_id,
        configuration_id=payload.configuration_id,
        quantity=payload.quantity,
        price=payload.price,
        message_id=payload.message_id,
    )


@router.delete("/items/{item_id}", response_model=ItemChangeOut, operation_id="orders_remove_item")
async def remove_item(
    item_id: int,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).remove_item(session, item_id=item_id)


@router.post("/items/{item_id}/minus", response_model=ItemChangeOut, operation_id="orders_minus_item")
async def minus_item(
    item_id: int,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).minus_item(session, item_id=item_id)


# -------------------------------
# 状态迁移
# -------------------------------
@router.post("/ship", response_model=ShipOut, operation_id="orders_ship")
async def ship_orders(
    payload: ShipIn,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).mark_shipped(session, order_ids=payload.order_ids)


@router.post("/{order_id}/pay", response_model=OrderOut, operation_id="orders_pay")
async def pay_order(
    order_id: int,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).mark_payed(session, order_id=order_id)


@router.post("/{order_id}/cancel", response_model=CloseOut, operation_id="orders_cancel")
async def cancel_order(
    order_id: int,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).cancel_order(session, order_id=order_id)


@router.post("/{order_id}/expire", response_model=CloseOut, operation_id="orders_expire_if_due")
async def expire_order(
    order_id: int,
    payload: ExpireIn = ExpireIn(),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await ExpirySweeper(notifier).expire_if_due(
        session, order_id=order_id, user_id=payload.user_id
    )


# -------------------------------
# 只读
# -------------------------------
@router.get("/by-number/{order_number}/total", response_model=OrderTotalOut, operation_id="orders_total")
async def order_total(
    order_number: str,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).fetch_total(session, order_number=order_number)


@router.get(
    "/by-message/{message_id}/status",
    response_model=List[MessageItemStatusOut],
    operation_id="orders_status_by_message",
)
async def status_by_message(
    message_id: str,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).check_status_by_message(session, message_id=message_id)


@router.get("/{order_id}", response_model=OrderOut, operation_id="orders_get")
async def get_order(
    order_id: int,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await OrderService(notifier).get_order(session, order_id=order_id)

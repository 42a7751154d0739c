# liveorders/api/routers/inventory.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.api.deps import get_notifier, get_session
from liveorders.schemas.inventory import (
    ConfigurationOut,
    ReleaseIn,
    ReleaseOut,
    SetQuantityIn,
    SetQuantityOut,
    WaitingPageOut,
)
from liveorders.services.notifier import Notifier
from liveorders.services.stock_service import StockService

router = APIRouter(tags=["inventory"])


@router.get(
    "/inventory/configurations/{configuration_id}",
    response_model=ConfigurationOut,
    operation_id="inventory_get_configuration",
)
async def get_configuration(
    configuration_id: int,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await StockService(notifier).get_configuration(
        session, configuration_id=configuration_id
    )


@router.put(
    "/inventory/configurations/{configuration_id}/quantity",
    response_model=SetQuantityOut,
    operation_id="inventory_set_quantity",
)
async def set_quantity(
    configuration_id: int,
    payload: SetQuantityIn,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await StockService(notifier).restock(
        session, configuration_id=configuration_id, quantity=payload.quantity
    )


@router.post(
    "/inventory/configurations/{configuration_id}/release",
    response_model=ReleaseOut,
    operation_id="inventory_release",
)
async def release(
    configuration_id: int,
    payload: ReleaseIn,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await StockService(notifier).release(
        session, configuration_id=configuration_id, qty=payload.qty
    )


@router.get("/waiting", response_model=WaitingPageOut, operation_id="waiting_list")
async def list_waiting(
    configuration_id: Optional[int] = Query(None),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await StockService(notifier).list_waiting(
        session, configuration_id=configuration_id, limit=limit, offset=offset
    )

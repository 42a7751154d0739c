# liveorders/api/routers/messenger.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.api.deps import get_notifier, get_session
from liveorders.schemas.messenger import ResolveIn, ResolveOut
from liveorders.services.identity_resolution import IdentityResolver
from liveorders.services.notifier import Notifier

router = APIRouter(prefix="/messenger", tags=["messenger"])


@router.post("/resolve", response_model=ResolveOut, operation_id="messenger_resolve")
async def resolve_comment(
    payload: ResolveIn,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    """评论占位身份 → 真实买家。"""
    return await IdentityResolver(notifier).resolve(
        session,
        comment_id=payload.comment_id,
        user_id=payload.user_id,
        store_id=payload.store_id,
    )

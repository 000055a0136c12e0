"""
Trip checklist items (read-only listing for the signed-in user)
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.database import get_db
from app.models.item import Item
from app.models.user import User
from app.schemas.schemas import ItemListResponse, ItemResponse

router = APIRouter()


@router.get("", response_model=ItemListResponse)
async def list_items(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    total = await db.scalar(select(func.count(Item.id)))
    result = await db.execute(select(Item).order_by(Item.id).offset(offset).limit(limit))
    items = [ItemResponse.model_validate(item) for item in result.scalars().all()]
    return ItemListResponse(items=items, total=total or 0)

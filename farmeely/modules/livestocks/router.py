from decimal import Decimal
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from farmeely.auth.deps import admin_required, get_current_user
from farmeely.db.session import get_session
from farmeely.models.models import Livestock, User
from farmeely.schemas.group import CreateLivestockRequest
from farmeely.validation import create_livestock_validation, validate_body

router = APIRouter(tags=["livestock"])


def livestock_out(l: Livestock) -> dict:
    return {
        "livestock_id": l.livestock_id,
        "name": l.name,
        "breed": l.breed,
        "weight": l.weight,
        "price": float(l.price),
        "minimum_amount": float(l.minimum_amount),
        "imageUrl": l.image_url,
        "description": l.description,
        "available": l.available,
    }


@router.get("/")
async def list_livestock(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    res = await db.execute(sa_select(Livestock).where(Livestock.available.is_(True)).order_by(Livestock.name))
    return {"status": "success", "data": [livestock_out(l) for l in res.scalars().all()]}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_livestock(
    payload: CreateLivestockRequest = Depends(validate_body(create_livestock_validation)),
    current_user: User = Depends(admin_required),
    db: AsyncSession = Depends(get_session),
):
    res = await db.execute(sa_select(Livestock).where(Livestock.name == payload.name))
    if res.scalars().first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Livestock with this name already exists")
    livestock = Livestock(
        livestock_id=str(uuid4()),
        name=payload.name,
        breed=payload.breed,
        weight=payload.weight,
        price=Decimal(str(payload.price)),
        minimum_amount=Decimal(str(payload.minimum_amount)),
        image_url=str(payload.image_url) if payload.image_url else None,
        description=payload.description,
        available=payload.available,
        created_by=current_user.user_id,
    )
    db.add(livestock)
    await db.commit()
    return {"status": "success", "message": "Livestock created successfully", "data": livestock_out(livestock)}

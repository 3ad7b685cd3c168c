from typing import Literal, Optional

from pydantic import AnyUrl, BaseModel, Field

from farmeely.schemas.user import StrictModel


PaymentMethod = Literal["wallet", "others"]


class CreateGroupRequest(StrictModel):
    group_name: str = Field(..., alias="groupName", min_length=3, max_length=100)
    description: str = Field(..., min_length=10)
    livestock_id: str
    slot_price: int = Field(..., alias="slotPrice", ge=1)
    total_slot: int = Field(..., alias="totalSlot", ge=1)
    # creator's initial slots
    slot_taken: int = Field(..., alias="slotTaken", ge=1)


class CompleteCreateGroupRequest(BaseModel):
    group_id: str = Field(..., alias="groupId")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    payment_reference: Optional[str] = Field(None, alias="paymentReference")


class JoinGroupRequest(StrictModel):
    slots: int = Field(..., ge=1)
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")


class CreateLivestockRequest(StrictModel):
    name: str = Field(..., min_length=2)
    breed: Optional[str] = None
    weight: Optional[float] = Field(None, gt=0)
    price: float = Field(..., gt=0)
    minimum_amount: float = Field(..., gt=0)
    image_url: Optional[AnyUrl] = Field(None, alias="imageUrl")
    description: Optional[str] = None
    available: bool = True

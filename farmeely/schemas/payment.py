from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PaymentInitializeRequest(BaseModel):
    email: str
    # major currency unit (naira)
    amount: Decimal = Field(..., gt=0)
    reference: str = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class PaymentVerifyRequest(BaseModel):
    reference: str = Field(..., min_length=1)


class StartWalletFundingRequest(BaseModel):
    amount: Decimal


class ManualReconciliationRequest(BaseModel):
    reference: str = Field(..., min_length=1)
    user_id: str

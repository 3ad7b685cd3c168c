from farmeely.db.base import Base
from .models import *

__all__ = [
    "Base",
    "User",
    "UserTemp",
    "Otp",
    "ResetOtp",
    "Wallet",
    "Transaction",
    "Livestock",
    "Group",
    "GroupMember",
    "PendingPayment",
    "AuditLog",
]

"""
Exchange Domain Layer.

Contains pure business logic for the store-credit exchange use case.
No database access or I/O - just business rules.
"""

from .models import (
    ExchangeRequest,
    ExchangeStatus,
    TransitStatus,
    ProductImage,
    ShippingDetails,
    StatusHistoryEntry,
    Warehouse,
    CreditLedgerEntry,
    UserProfile,
)
from .policies import (
    DecisionPolicy,
    ShippingPolicy,
    ReceiptPolicy,
    CreditPolicy,
    CompletionPolicy,
    CancellationPolicy,
    AdminDeletePolicy,
    CreditAmountValidator,
    DecisionValidator,
)
from .services import (
    ExchangeRequestBuilder,
    ShippingDetailsBuilder,
    WarehouseBuilder,
    record_transition,
)

__all__ = [
    "ExchangeRequest",
    "ExchangeStatus",
    "TransitStatus",
    "ProductImage",
    "ShippingDetails",
    "StatusHistoryEntry",
    "Warehouse",
    "CreditLedgerEntry",
    "UserProfile",
    "DecisionPolicy",
    "ShippingPolicy",
    "ReceiptPolicy",
    "CreditPolicy",
    "CompletionPolicy",
    "CancellationPolicy",
    "AdminDeletePolicy",
    "CreditAmountValidator",
    "DecisionValidator",
    "ExchangeRequestBuilder",
    "ShippingDetailsBuilder",
    "WarehouseBuilder",
    "record_transition",
]

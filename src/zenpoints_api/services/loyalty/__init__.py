from .ledger import LoyaltyLedgerService, LoyaltySummary, OrderAwardResult, calculate_points_for_order
from .records import LOYALTY_ATTRIBUTE, LoyaltyRecord
from .tiers import LoyaltyTier, TierAssignment, TierBand, TierTable

__all__ = [
    "LOYALTY_ATTRIBUTE",
    "LoyaltyLedgerService",
    "LoyaltyRecord",
    "LoyaltySummary",
    "LoyaltyTier",
    "OrderAwardResult",
    "TierAssignment",
    "TierBand",
    "TierTable",
    "calculate_points_for_order",
]

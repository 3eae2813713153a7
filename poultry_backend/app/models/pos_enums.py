"""
Enumerations for truck loads, payments and reconciliation.
"""

import enum


class TruckLoadStatus(str, enum.Enum):
    """Truck load status, derived from sold weight until the day is reconciled."""
    LOADED = "LOADED"  # Nothing sold yet
    PARTIALLY_SOLD = "PARTIALLY_SOLD"
    FULLY_SOLD = "FULLY_SOLD"  # Sold weight equals gross weight
    RECONCILED = "RECONCILED"  # Truck-day closed by the reconciliation engine


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    CARD = "CARD"


class ReconciliationStatus(str, enum.Enum):
    """Truck-day reconciliation status."""
    OPEN = "OPEN"  # Created, sales being recorded
    BALANCED = "BALANCED"  # Closed, variance within tolerance
    VARIANCE = "VARIANCE"  # Closed, variance outside tolerance
    UNDER_REVIEW = "UNDER_REVIEW"  # Reopened for correction, editable again


class RiskTier(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

"""
Truck load metrics: weight per cage, validity band, efficiency and the
status derived from sold weight.
"""

from decimal import Decimal

from poultry_backend.app.core.exceptions import InvalidWeightError
from poultry_backend.app.domain.ledger.money import ZERO, quantize_weight, to_decimal
from poultry_backend.app.models.pos_enums import TruckLoadStatus


def weight_per_cage(gross_weight, cages_count: int) -> Decimal:
    gross = to_decimal(gross_weight)
    if gross <= ZERO:
        raise InvalidWeightError("Gross weight must be greater than zero", gross)
    if cages_count <= 0:
        raise InvalidWeightError("Cages count must be greater than zero", cages_count)
    return quantize_weight(gross / cages_count)


def is_within_band(per_cage: Decimal, minimum: Decimal, maximum: Decimal) -> bool:
    return minimum <= per_cage <= maximum


def load_efficiency(per_cage, optimal) -> Decimal:
    """Percentage score: 100 at the optimal weight, minus 2 points per kg of deviation."""
    deviation = abs(to_decimal(per_cage) - to_decimal(optimal))
    score = Decimal("100") - deviation * 2
    return max(ZERO, min(Decimal("100"), score)).quantize(Decimal("0.01"))


def derived_load_status(sold_weight, gross_weight) -> TruckLoadStatus:
    sold = to_decimal(sold_weight)
    if sold <= ZERO:
        return TruckLoadStatus.LOADED
    if sold >= to_decimal(gross_weight):
        return TruckLoadStatus.FULLY_SOLD
    return TruckLoadStatus.PARTIALLY_SOLD

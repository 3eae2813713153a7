"""
Customer risk classification.

Score is a weighted sum of three factors, each in [0, 1]:

    overdue  = share of outstanding debt older than the second aging boundary
    exposure = min(outstanding / credit_limit, 2) / 2
    recency  = min(days since last payment / horizon, 1)

    score = 100 * (w_overdue * overdue + w_exposure * exposure + w_recency * recency)
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from poultry_backend.app.core.config import Settings, settings
from poultry_backend.app.domain.ledger.aging import AgingSnapshot
from poultry_backend.app.domain.ledger.money import ZERO, quantize_money, to_decimal
from poultry_backend.app.models.pos_enums import RiskTier

ONE = Decimal("1")
TWO = Decimal("2")
HUNDRED = Decimal("100")
FACTOR_PLACES = Decimal("0.0001")

SUGGESTED_ACTIONS = {
    RiskTier.LOW: "No action required",
    RiskTier.MEDIUM: "Send payment reminder",
    RiskTier.HIGH: "Call customer and agree payment plan",
    RiskTier.CRITICAL: "Suspend credit sales and escalate collection",
}


@dataclass
class RiskFactors:
    """Normalized inputs of the risk score"""

    overdue: Decimal
    exposure: Decimal
    recency: Decimal
    days_since_last_payment: Optional[int]
    credit_limit: Decimal


@dataclass
class RiskAssessment:
    """Output of risk classification"""

    customer_id: int
    as_of: date
    score: Decimal
    tier: RiskTier
    factors: RiskFactors
    suggested_action: str


def tier_for_score(score: Decimal, thresholds) -> RiskTier:
    low, medium, high = (to_decimal(t) for t in thresholds)
    if score < low:
        return RiskTier.LOW
    if score < medium:
        return RiskTier.MEDIUM
    if score < high:
        return RiskTier.HIGH
    return RiskTier.CRITICAL


def risk_factors(snapshot: AgingSnapshot, credit_limit, config: Settings = settings) -> RiskFactors:
    outstanding = snapshot.total_outstanding
    limit = to_decimal(credit_limit) if credit_limit is not None else to_decimal(config.default_credit_limit)

    if outstanding <= ZERO:
        return RiskFactors(
            overdue=ZERO,
            exposure=ZERO,
            recency=ZERO,
            days_since_last_payment=_days_since(snapshot.last_payment_date, snapshot.as_of),
            credit_limit=limit,
        )

    overdue = snapshot.overdue_amount / outstanding

    if limit > ZERO:
        exposure = min(outstanding / limit, TWO) / TWO
    else:
        # No credit allowed: any debt is full exposure.
        exposure = ONE

    days = _days_since(snapshot.last_payment_date, snapshot.as_of)
    if days is None:
        days = (snapshot.as_of - snapshot.oldest_outstanding_date).days
    horizon = max(1, config.risk_recency_horizon_days)
    recency = min(Decimal(days) / horizon, ONE)

    return RiskFactors(
        overdue=overdue.quantize(FACTOR_PLACES),
        exposure=exposure.quantize(FACTOR_PLACES),
        recency=recency.quantize(FACTOR_PLACES),
        days_since_last_payment=_days_since(snapshot.last_payment_date, snapshot.as_of),
        credit_limit=limit,
    )


def classify(snapshot: AgingSnapshot, credit_limit=None, config: Settings = settings) -> RiskAssessment:
    """Classify a customer from an aging snapshot. Pure: no storage, no clock."""
    factors = risk_factors(snapshot, credit_limit, config)

    weighted = (
        to_decimal(config.risk_weight_overdue) * factors.overdue
        + to_decimal(config.risk_weight_exposure) * factors.exposure
        + to_decimal(config.risk_weight_recency) * factors.recency
    )
    score = quantize_money(weighted * HUNDRED)
    tier = tier_for_score(score, config.risk_tier_thresholds)

    return RiskAssessment(
        customer_id=snapshot.customer_id,
        as_of=snapshot.as_of,
        score=score,
        tier=tier,
        factors=factors,
        suggested_action=SUGGESTED_ACTIONS[tier],
    )


def _days_since(last: Optional[date], as_of: date) -> Optional[int]:
    if last is None:
        return None
    return max(0, (as_of - last).days)

# valuation.py
# Price-tier resolution, ROI/profit math and PSA grading fee lookup

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class GradingStatus(str, Enum):
    UNGRADED = "ungraded"
    PSA_7 = "psa-7"
    PSA_8 = "psa-8"
    PSA_9 = "psa-9"
    PSA_10 = "psa-10"


class AlertType(str, Enum):
    ABOVE = "above"
    BELOW = "below"


@dataclass(frozen=True)
class PriceTiers:
    ungraded: Optional[float] = None
    psa7: Optional[float] = None
    psa8: Optional[float] = None
    psa9: Optional[float] = None
    psa10: Optional[float] = None

    @classmethod
    def from_record(cls, record) -> "PriceTiers":
        """Build tiers from a pricing_data row (or anything with the same attribute names)."""
        return cls(
            ungraded=_as_float(getattr(record, "ungraded_price", None)),
            psa7=_as_float(getattr(record, "psa_7_price", None)),
            psa8=_as_float(getattr(record, "psa_8_price", None)),
            psa9=_as_float(getattr(record, "psa_9_price", None)),
            psa10=_as_float(getattr(record, "psa_10_price", None)),
        )


@dataclass(frozen=True)
class ReturnSummary:
    profit: float
    roi_percent: float


@dataclass(frozen=True)
class PortfolioTotals:
    total_invested: float
    current_value: float
    total_profit: float
    total_roi: float


def _as_float(value) -> Optional[float]:
    if value is None:
        return None
    return float(value)


# === Fallback order per grading status (first present tier wins)
FALLBACK_ORDER = {
    GradingStatus.PSA_10.value: ("psa10", "ungraded"),
    GradingStatus.PSA_9.value: ("psa9", "psa10", "ungraded"),
    GradingStatus.PSA_8.value: ("psa8", "psa9", "ungraded"),
    GradingStatus.PSA_7.value: ("psa7", "psa8", "ungraded"),
}
DEFAULT_FALLBACK = ("ungraded",)


def resolve_price(tiers: PriceTiers, grading_status) -> float:
    status = grading_status.value if isinstance(grading_status, GradingStatus) else grading_status
    for tier in FALLBACK_ORDER.get(status, DEFAULT_FALLBACK):
        price = getattr(tiers, tier)
        if price and price > 0:
            return price
    return 0.0


def current_price(purchase_price: float, tiers: Optional[PriceTiers], grading_status) -> float:
    # No pricing record at all: the holding is valued at cost
    if tiers is None:
        return float(purchase_price)
    return resolve_price(tiers, grading_status)


def compute_return(purchase_price: float, current: float, quantity: int = 1) -> ReturnSummary:
    profit = (current - purchase_price) * quantity
    roi = (current - purchase_price) / purchase_price * 100 if purchase_price > 0 else 0.0
    return ReturnSummary(profit=profit, roi_percent=roi)


def portfolio_totals(holdings: Iterable[Tuple[float, float, int]]) -> PortfolioTotals:
    """
    holdings: (purchase_price, current_price, quantity) per entry.
    """
    invested = 0.0
    value = 0.0
    for purchase, current, quantity in holdings:
        invested += purchase * quantity
        value += current * quantity
    profit = value - invested
    roi = profit / invested * 100 if invested > 0 else 0.0
    return PortfolioTotals(
        total_invested=invested,
        current_value=value,
        total_profit=profit,
        total_roi=roi,
    )


# === PSA fee tiers: (exclusive upper bound, fee)
PSA_FEE_TABLE = [
    (199, 19),
    (499, 30),
    (999, 50),
    (2499, 75),
    (4999, 150),
    (9999, 300),
]
PSA_MAX_FEE = 600
GAMESTOP_FLAT_FEE = 19.99


def estimate_grading_cost(card_value: float) -> int:
    for bound, fee in PSA_FEE_TABLE:
        if card_value < bound:
            return fee
    return PSA_MAX_FEE


def grading_costs(card_value: float) -> dict:
    return {"psa": estimate_grading_cost(card_value), "gamestop": GAMESTOP_FLAT_FEE}


def grading_profit(ungraded_price: float, psa10_price: float) -> float:
    """Net profit of buying raw, paying the PSA fee and selling as a PSA 10."""
    return psa10_price - ungraded_price - estimate_grading_cost(psa10_price)


def alert_triggered(price: Optional[float], alert_price: Optional[float], alert_type) -> bool:
    if price is None or alert_price is None:
        return False
    kind = alert_type.value if isinstance(alert_type, AlertType) else alert_type
    if kind == AlertType.ABOVE.value:
        return price >= alert_price
    if kind == AlertType.BELOW.value:
        return price <= alert_price
    return False


def market_stats(pricing_rows: List, total_cards: int) -> dict:
    """
    Dashboard numbers over the latest pricing row of each card.
    """
    if not pricing_rows:
        return {
            "total_cards": total_cards,
            "avg_roi": 0,
            "avg_profit": 0,
            "total_market_value": 0,
        }

    count = len(pricing_rows)
    total_roi = sum(float(p.roi_percentage or 0) for p in pricing_rows)
    total_profit = sum(float(p.psa_10_price or 0) - float(p.ungraded_price or 0) for p in pricing_rows)
    total_value = sum(float(p.psa_10_price or 0) for p in pricing_rows)

    return {
        "total_cards": total_cards,
        "avg_roi": round(total_roi / count, 1),
        "avg_profit": round(total_profit / count, 2),
        "total_market_value": round(total_value),
    }

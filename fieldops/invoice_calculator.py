# fieldops/invoice_calculator.py
import logging
from typing import Dict, Mapping, Optional, Union

from .config import settings
from .models import InvoiceItems, UnitRates

logger = logging.getLogger(__name__)

Number = Union[int, float]

# Cable categories billed per foot
CABLE_RATE_KEYS = ("strand", "fiber", "overlash")
DEFAULT_CABLE_TYPE = "fiber"

# Invoice item field -> unit rate field. Coils are counted for pick lists only.
ITEM_RATE_KEYS = {
    "anchors": "anchor",
    "snowshoes": "snowshoe",
    "risers": "riser",
    "composites": "composite",
}


def calculate_total(footage: Optional[Number], cable_rate: Optional[Number],
                    counts: Optional[Mapping[str, Optional[Number]]] = None,
                    rates: Optional[Mapping[str, Optional[Number]]] = None) -> float:
    """
    total = footage * cable_rate + sum(counts[k] * rates[k]) over keys present in both.

    Absent values count as zero. No rounding and no validation: negative inputs
    flow through unchanged.
    """
    total = float(footage or 0) * float(cable_rate or 0)
    if not counts or not rates:
        return total
    for key, count in counts.items():
        if key not in rates:
            continue
        total += float(count or 0) * float(rates[key] or 0)
    return total


def cable_rate_for(rates: UnitRates, cable_type: Optional[str] = None) -> float:
    """Per-foot rate for a cable category; unknown categories bill as fiber."""
    key = (cable_type or DEFAULT_CABLE_TYPE).strip().lower()
    if key not in CABLE_RATE_KEYS:
        logger.debug(f"Unknown cable type '{cable_type}', billing at fiber rate")
        key = DEFAULT_CABLE_TYPE
    return float(getattr(rates, key))


def item_counts_by_rate(items: Optional[InvoiceItems]) -> Dict[str, float]:
    """Re-key invoice item counts by the unit rate they are billed at."""
    if items is None:
        return {}
    return {rate_key: float(getattr(items, field) or 0) for field, rate_key in ITEM_RATE_KEYS.items()}


def rate_table(rates: UnitRates) -> Dict[str, float]:
    return {k: float(v) for k, v in rates.model_dump().items()}


def compute_fee(amount: Number, fee_rate: Optional[Number] = None) -> float:
    """Payout fee; the configured TRANSACTION_FEE_RATE unless a rate is given."""
    if fee_rate is None:
        fee_rate = settings.TRANSACTION_FEE_RATE
    return float(amount) * float(fee_rate)


def format_currency(amount: Number) -> str:
    """Display formatting only, never used for stored amounts."""
    value = float(amount or 0)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


class InvoiceCalculator:
    """Prices crew submissions against a unit-rate table."""

    def __init__(self, rates: UnitRates):
        self.rates = rates

    def calculate(self, total_footage: Optional[Number], items: Optional[InvoiceItems] = None,
                  cable_type: Optional[str] = None) -> float:
        return calculate_total(
            total_footage,
            cable_rate_for(self.rates, cable_type),
            item_counts_by_rate(items),
            rate_table(self.rates),
        )

    def breakdown(self, total_footage: Optional[Number], items: Optional[InvoiceItems] = None,
                  cable_type: Optional[str] = None) -> Dict[str, float]:
        """Per-category amounts, used by the estimate endpoint and the billing report."""
        cable_key = (cable_type or DEFAULT_CABLE_TYPE).strip().lower()
        if cable_key not in CABLE_RATE_KEYS:
            cable_key = DEFAULT_CABLE_TYPE
        lines = {cable_key: calculate_total(total_footage, cable_rate_for(self.rates, cable_type))}
        table = rate_table(self.rates)
        for rate_key, count in item_counts_by_rate(items).items():
            lines[rate_key] = calculate_total(0, 0, {rate_key: count}, table)
        lines["total"] = sum(lines.values())
        return lines

import logging

from ..models import UnitRates
from ..store import FieldOpsStore

logger = logging.getLogger(__name__)


class RateService:
    """Contract unit-rate table. Updates apply to submissions made afterwards only."""

    def __init__(self, store: FieldOpsStore):
        self.store = store

    def get_rates(self) -> UnitRates:
        return self.store.rates

    def update_rates(self, rates: UnitRates) -> UnitRates:
        # Re-validate so values assigned after construction are checked too
        validated = UnitRates.model_validate(rates.model_dump())
        previous = self.store.rates
        self.store.set_rates(validated)
        changed = {
            k: (getattr(previous, k), v) for k, v in validated.model_dump().items()
            if getattr(previous, k) != v
        }
        logger.info(f"Unit rates updated: {changed or 'no changes'}")
        return validated

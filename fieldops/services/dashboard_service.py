import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

import pandas as pd

from ..config import settings
from ..models import (
    CrewProduction, DashboardMetrics, Invoice, QCStatus, WalletSummary
)
from ..store import FieldOpsStore

logger = logging.getLogger(__name__)

PERIODS = ("daily", "weekly", "monthly")


def round_half_up(value: float) -> int:
    """Nearest integer with .5 rounded up (round() would pick the even neighbour)."""
    return int(math.floor(value + 0.5))


class DashboardService:
    """Production, revenue and compliance metrics over a reporting period."""

    def __init__(self, store: FieldOpsStore):
        self.store = store

    def filter_period(self, invoices: List[Invoice], period: str,
                      now: Optional[datetime] = None) -> List[Invoice]:
        if period not in PERIODS:
            raise ValueError(f"Unsupported period: {period}, expected daily/weekly/monthly")
        now = now or datetime.now()

        def same_month(d: datetime) -> bool:
            return d.month == now.month and d.year == now.year

        if period == "monthly":
            return [i for i in invoices if same_month(i.date)]
        if period == "weekly":
            week_ago = now - timedelta(days=7)
            return [i for i in invoices if i.date >= week_ago]
        return [i for i in invoices if same_month(i.date) and i.date.day == now.day]

    def production_by_crew(self, invoices: List[Invoice]) -> List[CrewProduction]:
        """Footage per crew with an approximate span count."""
        if not invoices:
            return []
        df = pd.DataFrame(
            [{"crew_name": i.crew_name, "footage": i.total_footage} for i in invoices]
        )
        grouped = df.groupby("crew_name", sort=False)["footage"].sum()
        return [
            CrewProduction(
                name=crew,
                spans=round_half_up(footage / settings.SPAN_LENGTH_FT),
                footage=float(footage),
            )
            for crew, footage in grouped.items()
        ]

    def metrics(self, period: str = "monthly", now: Optional[datetime] = None) -> DashboardMetrics:
        invoices = self.filter_period(self.store.invoices, period, now)
        count = len(invoices)
        passed = sum(1 for i in invoices if i.qc_status == QCStatus.PASSED)

        return DashboardMetrics(
            period=period,
            invoice_count=count,
            revenue_estimate=sum(i.total_amount for i in invoices),
            production_total=sum(i.total_footage for i in invoices),
            qc_issues=sum(1 for i in invoices if i.qc_status == QCStatus.FAILED),
            compliance_rate=round_half_up(passed / count * 100) if count > 0 else 100,
            production_by_crew=self.production_by_crew(invoices),
        )

    def wallet(self) -> WalletSummary:
        """Balance of everything paid out so far."""
        transactions = self.store.transactions
        return WalletSummary(
            balance=sum(t.net_amount for t in transactions),
            payouts=len(transactions),
        )

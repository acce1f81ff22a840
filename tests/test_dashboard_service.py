from datetime import datetime

import pytest

from fieldops.models import Invoice, QCStatus

NOW = datetime(2026, 5, 15, 12, 0)


def add(store, invoice_id, date, crew="Crew Alpha", footage=1500, amount=450.0,
        qc=QCStatus.NOT_STARTED):
    store.add_invoice(Invoice(
        id=invoice_id, crew_name=crew, route_id="RT-1", total_footage=footage,
        total_amount=amount, qc_status=qc, date=date,
    ))


@pytest.fixture
def populated(store):
    add(store, "INV-2026-1", datetime(2026, 5, 15, 8), qc=QCStatus.PASSED)
    add(store, "INV-2026-2", datetime(2026, 5, 12, 8), crew="Crew Bravo", footage=300,
        amount=90.0, qc=QCStatus.FAILED)
    add(store, "INV-2026-3", datetime(2026, 5, 2, 8), qc=QCStatus.PASSED)
    add(store, "INV-2026-4", datetime(2026, 4, 30, 8))
    return store


class TestDashboardService:

    def test_monthly(self, dashboard_service, populated):
        metrics = dashboard_service.metrics("monthly", now=NOW)
        assert metrics.invoice_count == 3
        assert metrics.revenue_estimate == pytest.approx(990.0)
        assert metrics.production_total == 3300
        assert metrics.qc_issues == 1
        assert metrics.compliance_rate == 67

    def test_weekly_window(self, dashboard_service, populated):
        metrics = dashboard_service.metrics("weekly", now=NOW)
        assert metrics.invoice_count == 2

    def test_daily(self, dashboard_service, populated):
        metrics = dashboard_service.metrics("daily", now=NOW)
        assert metrics.invoice_count == 1
        assert metrics.compliance_rate == 100

    def test_empty_period_is_fully_compliant(self, dashboard_service):
        metrics = dashboard_service.metrics("monthly", now=NOW)
        assert metrics.invoice_count == 0
        assert metrics.compliance_rate == 100
        assert metrics.production_by_crew == []

    def test_unknown_period(self, dashboard_service):
        with pytest.raises(ValueError):
            dashboard_service.metrics("yearly", now=NOW)

    def test_production_by_crew(self, dashboard_service, populated):
        crews = {c.name: c for c in dashboard_service.metrics("monthly", now=NOW).production_by_crew}
        assert crews["Crew Alpha"].footage == 3000
        assert crews["Crew Alpha"].spans == 20
        assert crews["Crew Bravo"].spans == 2

    def test_wallet(self, dashboard_service, settlement_service, approved_invoice):
        settlement_service.settle(approved_invoice.id)
        wallet = dashboard_service.wallet()
        assert wallet.payouts == 1
        assert wallet.balance == pytest.approx(327.723)


class TestHalfUpRounding:

    def test_compliance_rate_rounds_half_up(self, dashboard_service, store):
        # 5 of 8 passed: 62.5%
        for n in range(8):
            qc = QCStatus.PASSED if n < 5 else QCStatus.NOT_STARTED
            add(store, f"INV-2026-{n}", datetime(2026, 5, 15, 8), qc=qc)
        assert dashboard_service.metrics("monthly", now=NOW).compliance_rate == 63

    def test_spans_round_half_up(self, dashboard_service, store):
        # 375 ft is 2.5 spans of 150 ft
        add(store, "INV-2026-1", datetime(2026, 5, 15, 8), footage=375)
        crew = dashboard_service.metrics("monthly", now=NOW).production_by_crew[0]
        assert crew.spans == 3
        assert crew.footage == 375.0

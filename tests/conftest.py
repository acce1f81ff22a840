import pytest
import sys
import os
from datetime import datetime
from unittest.mock import MagicMock

# Make the fieldops package importable when running from the tests directory
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../")))

from fieldops.models import InvoiceItems, InvoiceSubmitRequest
from fieldops.services import (
    AiService, DashboardService, InvoiceService, NotificationService, PaymentSettlementService
)
from fieldops.store import build_store


@pytest.fixture
def store(tmp_path):
    return build_store(f"sqlite:///{tmp_path / 'state.db'}")


@pytest.fixture
def invoice_service(store):
    return InvoiceService(store)


@pytest.fixture
def settlement_service(store):
    return PaymentSettlementService(store, fee_rate=0.0069, delay_seconds=0)


@pytest.fixture
def dashboard_service(store):
    return DashboardService(store)


@pytest.fixture
def ai_client():
    return MagicMock()


@pytest.fixture
def ai_service(ai_client):
    return AiService(client=ai_client)


@pytest.fixture
def sample_submission():
    # 1000 ft of fiber at 0.30 plus 2 anchors at 15.00 = 330.00
    return InvoiceSubmitRequest(
        route_id="RT-101",
        total_footage=1000,
        cable_type="fiber",
        fiber_count="48ct",
        items=InvoiceItems(anchors=2),
    )


@pytest.fixture
def approved_invoice(invoice_service, sample_submission):
    invoice = invoice_service.submit(sample_submission, crew_name="Crew Alpha",
                                     now=datetime(2026, 5, 15, 9, 30))
    invoice_service.record_qc(invoice.id, "PASSED")
    return invoice_service.approve(invoice.id)


@pytest.fixture
def client(store, ai_service):
    from fastapi.testclient import TestClient
    from fieldops.main import app, get_ai_service, get_notifications, get_store

    notifications = NotificationService()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifications] = lambda: notifications
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

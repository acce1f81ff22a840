import logging
from datetime import datetime
from typing import List, Optional

from ..config import settings
from ..invoice_calculator import InvoiceCalculator
from ..lifecycle import approve, record_qc
from ..models import (
    AdminSummary, EstimateRequest, Invoice, InvoiceStatus, InvoiceSubmitRequest, QCStatus
)
from ..store import FieldOpsStore
from ..utils import new_invoice_id

logger = logging.getLogger(__name__)


class InvoiceService:
    """Crew submissions and supervisor QC/approval actions."""

    def __init__(self, store: FieldOpsStore):
        self.store = store

    def submit(self, request: InvoiceSubmitRequest, crew_name: Optional[str] = None,
               now: Optional[datetime] = None) -> Invoice:
        """Price the submission at the current rates and queue it for QC."""
        now = now or datetime.now()
        calculator = InvoiceCalculator(self.store.rates)
        total_amount = calculator.calculate(request.total_footage, request.items, request.cable_type)

        invoice = Invoice(
            id=new_invoice_id(self.store.has_invoice, now),
            crew_name=crew_name or settings.DEFAULT_CREW_NAME,
            route_id=request.route_id or "N/A",
            cable_type=request.cable_type,
            fiber_count=request.fiber_count,
            total_footage=request.total_footage or 0,
            total_amount=total_amount,
            status=InvoiceStatus.PENDING_QC,
            qc_status=QCStatus.NOT_STARTED,
            date=now,
            items=request.items,
        )
        self.store.add_invoice(invoice)
        logger.info(
            f"Invoice {invoice.id} submitted by {invoice.crew_name}: route={invoice.route_id}, "
            f"footage={invoice.total_footage}, amount={invoice.total_amount}"
        )
        return invoice

    def estimate(self, request: EstimateRequest) -> dict:
        """Live earnings preview for the submission form; nothing is stored."""
        calculator = InvoiceCalculator(self.store.rates)
        return calculator.breakdown(request.total_footage, request.items, request.cable_type)

    def record_qc(self, invoice_id: str, outcome: QCStatus) -> Invoice:
        invoice = record_qc(self.store.get_invoice(invoice_id), outcome)
        self.store.replace_invoice(invoice)
        logger.info(f"Invoice {invoice_id} QC recorded: {invoice.qc_status.value}")
        return invoice

    def approve(self, invoice_id: str) -> Invoice:
        invoice = approve(self.store.get_invoice(invoice_id))
        self.store.replace_invoice(invoice)
        logger.info(f"Invoice {invoice_id} approved")
        return invoice

    def get(self, invoice_id: str) -> Invoice:
        return self.store.get_invoice(invoice_id)

    def list_invoices(self, filter_text: Optional[str] = None) -> List[Invoice]:
        """Case-insensitive match on crew name, route id or invoice id."""
        invoices = self.store.invoices
        if not filter_text:
            return invoices
        needle = filter_text.lower()
        return [
            inv for inv in invoices
            if needle in inv.crew_name.lower()
            or needle in inv.route_id.lower()
            or needle in inv.id.lower()
        ]

    def admin_summary(self) -> AdminSummary:
        invoices = self.store.invoices
        return AdminSummary(
            total_wip=sum(i.total_amount for i in invoices
                          if i.status in (InvoiceStatus.PENDING_QC, InvoiceStatus.DRAFT)),
            total_approved=sum(i.total_amount for i in invoices if i.status == InvoiceStatus.APPROVED),
            total_qc_blocked=sum(i.total_amount for i in invoices if i.qc_status == QCStatus.FAILED),
        )

from datetime import datetime

import pytest

from fieldops.lifecycle import (
    InvalidTransitionError, approve, can_transition, is_payable, mark_paid, record_qc,
    submit_for_qc
)
from fieldops.models import Invoice, InvoiceStatus, QCStatus


def make_invoice(**overrides):
    data = dict(
        id="INV-2026-1", crew_name="Crew Alpha", route_id="RT-1", total_amount=100.0,
        status=InvoiceStatus.PENDING_QC, qc_status=QCStatus.NOT_STARTED,
        date=datetime(2026, 5, 15),
    )
    data.update(overrides)
    return Invoice(**data)


class TestStatusTransitions:

    def test_forward_path(self):
        invoice = make_invoice(status=InvoiceStatus.DRAFT)
        invoice = submit_for_qc(invoice)
        assert invoice.status == InvoiceStatus.PENDING_QC
        invoice = approve(record_qc(invoice, QCStatus.PASSED))
        assert invoice.status == InvoiceStatus.APPROVED
        assert mark_paid(invoice).status == InvoiceStatus.PAID

    def test_argument_is_not_mutated(self):
        invoice = make_invoice()
        approved = approve(invoice)
        assert invoice.status == InvoiceStatus.PENDING_QC
        assert approved.status == InvoiceStatus.APPROVED

    @pytest.mark.parametrize("status,target", [
        (InvoiceStatus.PENDING_QC, InvoiceStatus.PAID),
        (InvoiceStatus.APPROVED, InvoiceStatus.PENDING_QC),
        (InvoiceStatus.PAID, InvoiceStatus.APPROVED),
        (InvoiceStatus.DRAFT, InvoiceStatus.APPROVED),
    ])
    def test_skips_and_backward_moves_refused(self, status, target):
        assert can_transition(make_invoice(status=status), target) is False

    def test_paid_is_terminal(self):
        with pytest.raises(InvalidTransitionError):
            mark_paid(make_invoice(status=InvoiceStatus.PAID))

    def test_failed_qc_blocks_payment(self):
        invoice = make_invoice(status=InvoiceStatus.APPROVED, qc_status=QCStatus.FAILED)
        assert is_payable(invoice) is False
        with pytest.raises(InvalidTransitionError, match="failed QC"):
            mark_paid(invoice)

    def test_failed_qc_can_still_be_approved(self):
        invoice = make_invoice(qc_status=QCStatus.FAILED)
        assert approve(invoice).status == InvoiceStatus.APPROVED


class TestQC:

    def test_record_once(self):
        invoice = record_qc(make_invoice(), QCStatus.FAILED)
        assert invoice.qc_status == QCStatus.FAILED
        with pytest.raises(InvalidTransitionError, match="already recorded"):
            record_qc(invoice, QCStatus.PASSED)

    def test_not_started_is_not_an_outcome(self):
        with pytest.raises(InvalidTransitionError):
            record_qc(make_invoice(), QCStatus.NOT_STARTED)

    def test_no_qc_on_paid_invoice(self):
        with pytest.raises(InvalidTransitionError, match="already paid"):
            record_qc(make_invoice(status=InvoiceStatus.PAID), QCStatus.PASSED)

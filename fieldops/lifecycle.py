# fieldops/lifecycle.py
"""
Invoice lifecycle: DRAFT -> PENDING_QC -> APPROVED -> PAID, with an orthogonal
QC axis NOT_STARTED -> PASSED | FAILED.

All functions return a new Invoice and never mutate their argument; a refused
move raises InvalidTransitionError and leaves the caller's invoice as it was.
"""
import logging

from .models import Invoice, InvoiceStatus, QCStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.PENDING_QC},
    InvoiceStatus.PENDING_QC: {InvoiceStatus.APPROVED},
    InvoiceStatus.APPROVED: {InvoiceStatus.PAID},
    InvoiceStatus.PAID: set(),
}


class InvalidTransitionError(ValueError):
    """Raised when a status or QC move is not permitted."""


class InvoiceNotFoundError(LookupError):
    pass


def can_transition(invoice: Invoice, target: InvoiceStatus) -> bool:
    if target not in ALLOWED_TRANSITIONS[invoice.status]:
        return False
    if target == InvoiceStatus.PAID and invoice.qc_status == QCStatus.FAILED:
        return False
    return True


def transition(invoice: Invoice, target: InvoiceStatus) -> Invoice:
    if not can_transition(invoice, target):
        if target == InvoiceStatus.PAID and invoice.qc_status == QCStatus.FAILED:
            raise InvalidTransitionError(f"Invoice {invoice.id} failed QC and cannot be paid")
        raise InvalidTransitionError(
            f"Invoice {invoice.id} cannot move from {invoice.status.value} to {target.value}"
        )
    return invoice.model_copy(update={"status": target})


def submit_for_qc(invoice: Invoice) -> Invoice:
    return transition(invoice, InvoiceStatus.PENDING_QC)


def record_qc(invoice: Invoice, outcome: QCStatus) -> Invoice:
    """Record the QC outcome once; PASSED and FAILED are terminal on the QC axis."""
    outcome = QCStatus(outcome)
    if outcome == QCStatus.NOT_STARTED:
        raise InvalidTransitionError("QC outcome must be PASSED or FAILED")
    if invoice.status == InvoiceStatus.PAID:
        raise InvalidTransitionError(f"Invoice {invoice.id} is already paid")
    if invoice.qc_status != QCStatus.NOT_STARTED:
        raise InvalidTransitionError(
            f"Invoice {invoice.id} QC already recorded as {invoice.qc_status.value}"
        )
    return invoice.model_copy(update={"qc_status": outcome})


def approve(invoice: Invoice) -> Invoice:
    # Supervisor decision; a failed QC does not block approval, only payment
    if invoice.qc_status == QCStatus.FAILED:
        logger.warning(f"Invoice {invoice.id} approved with failed QC (manual override)")
    return transition(invoice, InvoiceStatus.APPROVED)


def mark_paid(invoice: Invoice) -> Invoice:
    return transition(invoice, InvoiceStatus.PAID)


def is_payable(invoice: Invoice) -> bool:
    return can_transition(invoice, InvoiceStatus.PAID)

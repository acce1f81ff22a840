import logging
import time
from datetime import datetime
from typing import Optional

from ..config import settings
from ..invoice_calculator import compute_fee
from ..lifecycle import InvalidTransitionError, is_payable, mark_paid
from ..models import Invoice, InvoiceStatus, SettlementPreview, Transaction, TransactionStatus
from ..store import FieldOpsStore
from ..utils import new_transaction_id

logger = logging.getLogger(__name__)


class PaymentSettlementService:
    """Settles approved invoices into payout ledger entries, net of the transaction fee."""

    def __init__(self, store: FieldOpsStore, fee_rate: Optional[float] = None,
                 delay_seconds: Optional[float] = None):
        self.store = store
        self.fee_rate = settings.TRANSACTION_FEE_RATE if fee_rate is None else fee_rate
        self.delay_seconds = settings.SETTLEMENT_DELAY_SECONDS if delay_seconds is None else delay_seconds

    def _check_payable(self, invoice: Invoice):
        if invoice.status != InvoiceStatus.APPROVED:
            raise InvalidTransitionError(
                f"Invoice {invoice.id} is {invoice.status.value}; only APPROVED invoices can be paid"
            )
        if not is_payable(invoice):
            raise InvalidTransitionError(f"Invoice {invoice.id} failed QC and cannot be paid")
        if self.store.transactions_for(invoice.id):
            raise InvalidTransitionError(f"Invoice {invoice.id} already has a payout")

    def preview(self, invoice_id: str) -> SettlementPreview:
        """Fee and net amount the payout would carry, without settling."""
        invoice = self.store.get_invoice(invoice_id)
        self._check_payable(invoice)
        fee = compute_fee(invoice.total_amount, self.fee_rate)
        return SettlementPreview(
            invoice_id=invoice.id,
            amount=invoice.total_amount,
            fee=fee,
            net_amount=invoice.total_amount - fee,
            fee_rate=self.fee_rate,
        )

    def settle(self, invoice_id: str, now: Optional[datetime] = None) -> Transaction:
        invoice = self.store.get_invoice(invoice_id)
        self._check_payable(invoice)

        logger.info(f"[Settlement] Start | invoice={invoice.id} | amount={invoice.total_amount}")
        if self.delay_seconds > 0:
            # Simulated transfer processing
            time.sleep(self.delay_seconds)

        fee = compute_fee(invoice.total_amount, self.fee_rate)
        transaction = Transaction(
            id=new_transaction_id(self.store.has_transaction),
            date=now or datetime.now(),
            amount=invoice.total_amount,
            fee=fee,
            net_amount=invoice.total_amount - fee,
            status=TransactionStatus.COMPLETED,
            type="PAYOUT",
            description=f"Invoice payment {invoice.id}",
            invoice_id=invoice.id,
        )
        self.store.record_settlement(mark_paid(invoice), transaction)
        logger.info(
            f"[Settlement] Done | invoice={invoice.id} | tx={transaction.id} | "
            f"fee={transaction.fee} | net={transaction.net_amount}"
        )
        return transaction

# fieldops/store.py
import json
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .database import build_engine, build_session_factory, init_db
from .lifecycle import InvoiceNotFoundError
from .models import Invoice, Transaction, UnitRates
from .orm_models import StateRecord

logger = logging.getLogger(__name__)

INVOICES_KEY = "fs_invoices"
TRANSACTIONS_KEY = "fs_transactions"
RATES_KEY = "fs_rates"

DEFAULT_RATES = UnitRates()


class StateRepository:
    """JSON documents stored under fixed keys in the fs_state table."""

    def __init__(self, session_factory: Callable):
        self.session_factory = session_factory

    def load(self, key: str) -> Optional[Any]:
        session = self.session_factory()
        try:
            record = session.get(StateRecord, key)
            return json.loads(record.value) if record else None
        finally:
            session.close()

    def save(self, key: str, value: Any):
        session = self.session_factory()
        try:
            payload = json.dumps(value, ensure_ascii=False)
            record = session.get(StateRecord, key)
            if record is None:
                session.add(StateRecord(key=key, value=payload, updated_at=datetime.now()))
            else:
                record.value = payload
                record.updated_at = datetime.now()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class FieldOpsStore:
    """
    Session state: invoices (newest first), the payout ledger (newest first)
    and the unit-rate table.

    Every mutation writes the affected collection back through the repository.
    Write failures are logged and not retried; the in-memory state stays
    authoritative for the running session.
    """

    def __init__(self, repository: Optional[StateRepository] = None):
        self.repository = repository
        self._invoices: List[Invoice] = []
        self._transactions: List[Transaction] = []
        self._rates: UnitRates = DEFAULT_RATES.model_copy()

    # ------------------------------------------------------------------
    # load / persist
    # ------------------------------------------------------------------
    def load(self) -> "FieldOpsStore":
        if self.repository is None:
            return self
        try:
            invoices = [Invoice.model_validate(i) for i in self.repository.load(INVOICES_KEY) or []]
            transactions = [
                Transaction.model_validate(t) for t in self.repository.load(TRANSACTIONS_KEY) or []
            ]
            # Saved rates win; fields added since the last save take their defaults
            rates = UnitRates.model_validate(
                {**DEFAULT_RATES.model_dump(), **(self.repository.load(RATES_KEY) or {})}
            )
        except (SQLAlchemyError, json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.error(f"Failed to load persisted state, starting empty: {e}")
            return self

        self._invoices = invoices
        self._transactions = transactions
        self._rates = rates
        logger.info(
            f"State loaded: {len(self._invoices)} invoices, {len(self._transactions)} transactions"
        )
        return self

    def _persist(self, key: str):
        if self.repository is None:
            return
        if key == INVOICES_KEY:
            value = [i.model_dump(mode="json") for i in self._invoices]
        elif key == TRANSACTIONS_KEY:
            value = [t.model_dump(mode="json") for t in self._transactions]
        else:
            value = self._rates.model_dump(mode="json")
        try:
            self.repository.save(key, value)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist {key}: {e}")

    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------
    @property
    def invoices(self) -> List[Invoice]:
        return list(self._invoices)

    def has_invoice(self, invoice_id: str) -> bool:
        return any(i.id == invoice_id for i in self._invoices)

    def get_invoice(self, invoice_id: str) -> Invoice:
        for invoice in self._invoices:
            if invoice.id == invoice_id:
                return invoice
        raise InvoiceNotFoundError(f"Invoice not found: {invoice_id}")

    def add_invoice(self, invoice: Invoice):
        if self.has_invoice(invoice.id):
            raise ValueError(f"Duplicate invoice id: {invoice.id}")
        self._invoices.insert(0, invoice)
        self._persist(INVOICES_KEY)

    def replace_invoice(self, invoice: Invoice):
        for idx, existing in enumerate(self._invoices):
            if existing.id == invoice.id:
                self._invoices[idx] = invoice
                self._persist(INVOICES_KEY)
                return
        raise InvoiceNotFoundError(f"Invoice not found: {invoice.id}")

    # ------------------------------------------------------------------
    # ledger
    # ------------------------------------------------------------------
    @property
    def transactions(self) -> List[Transaction]:
        return list(self._transactions)

    def has_transaction(self, transaction_id: str) -> bool:
        return any(t.id == transaction_id for t in self._transactions)

    def transactions_for(self, invoice_id: str) -> List[Transaction]:
        return [t for t in self._transactions if t.invoice_id == invoice_id]

    def record_settlement(self, invoice: Invoice, transaction: Transaction):
        """Apply a paid invoice and its ledger entry together."""
        for idx, existing in enumerate(self._invoices):
            if existing.id == invoice.id:
                self._invoices[idx] = invoice
                break
        else:
            raise InvoiceNotFoundError(f"Invoice not found: {invoice.id}")
        self._transactions.insert(0, transaction)
        self._persist(INVOICES_KEY)
        self._persist(TRANSACTIONS_KEY)

    # ------------------------------------------------------------------
    # rates
    # ------------------------------------------------------------------
    @property
    def rates(self) -> UnitRates:
        return self._rates

    def set_rates(self, rates: UnitRates):
        self._rates = rates
        self._persist(RATES_KEY)


def build_store(database_url: str = None) -> FieldOpsStore:
    """Open (or create) the state database and load the session store from it."""
    engine = build_engine(database_url)
    init_db(engine)
    repository = StateRepository(build_session_factory(engine))
    return FieldOpsStore(repository).load()

import logging
from io import BytesIO
from typing import List, Optional

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .models import Invoice, Transaction
from .store import FieldOpsStore

logger = logging.getLogger(__name__)

CURRENCY_FORMAT = '"$"#,##0.00'
FOOTAGE_FORMAT = '#,##0'

INVOICE_COLUMNS = [
    ("Invoice", 16), ("Date", 18), ("Crew", 20), ("Route", 16), ("Cable", 10),
    ("Footage (ft)", 13), ("Anchors", 9), ("Snowshoes", 11), ("Risers", 9),
    ("Composites", 11), ("Coils", 8), ("Amount", 14), ("Status", 12), ("QC", 12),
]
PAYOUT_COLUMNS = [
    ("Transaction", 18), ("Date", 18), ("Invoice", 16), ("Gross", 14), ("Fee", 12), ("Net", 14),
]


class BillingReportGenerator:
    """Billing (BoQ) workbook: one sheet of invoices, one of payouts."""

    def __init__(self, store: FieldOpsStore):
        self.store = store

    def add_border(self, ws: Worksheet, start_row: int, end_row: int, col_count: int):
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        for row in range(start_row, end_row + 1):
            for col in range(1, col_count + 1):
                ws.cell(row=row, column=col).border = thin_border

    def _write_header(self, ws: Worksheet, columns):
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill("solid", fgColor="F05A28")
        for idx, (title, width) in enumerate(columns, start=1):
            cell = ws.cell(row=1, column=idx, value=title)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center", vertical="center")
            ws.column_dimensions[get_column_letter(idx)].width = width
        ws.freeze_panes = "A2"

    def _populate_invoices(self, ws: Worksheet, invoices: List[Invoice]):
        self._write_header(ws, INVOICE_COLUMNS)
        for row, inv in enumerate(invoices, start=2):
            values = [
                inv.id, inv.date.strftime("%Y-%m-%d %H:%M"), inv.crew_name, inv.route_id,
                inv.fiber_count or inv.cable_type, inv.total_footage, inv.items.anchors,
                inv.items.snowshoes, inv.items.risers, inv.items.composites, inv.items.coils,
                inv.total_amount, inv.status.value, inv.qc_status.value,
            ]
            for col, value in enumerate(values, start=1):
                ws.cell(row=row, column=col, value=value)
            ws.cell(row=row, column=6).number_format = FOOTAGE_FORMAT
            ws.cell(row=row, column=12).number_format = CURRENCY_FORMAT

        total_row = len(invoices) + 2
        ws.cell(row=total_row, column=1, value="Total").font = Font(bold=True)
        ws.cell(row=total_row, column=6, value=sum(i.total_footage for i in invoices)).number_format = FOOTAGE_FORMAT
        total_cell = ws.cell(row=total_row, column=12, value=sum(i.total_amount for i in invoices))
        total_cell.number_format = CURRENCY_FORMAT
        total_cell.font = Font(bold=True)
        self.add_border(ws, 1, total_row, len(INVOICE_COLUMNS))

    def _populate_payouts(self, ws: Worksheet, transactions: List[Transaction]):
        self._write_header(ws, PAYOUT_COLUMNS)
        for row, tx in enumerate(transactions, start=2):
            values = [tx.id, tx.date.strftime("%Y-%m-%d %H:%M"), tx.invoice_id, tx.amount, tx.fee, tx.net_amount]
            for col, value in enumerate(values, start=1):
                cell = ws.cell(row=row, column=col, value=value)
                if col >= 4:
                    cell.number_format = CURRENCY_FORMAT

        total_row = len(transactions) + 2
        ws.cell(row=total_row, column=1, value="Total").font = Font(bold=True)
        for col, attr in ((4, "amount"), (5, "fee"), (6, "net_amount")):
            cell = ws.cell(row=total_row, column=col, value=sum(getattr(t, attr) for t in transactions))
            cell.number_format = CURRENCY_FORMAT
            cell.font = Font(bold=True)
        self.add_border(ws, 1, total_row, len(PAYOUT_COLUMNS))

    def generate_billing_report(self, crew_name: Optional[str] = None) -> bytes:
        """
        Build the workbook in memory and return its bytes.
        - crew_name: restrict invoices (and their payouts) to one crew
        """
        invoices = self.store.invoices
        if crew_name:
            invoices = [i for i in invoices if i.crew_name == crew_name]
        invoice_ids = {i.id for i in invoices}
        transactions = [t for t in self.store.transactions if t.invoice_id in invoice_ids]

        if not invoices:
            logger.warning("No invoices to report")
            raise ValueError("No invoices to report")

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Invoices"
        self._populate_invoices(ws, invoices)
        self._populate_payouts(wb.create_sheet("Payouts"), transactions)

        buffer = BytesIO()
        wb.save(buffer)
        logger.info(f"Billing report generated: {len(invoices)} invoices, {len(transactions)} payouts")
        return buffer.getvalue()

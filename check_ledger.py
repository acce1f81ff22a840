import sys, io
from collections import Counter

from fieldops.models import InvoiceStatus
from fieldops.store import build_store

sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')

database_url = sys.argv[1] if len(sys.argv) > 1 else None
store = build_store(database_url)
invoices = store.invoices
transactions = store.transactions
print(f"Loaded {len(invoices)} invoices, {len(transactions)} transactions")

# More than one payout for an invoice
inv_c = Counter(t.invoice_id for t in transactions)
dups = {k: v for k, v in inv_c.items() if v > 1}
print("\n=== DUPLICATE PAYOUTS ===")
if not dups:
    print("  NONE")
for inv_id, cnt in dups.items():
    print(f"  Invoice={inv_id} x{cnt}:")
    for t in store.transactions_for(inv_id):
        print(f"    tx={t.id}, date={t.date:%Y-%m-%d %H:%M}, amount={t.amount}")

# net must equal amount - fee
bad_net = [t for t in transactions if abs(t.net_amount - (t.amount - t.fee)) > 1e-9]
print("\n=== NET MISMATCH ===")
if not bad_net:
    print("  NONE")
for t in bad_net:
    print(f"  tx={t.id}, amount={t.amount}, fee={t.fee}, net={t.net_amount}")

# PAID invoices without a payout, payouts without an invoice
paid_ids = {i.id for i in invoices if i.status == InvoiceStatus.PAID}
print("\n=== PAID WITHOUT PAYOUT ===")
missing = sorted(paid_ids - set(inv_c))
if not missing:
    print("  NONE")
for inv_id in missing:
    print(f"  Invoice={inv_id}")

known_ids = {i.id for i in invoices}
orphans = [t for t in transactions if t.invoice_id not in known_ids]
print("\n=== ORPHAN PAYOUTS ===")
if not orphans:
    print("  NONE")
for t in orphans:
    print(f"  tx={t.id}, invoice={t.invoice_id}")

sys.exit(1 if dups or bad_net or missing or orphans else 0)

# fieldops/utils.py
import base64
import random
import time
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

from .models import EquipmentCount, InvoiceItems

# Recognised fiber counts, most specific first so "288" wins over "28"/"24"
FIBER_COUNTS = ["288ct", "144ct", "96ct", "24ct", "12ct"]
DEFAULT_FIBER_COUNT = "48ct"

# Keyword -> InvoiceItems field; English and Portuguese field vocabulary
EQUIPMENT_KEYWORDS = {
    "snowshoes": ("snowshoe", "reserva"),
    "anchors": ("anchor", "ancora", "âncora", "guy"),
    "coils": ("coil",),
    "risers": ("riser", "guard", "descida"),
}

KML_MIME_TYPES = ("application/vnd.google-earth.kml+xml", "text/xml", "application/xml")


def new_invoice_id(exists: Callable[[str], bool], now: Optional[datetime] = None,
                   max_attempts: int = 50) -> str:
    """INV-<year>-<0..999>, redrawn while the id is taken."""
    year = (now or datetime.now()).year
    for _ in range(max_attempts):
        candidate = f"INV-{year}-{random.randint(0, 999)}"
        if not exists(candidate):
            return candidate
    # Random space exhausted for this year; widen with a millisecond suffix
    return f"INV-{year}-{int(time.time() * 1000)}"


def new_transaction_id(exists: Callable[[str], bool]) -> str:
    """TX-<epoch ms>, suffixed when two settlements land on the same millisecond."""
    base = f"TX-{int(time.time() * 1000)}"
    candidate, n = base, 1
    while exists(candidate):
        candidate = f"{base}-{n}"
        n += 1
    return candidate


def to_base64(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def strip_data_url(data: str) -> Tuple[Optional[str], str]:
    """Split "data:<mime>;base64,<payload>" into (mime, payload); plain base64 passes through."""
    if data.startswith("data:") and "," in data:
        header, payload = data.split(",", 1)
        mime = header[5:].split(";", 1)[0] or None
        return mime, payload
    return None, data


def is_kml(mime_type: Optional[str], filename: Optional[str] = None) -> bool:
    if mime_type in KML_MIME_TYPES:
        return True
    return bool(filename) and filename.lower().endswith((".kml", ".xml"))


def match_fiber_count(cable_type: Optional[str]) -> str:
    """Normalise an AI-reported cable type ("96 fibers", "288ct ADSS") to a fiber count label."""
    if not cable_type:
        return DEFAULT_FIBER_COUNT
    for label in FIBER_COUNTS:
        if label[:-2] in cable_type:
            return label
    return DEFAULT_FIBER_COUNT


def tally_equipment(counts: Iterable[EquipmentCount]) -> InvoiceItems:
    """Fold free-text equipment counts into invoice hardware fields by keyword."""
    totals = {field: 0.0 for field in EQUIPMENT_KEYWORDS}
    for entry in counts:
        name = (entry.name or "").lower()
        qty = entry.quantity or 0
        for field, keywords in EQUIPMENT_KEYWORDS.items():
            if any(k in name for k in keywords):
                totals[field] += qty
    return InvoiceItems(**totals)

"""
Material purchase totals.

Line totals, the grand total of a purchase batch, the per-vendor breakdown
of recent purchases and the cost estimate for a picked set of materials.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..records import ZERO, Material, MaterialEntry, num, parse_day, to_decimal

NO_VENDOR = "(no vendor)"


@dataclass
class VendorTotal:
    """Sum of purchase lines for one vendor."""
    vendor: str
    total: Decimal
    count: int = 0

    @property
    def label(self) -> str:
        return self.vendor or NO_VENDOR

    def to_dict(self) -> Dict[str, Any]:
        return {'vendor': self.label, 'total': self.total, 'count': self.count}


def entry_for(
    material: Material,
    entry_date: Any,
    qty: Any = 1,
    unit_price: Any = None,
    vendor: Optional[str] = None,
) -> MaterialEntry:
    """A purchase line for a catalog material; price and vendor default to the catalog's."""
    day: Optional[date] = parse_day(entry_date)
    price = to_decimal(unit_price) if unit_price is not None else to_decimal(material.unit_price)
    entry = MaterialEntry(
        id=None,
        material_id=material.id,
        entry_date=day if day else entry_date,
        qty=to_decimal(qty),
        unit_price=price,
        vendor=((vendor if vendor is not None else material.vendor) or "").strip(),
    )
    entry.total = entry.line_total
    return entry


def grand_total(entries: Iterable[MaterialEntry]) -> Decimal:
    return sum((e.line_total for e in entries), ZERO)


def vendor_summary(entries: Iterable[MaterialEntry]) -> List[VendorTotal]:
    """Per-vendor totals, largest first. Blank vendors are grouped together."""
    by_vendor: Dict[str, VendorTotal] = {}
    for entry in entries:
        vendor = (entry.vendor or "").strip()
        row = by_vendor.setdefault(vendor, VendorTotal(vendor=vendor, total=ZERO))
        row.total += entry.line_total
        row.count += 1
    return sorted(by_vendor.values(), key=lambda v: (-v.total, v.vendor))


def estimate_cost(materials: Iterable[Material], quantities: Mapping[str, Any]) -> Decimal:
    """Estimated cost of the picked quantities at catalog prices; unpicked or zero quantities are skipped."""
    total = ZERO
    for material in materials:
        qty = num(quantities.get(material.id))
        if qty > 0:
            total += qty * num(material.unit_price)
    return total

"""
Record types shared by the repository, report and CLI layers.

This module provides:
- ScheduleRecord: A single job/appointment with its revenue and cost fields
- FinanceLedgerEntry: A manually entered income or expense line
- LedgerCategory: The six ledger categories
- CategoryToggleSet: Which categories contribute to a net figure
- DateRange: Inclusive calendar date range used by every report
- Profile / PayrollRecord: Staff profile and payroll rows
- Material / MaterialEntry: Material catalog and purchase lines

Money values are carried as Decimal. Anything that is missing, unparseable
or non-finite becomes None here; the report layer reads None as zero.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


DATE_FORMAT = "%Y-%m-%d"
ZERO = Decimal("0")

# Title markers that flag a schedule row as a day off when off_day is unset
OFF_DAY_TITLE = "휴무"
OFF_DAY_PREFIXES = ("휴무 ", "휴무-", "[휴무]")


# ==================== Coercion helpers ====================

def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert a loosely typed money value to a finite Decimal.

    Accepts int, float, Decimal and numeric strings (thousands separators
    allowed). Returns None for None, booleans, unparseable strings and
    NaN/Infinity.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            return None
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None

    return result if result.is_finite() else None


def num(value: Any) -> Decimal:
    """Money value for summation: non-finite or missing counts as zero."""
    result = to_decimal(value)
    return result if result is not None else ZERO


def parse_day(value: Any) -> Optional[date]:
    """Parse a calendar day from a date, datetime or 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), DATE_FORMAT).date()
        except ValueError:
            return None
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (e.g. '2025-01-01T09:00:00Z')."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return date_parser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    return None


def to_bool(value: Any) -> Optional[bool]:
    """True/False from bools, 0/1 and 'true'/'false'; None otherwise."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "t", "1", "yes"):
            return True
        if lowered in ("false", "f", "0", "no"):
            return False
    return None


def day_key(day: date) -> str:
    """Format a date as the 'YYYY-MM-DD' key used for labels."""
    return day.strftime(DATE_FORMAT)


# ==================== Enums ====================

class LedgerCategory(Enum):
    """Category of a finance ledger entry."""
    REVENUE = "revenue"
    MATERIAL_COST = "material_cost"
    DAILY_WAGE = "daily_wage"
    EXTRA_INCOME = "extra_income"
    FIXED_EXPENSE = "fixed_expense"
    EXTRA_EXPENSE = "extra_expense"

    @classmethod
    def parse(cls, value: Any) -> Optional["LedgerCategory"]:
        """Return the matching category, or None if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            return None


# ==================== Schedules ====================

@dataclass
class ScheduleRecord:
    """
    One work appointment with its financial fields.

    start_ts/end_ts are datetimes once normalized; strings are tolerated and
    parsed lazily so that hand-built records behave like fetched ones.
    """
    id: int
    start_ts: Union[datetime, str, None] = None
    end_ts: Union[datetime, str, None] = None

    revenue: Optional[Decimal] = None
    material_cost: Optional[Decimal] = None
    daily_wage: Optional[Decimal] = None
    extra_cost: Optional[Decimal] = None

    title: Optional[str] = None
    employee_id: Optional[str] = None
    employee_name: Optional[str] = None
    employee_names: Optional[List[str]] = None
    off_day: Optional[bool] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    site_address: Optional[str] = None
    status: Optional[str] = None

    @property
    def net(self) -> Optional[Decimal]:
        """
        revenue - material_cost - daily_wage + extra_cost / 2.

        None when any of the four fields is missing or non-finite, so a
        true zero can be told apart from missing data.
        """
        values = [to_decimal(v) for v in (self.revenue, self.material_cost,
                                          self.daily_wage, self.extra_cost)]
        if any(v is None for v in values):
            return None
        revenue, material, wage, extra = values
        return revenue - material - wage + extra / 2

    def work_date(self, tz: Optional[tzinfo] = None) -> Optional[date]:
        """Calendar day of start_ts, in tz when the timestamp is aware."""
        ts = parse_timestamp(self.start_ts)
        if ts is None:
            return None
        if tz is not None and ts.tzinfo is not None:
            ts = ts.astimezone(tz)
        return ts.date()

    @property
    def names(self) -> List[str]:
        """Assigned employee names: employee_names, else employee_name split on commas."""
        if self.employee_names:
            cleaned = [(n or "").strip() for n in self.employee_names]
            return [n for n in cleaned if n]
        return [n.strip() for n in (self.employee_name or "").split(",") if n.strip()]

    @property
    def is_off(self) -> bool:
        """Day-off flag; falls back to the title marker when off_day is unset."""
        if isinstance(self.off_day, bool):
            return self.off_day
        title = (self.title or "").strip()
        if not title:
            return False
        return title == OFF_DAY_TITLE or title.startswith(OFF_DAY_PREFIXES)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        start = parse_timestamp(self.start_ts)
        end = parse_timestamp(self.end_ts)
        return {
            'id': self.id,
            'title': self.title,
            'start_ts': start.isoformat() if start else None,
            'end_ts': end.isoformat() if end else None,
            'employee_id': self.employee_id,
            'employee_name': self.employee_name,
            'employee_names': list(self.employee_names) if self.employee_names else None,
            'off_day': self.off_day,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'site_address': self.site_address,
            'status': self.status,
            'revenue': self.revenue,
            'material_cost': self.material_cost,
            'daily_wage': self.daily_wage,
            'extra_cost': self.extra_cost,
        }


# ==================== Finance ledger ====================

@dataclass
class FinanceLedgerEntry:
    """A manually entered income/expense line not tied to a schedule."""
    id: Optional[int]
    item_date: Union[date, str, None]
    category: Union[LedgerCategory, str, None]
    amount: Optional[Decimal]
    label: Optional[str] = None
    employee_id: Optional[str] = None
    employee_name: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def day(self) -> Optional[date]:
        return parse_day(self.item_date)

    @property
    def ledger_category(self) -> Optional[LedgerCategory]:
        return LedgerCategory.parse(self.category)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        day = self.day
        category = self.ledger_category
        return {
            'id': self.id,
            'item_date': day_key(day) if day else None,
            'category': category.value if category else self.category,
            'label': self.label,
            'amount': self.amount,
            'employee_id': self.employee_id,
            'employee_name': self.employee_name,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


# ==================== Toggles and ranges ====================

@dataclass(frozen=True)
class CategoryToggleSet:
    """
    Which categories count toward a net total.

    The flags are independent of each other. All are on by default.
    """
    revenue: bool = True
    material_cost: bool = True
    daily_wage: bool = True
    extra_income: bool = True
    fixed_expense: bool = True
    extra_expense: bool = True
    extra_cost_half: bool = True

    @classmethod
    def names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_exclusions(cls, excluded: Iterable[str]) -> "CategoryToggleSet":
        """All toggles on except the named ones."""
        excluded = list(excluded)
        unknown = sorted(set(excluded) - set(cls.names()))
        if unknown:
            raise ValueError(f"Unknown category toggle(s): {', '.join(unknown)}. "
                             f"Use one of: {', '.join(cls.names())}")
        return cls(**{name: False for name in excluded})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryToggleSet":
        """
        Build from a mapping; keys that are absent stay on.

        Values must be booleans or boolean strings ('true', 'false', 'yes',
        'no', ...). Anything else is rejected rather than read as truthy.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Category toggles must be a mapping, got {type(data).__name__}")
        unknown = sorted(set(data) - set(cls.names()))
        if unknown:
            raise ValueError(f"Unknown category toggle(s): {', '.join(unknown)}")

        flags = {}
        for name, value in data.items():
            flag = to_bool(value) if isinstance(value, (bool, str)) else None
            if flag is None:
                raise ValueError(f"Category toggle {name} must be true or false, got {value!r}")
            flags[name] = flag
        return cls(**flags)

    def with_toggle(self, name: str, enabled: bool) -> "CategoryToggleSet":
        if name not in self.names():
            raise ValueError(f"Unknown category toggle: {name}")
        return replace(self, **{name: enabled})

    def to_dict(self) -> Dict[str, bool]:
        return {name: getattr(self, name) for name in self.names()}


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive [start, end] range of calendar days.

    A range with a missing bound or with start > end is empty: it has no
    days and contains nothing.
    """
    start: Optional[date]
    end: Optional[date]

    @classmethod
    def parse(cls, start: Any, end: Any) -> "DateRange":
        """Build from 'YYYY-MM-DD' strings (or dates); bad input gives an empty range."""
        return cls(parse_day(start), parse_day(end))

    @classmethod
    def month_of(cls, day: Optional[date] = None) -> "DateRange":
        """The calendar month containing day (default: today)."""
        day = day or date.today()
        first = day.replace(day=1)
        return cls(first, first + relativedelta(months=1) - timedelta(days=1))

    @property
    def is_empty(self) -> bool:
        return self.start is None or self.end is None or self.start > self.end

    def days(self) -> List[date]:
        """Every calendar day in the range, in order."""
        if self.is_empty:
            return []
        count = (self.end - self.start).days + 1
        return [self.start + timedelta(days=i) for i in range(count)]

    def keys(self) -> List[str]:
        return [day_key(d) for d in self.days()]

    def contains(self, day: Optional[date]) -> bool:
        if day is None or self.is_empty:
            return False
        return self.start <= day <= self.end

    def is_single_month(self) -> bool:
        return (not self.is_empty and self.start.year == self.end.year
                and self.start.month == self.end.month)

    def __str__(self) -> str:
        if self.is_empty:
            return "(empty range)"
        return f"{day_key(self.start)}~{day_key(self.end)}"


# ==================== Staff and payroll ====================

@dataclass
class Profile:
    """Staff profile row."""
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    full_name: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    is_admin: bool = False
    is_manager: bool = False

    @property
    def preferred_name(self) -> Optional[str]:
        """display_name, then full_name, then name: first non-blank wins."""
        for candidate in (self.display_name, self.full_name, self.name):
            cleaned = (candidate or "").strip()
            if cleaned:
                return cleaned
        return None


@dataclass
class PayrollRecord:
    """A payroll line for one employee and pay month."""
    employee_id: Optional[str]
    employee_name: Optional[str]
    pay_month: str
    period_start: date
    period_end: date
    amount: Decimal
    paid: bool = False
    paid_at: Optional[datetime] = None
    memo: str = " "
    id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def total_pay(self) -> Decimal:
        return self.amount

    @property
    def dedup_key(self) -> str:
        """id:<employee_id>|<month>, or name:<lower name>|<month> when there is no id."""
        if self.employee_id:
            return f"id:{self.employee_id}|{self.pay_month}"
        return f"name:{(self.employee_name or '').lower()}|{self.pay_month}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'employee_id': self.employee_id,
            'employee_name': self.employee_name,
            'pay_month': self.pay_month,
            'period_start': day_key(self.period_start),
            'period_end': day_key(self.period_end),
            'amount': self.amount,
            'total_pay': self.total_pay,
            'paid': self.paid,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'memo': self.memo,
        }


# ==================== Materials ====================

@dataclass
class Material:
    """Catalog entry for a material with its usual vendor and unit price."""
    id: Optional[str]
    name: str
    vendor: Optional[str] = None
    unit_price: Optional[Decimal] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'vendor': self.vendor,
            'unit_price': self.unit_price,
        }


@dataclass
class MaterialEntry:
    """
    A purchase of some quantity of a material on a given day.

    total is the stored line total. When it is missing, the line is worth
    unit_price * qty.
    """
    id: Optional[int]
    material_id: Optional[str]
    entry_date: Union[date, str, None]
    qty: Optional[Decimal]
    unit_price: Optional[Decimal]
    vendor: Optional[str] = None
    total: Optional[Decimal] = None
    created_at: Optional[datetime] = None

    @property
    def day(self) -> Optional[date]:
        return parse_day(self.entry_date)

    @property
    def line_total(self) -> Decimal:
        stored = to_decimal(self.total)
        if stored is not None:
            return stored
        return num(self.unit_price) * num(self.qty)

    def validate(self) -> None:
        """
        Check the line before it is stored.

        Raises:
            ValueError: no material, no valid day, a negative or non-finite
                        unit price, or a quantity that is not a positive number
        """
        if not str(self.material_id or "").strip():
            raise ValueError("Material entry needs a material_id")
        if self.day is None:
            raise ValueError(f"Material entry needs a YYYY-MM-DD entry_date, got: {self.entry_date}")
        price = to_decimal(self.unit_price)
        if price is None or price < 0:
            raise ValueError(f"Unit price must be a number >= 0, got: {self.unit_price}")
        qty = to_decimal(self.qty)
        if qty is None or qty <= 0:
            raise ValueError(f"Quantity must be a number > 0, got: {self.qty}")

    def to_dict(self) -> Dict[str, Any]:
        day = self.day
        return {
            'id': self.id,
            'material_id': self.material_id,
            'entry_date': day_key(day) if day else None,
            'vendor': self.vendor,
            'unit_price': self.unit_price,
            'qty': self.qty,
            'total': self.line_total,
        }

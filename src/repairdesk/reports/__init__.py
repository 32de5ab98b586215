"""
Reports module for computing financial reports from schedule and ledger data.

This module provides:
- compute_daily_series / compute_totals: Toggle-weighted net profit by day and per range
- group_rows: Daily/weekly/monthly/employee report tables
- Access rules (Viewer, rows_for_viewer) and payroll sync helpers
- compute_extra_income: The extra-income ledger calculator
- pay_selected_schedules / payroll_summary: Partial payouts and per-employee pay totals
- vendor_summary / estimate_cost: Material purchase totals
- build_dashboard: The month's headline figures
"""

from .aggregator import (
    CategoryBuckets,
    CategoryTotals,
    DailySeries,
    compute_daily_series,
    compute_totals,
)
from .grouping import (
    GroupedReport,
    GroupedRow,
    compute_metric_series,
    filter_schedules,
    group_rows,
)
from .access import Viewer, mask_totals, resolve_viewer, rows_for_viewer, safe_metric
from .payroll import (
    EmployeePayTotal,
    build_payroll_records,
    format_schedule_ids,
    parse_schedule_ids,
    pay_selected_schedules,
    payroll_summary,
    sync_payrolls,
)
from .ledger import EXTRA_INCOME_LABEL, compute_extra_income, extra_income_entry
from .materials import NO_VENDOR, VendorTotal, entry_for, estimate_cost, grand_total, vendor_summary
from .dashboard import DashboardSummary, build_dashboard

__all__ = [
    'CategoryBuckets',
    'CategoryTotals',
    'DailySeries',
    'compute_daily_series',
    'compute_totals',
    'GroupedReport',
    'GroupedRow',
    'compute_metric_series',
    'filter_schedules',
    'group_rows',
    'Viewer',
    'mask_totals',
    'resolve_viewer',
    'rows_for_viewer',
    'safe_metric',
    'EmployeePayTotal',
    'build_payroll_records',
    'format_schedule_ids',
    'parse_schedule_ids',
    'pay_selected_schedules',
    'payroll_summary',
    'sync_payrolls',
    'EXTRA_INCOME_LABEL',
    'compute_extra_income',
    'extra_income_entry',
    'NO_VENDOR',
    'VendorTotal',
    'entry_for',
    'estimate_cost',
    'grand_total',
    'vendor_summary',
    'DashboardSummary',
    'build_dashboard',
]

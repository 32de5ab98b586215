"""
repairdesk CLI

Command-line front end for the report service.

Usage:
    repairdesk [global options] <command> [options]
    python -m repairdesk [global options] <command> [options]

Examples:
    # Net profit for January, by day and in total
    repairdesk report --from 2025-01-01 --to 2025-01-31

    # Same, leaving material cost and the half extra cost out
    repairdesk report --from 2025-01-01 --to 2025-01-31 --exclude material_cost extra_cost_half

    # Per-employee table, as JSON
    repairdesk groups --from 2025-01-01 --to 2025-01-31 --mode employee --json

    # Ledger
    repairdesk ledger add --date 2025-01-15 --category fixed_expense --amount 300000 --label Rent
    repairdesk ledger extra --date 2025-01-15 --revenue 500000 --wage 200000 --other 50000
    repairdesk ledger list --from 2025-01-01 --to 2025-01-31
    repairdesk ledger delete 12

    # Payroll: list a month, pay part of it, mark a row paid
    repairdesk payroll list --month 2025-01
    repairdesk payroll pay-selected --employee-name Kim --month 2025-01 --schedules 11 12 --paid-on 2025-01-20
    repairdesk payroll pay 7 --paid-on 2025-02-05
    repairdesk payroll summary --month 2025-01

    # Materials catalog and purchases
    repairdesk materials add --name "PVC pipe" --vendor Hanil --price 12000
    repairdesk materials entry --date 2025-01-15 --item <material-id>=3
    repairdesk materials vendors --from 2025-01-01 --to 2025-01-31

    # Schedule edits and this month's dashboard
    repairdesk schedule update 42 --status done --revenue 350000
    repairdesk dashboard

    # Watch the hosted database and print refreshed totals on every change
    repairdesk --db-type postgres listen

Environment Variables:
    DB_TYPE, DB_PATH, DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD
    REPAIRDESK_SETTINGS_PATH, REPAIRDESK_TIMEZONE,
    REPAIRDESK_ADMIN_IDS, REPAIRDESK_ADMIN_EMAILS
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from dotenv import load_dotenv

from .config import Settings, SettingsStore
from .database import get_repository
from .database.models import create_schema, get_engine
from .realtime import ChangeEvent, ChangeFeed, PostgresNotifyListener
from .records import (
    CategoryToggleSet,
    DateRange,
    FinanceLedgerEntry,
    LedgerCategory,
    Material,
    parse_day,
    to_decimal,
)
from .reports.access import Viewer, mask_totals, resolve_viewer
from .reports.grouping import METRICS, MODES
from .reports.materials import entry_for, grand_total
from .service import ReportService

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """JSON serialize with Decimal support."""
    return json.dumps(obj, cls=DecimalEncoder, indent=2, ensure_ascii=False)


def fmt_money(value: Optional[Decimal]) -> str:
    """Thousands-separated amount; '-' for hidden values."""
    if value is None:
        return "-"
    if value == value.to_integral_value():
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def day_arg(value: str) -> date:
    day = parse_day(value)
    if day is None:
        raise argparse.ArgumentTypeError(f"invalid date '{value}' (use YYYY-MM-DD)")
    return day


def money_arg(value: str) -> Decimal:
    amount = to_decimal(value)
    if amount is None:
        raise argparse.ArgumentTypeError(f"invalid amount '{value}' (use a finite number, e.g. 150000)")
    return amount


def month_arg(value: str) -> str:
    if parse_day(f"{value}-01") is None:
        raise argparse.ArgumentTypeError(f"invalid month '{value}' (use YYYY-MM)")
    return value


def item_arg(value: str):
    """MATERIAL_ID=QTY pair."""
    material_id, sep, qty = value.partition("=")
    amount = to_decimal(qty)
    if not sep or not material_id.strip() or amount is None or amount <= 0:
        raise argparse.ArgumentTypeError(f"invalid item '{value}' (use MATERIAL_ID=QTY with QTY > 0)")
    return material_id.strip(), amount


def add_range_args(parser: argparse.ArgumentParser, required: bool = False) -> None:
    parser.add_argument(
        "--from",
        dest="start",
        type=day_arg,
        required=required,
        help="First day, YYYY-MM-DD (default: first day of this month)"
    )
    parser.add_argument(
        "--to",
        dest="end",
        type=day_arg,
        required=required,
        help="Last day, YYYY-MM-DD (default: last day of this month)"
    )


def range_from_args(args) -> DateRange:
    """Range from --from/--to; either one missing falls back to the current month."""
    if args.start is None or args.end is None:
        month = DateRange.month_of(args.start or args.end)
        return DateRange(args.start or month.start, args.end or month.end)
    return DateRange(args.start, args.end)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="repairdesk",
        description="Revenue and net-profit reports for repair schedules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--db-type",
        choices=["sqlite", "postgres"],
        default=None,
        help="Database backend (default: DB_TYPE env var, or sqlite)"
    )
    parser.add_argument("--db-path", default=None, help="SQLite database file (default: DB_PATH or data/repairdesk.db)")
    parser.add_argument("--user-id", default=None, help="Render reports for this user's role")
    parser.add_argument("--email", default=None, help="E-mail of --user-id, checked against the admin list")

    sub = parser.add_subparsers(dest="command", required=True)

    report = sub.add_parser("report", help="Daily net profit and category totals")
    add_range_args(report)
    report.add_argument(
        "--exclude",
        nargs="+",
        default=[],
        metavar="CATEGORY",
        help=f"Categories to leave out: {', '.join(CategoryToggleSet.names())}"
    )
    report.add_argument("--preset", default=None, help="Named toggle preset from the settings file")
    report.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    groups = sub.add_parser("groups", help="Schedule totals grouped by day, week, month or employee")
    add_range_args(groups)
    groups.add_argument("--mode", choices=MODES, default="daily")
    groups.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    series = sub.add_parser("series", help="Per-day chart series of one schedule metric")
    add_range_args(series)
    series.add_argument("--metric", choices=METRICS, default="revenue")
    series.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    payroll = sub.add_parser("sync-payroll", help="Write per-employee payroll rows for a period")
    add_range_args(payroll, required=True)

    ledger = sub.add_parser("ledger", help="Manage manual ledger entries")
    ledger_sub = ledger.add_subparsers(dest="ledger_command", required=True)

    ledger_add = ledger_sub.add_parser("add", help="Add a ledger entry")
    ledger_add.add_argument("--date", type=day_arg, required=True)
    ledger_add.add_argument("--category", choices=[c.value for c in LedgerCategory], required=True)
    ledger_add.add_argument("--amount", type=money_arg, required=True)
    ledger_add.add_argument("--label", default=None)
    ledger_add.add_argument("--employee", default=None, help="Employee name the entry belongs to")

    ledger_extra = ledger_sub.add_parser("extra", help="Add extra income computed as revenue - wage - other")
    ledger_extra.add_argument("--date", type=day_arg, required=True)
    ledger_extra.add_argument("--revenue", type=money_arg, default=Decimal("0"))
    ledger_extra.add_argument("--wage", type=money_arg, default=Decimal("0"))
    ledger_extra.add_argument("--other", type=money_arg, default=Decimal("0"))
    ledger_extra.add_argument("--label", default=None)

    ledger_list = ledger_sub.add_parser("list", help="List ledger entries")
    add_range_args(ledger_list)
    ledger_list.add_argument("--category", choices=[c.value for c in LedgerCategory], default=None)
    ledger_list.add_argument("--json", action="store_true")

    ledger_delete = ledger_sub.add_parser("delete", help="Delete a ledger entry")
    ledger_delete.add_argument("id", type=int)

    payroll_cmd = sub.add_parser("payroll", help="List, pay and delete payroll rows")
    payroll_sub = payroll_cmd.add_subparsers(dest="payroll_command", required=True)

    payroll_list = payroll_sub.add_parser("list", help="Payroll rows, optionally for one month")
    payroll_list.add_argument("--month", type=month_arg, default=None, help="YYYY-MM, includes partial payouts")
    payroll_list.add_argument("--json", action="store_true")

    payroll_pay = payroll_sub.add_parser("pay", help="Mark a payroll row paid")
    payroll_pay.add_argument("id", type=int)
    payroll_pay.add_argument("--paid-on", type=day_arg, default=None, help="Payment day (default: today)")
    payroll_pay.add_argument("--memo", default=None)

    payroll_delete = payroll_sub.add_parser("delete", help="Delete a payroll row")
    payroll_delete.add_argument("id", type=int)

    payroll_summary = payroll_sub.add_parser("summary", help="Paid and unpaid totals per employee")
    payroll_summary.add_argument("--month", type=month_arg, default=None)
    payroll_summary.add_argument("--json", action="store_true")

    pay_selected = payroll_sub.add_parser("pay-selected", help="Pay chosen schedules as a partial payout")
    pay_selected.add_argument("--employee-id", default=None)
    pay_selected.add_argument("--employee-name", default=None)
    pay_selected.add_argument("--month", type=month_arg, required=True, help="Pay month, YYYY-MM")
    pay_selected.add_argument("--schedules", type=int, nargs="+", required=True, metavar="ID")
    pay_selected.add_argument("--paid-on", type=day_arg, default=None, help="Payment day (default: today)")

    materials = sub.add_parser("materials", help="Materials catalog and purchase entries")
    materials_sub = materials.add_subparsers(dest="materials_command", required=True)

    material_add = materials_sub.add_parser("add", help="Add a catalog material")
    material_add.add_argument("--name", required=True)
    material_add.add_argument("--vendor", default=None)
    material_add.add_argument("--price", type=money_arg, default=None, help="Catalog unit price")

    material_list = materials_sub.add_parser("list", help="List catalog materials")
    material_list.add_argument("--json", action="store_true")

    material_entry = materials_sub.add_parser("entry", help="Record purchases of catalog materials")
    material_entry.add_argument("--date", type=day_arg, required=True)
    material_entry.add_argument("--item", type=item_arg, action="append", required=True,
                                metavar="MATERIAL_ID=QTY", help="Repeat for each material")
    material_entry.add_argument("--vendor", default=None, help="Vendor for every line (default: catalog vendor)")

    material_entries = materials_sub.add_parser("entries", help="List purchase entries, newest first")
    add_range_args(material_entries)
    material_entries.add_argument("--limit", type=int, default=None)
    material_entries.add_argument("--json", action="store_true")

    material_delete = materials_sub.add_parser("delete", help="Delete a purchase entry")
    material_delete.add_argument("id", type=int)

    material_vendors = materials_sub.add_parser("vendors", help="Purchase totals per vendor")
    add_range_args(material_vendors)
    material_vendors.add_argument("--json", action="store_true")

    material_estimate = materials_sub.add_parser("estimate", help="Cost of quantities at catalog prices")
    material_estimate.add_argument("--item", type=item_arg, action="append", required=True,
                                   metavar="MATERIAL_ID=QTY")

    schedule = sub.add_parser("schedule", help="Edit or delete a schedule")
    schedule_sub = schedule.add_subparsers(dest="schedule_command", required=True)

    schedule_update = schedule_sub.add_parser("update", help="Change fields of a schedule")
    schedule_update.add_argument("id", type=int)
    schedule_update.add_argument("--title", default=None)
    schedule_update.add_argument("--status", default=None)
    schedule_update.add_argument("--employee-id", default=None)
    schedule_update.add_argument("--employee-name", default=None)
    schedule_update.add_argument("--revenue", type=money_arg, default=None)
    schedule_update.add_argument("--material-cost", type=money_arg, default=None)
    schedule_update.add_argument("--wage", type=money_arg, default=None)
    schedule_update.add_argument("--extra-cost", type=money_arg, default=None)

    schedule_delete = schedule_sub.add_parser("delete", help="Delete a schedule")
    schedule_delete.add_argument("id", type=int)

    dashboard = sub.add_parser("dashboard", help="This month's headline figures")
    dashboard.add_argument("--today", type=day_arg, default=None, help="Day to report for (default: today)")
    dashboard.add_argument("--json", action="store_true")

    init_db = sub.add_parser("init-db", help="Create the database schema")
    init_db.add_argument("--url", default=None, help="SQLAlchemy URL (default: built from DB_* env vars)")
    init_db.add_argument(
        "--triggers",
        action="store_true",
        help="Also install the PostgreSQL change-notification triggers"
    )
    init_db.add_argument("--channel", default="repairdesk_changes")

    listen = sub.add_parser("listen", help="Print change events and refreshed totals (PostgreSQL)")
    listen.add_argument("--channel", default="repairdesk_changes")
    listen.add_argument("--poll-interval", type=float, default=5.0)

    return parser.parse_args(argv)


# ==================== Commands ====================

def viewer_from_args(args, repo, settings: Settings) -> Optional[Viewer]:
    if not args.user_id and not args.email:
        return None
    return resolve_viewer(
        repo,
        args.user_id,
        email=args.email,
        admin_ids=settings.admin_ids,
        admin_emails=settings.admin_emails,
    )


def print_report(date_range: DateRange, series, totals: dict) -> None:
    print(f"Net profit {date_range}")
    print("-" * 40)
    for label, value in series.items():
        print(f"  {label}  {fmt_money(value):>16}")
    print("-" * 40)
    for name in ("revenue", "material_cost", "daily_wage", "extra_income",
                 "fixed_expense", "extra_expense", "extra_cost", "extra_cost_half"):
        print(f"  {name:<16} {fmt_money(totals[name]):>16}")
    print(f"  {'TOTAL':<16} {fmt_money(totals['grand_total']):>16}")
    excluded = [name for name, on in totals['toggles'].items() if not on]
    if excluded:
        print(f"  (excluded: {', '.join(excluded)})")


def cmd_report(args, service: ReportService, viewer: Optional[Viewer]) -> int:
    date_range = range_from_args(args)
    if args.preset:
        toggles = service.settings.preset(args.preset)
        for name in args.exclude:
            toggles = toggles.with_toggle(name, False)
    else:
        toggles = CategoryToggleSet.from_exclusions(args.exclude)

    series = service.daily_series(date_range, toggles)
    totals = service.totals(date_range, toggles)
    totals_dict = mask_totals(totals, viewer) if viewer is not None else totals.to_dict()
    if viewer is not None and not viewer.is_admin:
        series.values = [None] * len(series.values)

    if args.json:
        print(json_dumps({'range': str(date_range), 'series': series.to_dict(), 'totals': totals_dict}))
    else:
        print_report(date_range, series, totals_dict)
    return 0


def cmd_groups(args, service: ReportService, viewer: Optional[Viewer]) -> int:
    date_range = range_from_args(args)
    grouped = service.groups(date_range, args.mode, viewer=viewer)
    data = grouped.to_dict()
    if viewer is not None and not viewer.is_admin:
        for row in data['rows'] + [data['total']]:
            row['material_cost'] = None
            row['net'] = None

    if args.json:
        print(json_dumps(data))
        return 0

    print(f"{'Group':<20} {'Count':>5} {'Revenue':>14} {'Material':>14} {'Wage':>14} {'Extra':>14} {'Net':>14}")
    for row in data['rows'] + [data['total']]:
        print(
            f"{row['label']:<20} {row['count']:>5} {fmt_money(row['revenue']):>14} "
            f"{fmt_money(row['material_cost']):>14} {fmt_money(row['daily_wage']):>14} "
            f"{fmt_money(row['extra_cost']):>14} {fmt_money(row['net']):>14}"
        )
    return 0


def cmd_series(args, service: ReportService, viewer: Optional[Viewer]) -> int:
    date_range = range_from_args(args)
    series = service.metric_series(date_range, args.metric, viewer=viewer)
    if args.json:
        print(json_dumps(series.to_dict()))
        return 0
    for label, value in series.items():
        print(f"{label}  {fmt_money(value):>16}")
    return 0


def cmd_sync_payroll(args, service: ReportService) -> int:
    date_range = range_from_args(args)
    records = service.sync_payrolls(date_range)
    for record in records:
        print(f"{record.pay_month}  {record.employee_name or '-':<20} {fmt_money(record.amount):>14}")
    print(f"\nSaved {len(records)} payroll row(s)")
    return 0


def cmd_ledger(args, service: ReportService) -> int:
    if args.ledger_command == "add":
        entry = FinanceLedgerEntry(
            id=None,
            item_date=args.date,
            category=args.category,
            amount=args.amount,
            label=args.label,
            employee_name=args.employee,
        )
        item_id = service.add_ledger_entry(entry)
        print(f"Added ledger entry #{item_id}")
        return 0

    if args.ledger_command == "extra":
        entry = service.add_extra_income(args.date, args.revenue, args.wage, args.other, label=args.label)
        print(f"Added ledger entry #{entry.id}: {entry.label} {fmt_money(entry.amount)}")
        return 0

    if args.ledger_command == "list":
        date_range = DateRange(args.start, args.end) if args.start and args.end else None
        category = LedgerCategory(args.category) if args.category else None
        entries = service.list_ledger(date_range, category)
        if args.json:
            print(json_dumps([e.to_dict() for e in entries]))
            return 0
        for e in entries:
            category_name = e.ledger_category.value if e.ledger_category else e.category
            print(f"#{e.id:<5} {e.to_dict()['item_date']}  {category_name:<14} "
                  f"{fmt_money(e.amount):>14}  {e.label or ''}")
        print(f"\n{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
        return 0

    if args.ledger_command == "delete":
        return 0 if service.delete_ledger_entry(args.id) else 1

    return 1


def print_payrolls(records) -> None:
    for r in records:
        state = "paid" if r.paid else "unpaid"
        print(f"#{r.id:<5} {r.pay_month:<24} {r.employee_name or '-':<16} "
              f"{fmt_money(r.total_pay):>14}  {state}")


def cmd_payroll(args, service: ReportService) -> int:
    if args.payroll_command == "list":
        records = service.payrolls(args.month)
        if args.json:
            print(json_dumps([r.to_dict() for r in records]))
            return 0
        print_payrolls(records)
        print(f"\n{len(records)} payroll row(s)")
        return 0

    if args.payroll_command == "pay":
        return 0 if service.mark_payroll_paid(args.id, args.paid_on, args.memo) else 1

    if args.payroll_command == "delete":
        return 0 if service.delete_payroll(args.id) else 1

    if args.payroll_command == "summary":
        totals = service.payroll_summary(args.month)
        if args.json:
            print(json_dumps([t.to_dict() for t in totals]))
            return 0
        print(f"{'Employee':<20} {'Rows':>5} {'Total':>14} {'Paid':>14} {'Unpaid':>14}")
        for t in totals:
            print(f"{t.employee_name:<20} {t.count:>5} {fmt_money(t.total):>14} "
                  f"{fmt_money(t.paid):>14} {fmt_money(t.unpaid):>14}")
        return 0

    if args.payroll_command == "pay-selected":
        record = service.pay_selected(
            args.schedules, args.employee_id, args.employee_name, args.month, args.paid_on
        )
        print(f"Paid payroll #{record.id} ({record.pay_month}): {fmt_money(record.amount)}")
        return 0

    return 1


def cmd_materials(args, service: ReportService) -> int:
    if args.materials_command == "add":
        material_id = service.add_material(
            Material(id=None, name=args.name, vendor=args.vendor, unit_price=args.price)
        )
        print(f"Added material {material_id}")
        return 0

    if args.materials_command == "list":
        materials = service.materials()
        if args.json:
            print(json_dumps([m.to_dict() for m in materials]))
            return 0
        for m in materials:
            print(f"{m.id}  {m.name:<24} {m.vendor or '-':<16} {fmt_money(to_decimal(m.unit_price)):>12}")
        return 0

    if args.materials_command == "entry":
        catalog = {m.id: m for m in service.materials()}
        unknown = [material_id for material_id, _ in args.item if material_id not in catalog]
        if unknown:
            raise ValueError(f"Unknown material id(s): {', '.join(unknown)}")
        entries = [entry_for(catalog[material_id], args.date, qty, vendor=args.vendor)
                   for material_id, qty in args.item]
        written = service.add_material_entries(entries)
        print(f"Saved {written} line(s), total {fmt_money(grand_total(entries))}")
        return 0

    if args.materials_command == "entries":
        date_range = DateRange(args.start, args.end) if args.start and args.end else None
        entries = service.material_entries(date_range, args.limit)
        if args.json:
            print(json_dumps([e.to_dict() for e in entries]))
            return 0
        for e in entries:
            print(f"#{e.id:<5} {e.to_dict()['entry_date']}  {e.material_id:<36} "
                  f"{e.vendor or '-':<16} {fmt_money(e.line_total):>14}")
        return 0

    if args.materials_command == "delete":
        return 0 if service.delete_material_entry(args.id) else 1

    if args.materials_command == "vendors":
        totals = service.vendor_totals(range_from_args(args))
        if args.json:
            print(json_dumps([t.to_dict() for t in totals]))
            return 0
        for t in totals:
            print(f"{t.label:<24} {t.count:>5} {fmt_money(t.total):>14}")
        return 0

    if args.materials_command == "estimate":
        total = service.estimate(dict(args.item))
        print(fmt_money(total))
        return 0

    return 1


SCHEDULE_FIELDS = (
    ("title", "title"),
    ("status", "status"),
    ("employee_id", "employee_id"),
    ("employee_name", "employee_name"),
    ("revenue", "revenue"),
    ("material_cost", "material_cost"),
    ("wage", "daily_wage"),
    ("extra_cost", "extra_cost"),
)


def cmd_schedule(args, service: ReportService) -> int:
    if args.schedule_command == "delete":
        return 0 if service.delete_schedule(args.id) else 1

    if args.schedule_command == "update":
        record = service.schedule(args.id)
        if record is None:
            raise ValueError(f"Schedule #{args.id} not found")
        for arg_name, field_name in SCHEDULE_FIELDS:
            value = getattr(args, arg_name)
            if value is not None:
                setattr(record, field_name, value)
        return 0 if service.update_schedule(record) else 1

    return 1


def cmd_dashboard(args, service: ReportService) -> int:
    summary = service.dashboard(args.today)
    if args.json:
        print(json_dumps(summary.to_dict()))
        return 0
    print(f"Dashboard {summary.pay_month} (today {summary.today})")
    print("-" * 40)
    print(f"  {'Schedules today':<20} {summary.today_count:>16}")
    print(f"  {'Month revenue':<20} {fmt_money(summary.month_revenue):>16}")
    print(f"  {'Month spending':<20} {fmt_money(summary.month_spending):>16}")
    print(f"  {'Unpaid payrolls':<20} {summary.unpaid_count:>16}")
    print(f"  {'Payroll total':<20} {fmt_money(summary.payroll_total):>16}")
    return 0


def cmd_init_db(args, repo) -> int:
    url = args.url
    if url is None and args.db_path:
        url = f"sqlite:///{args.db_path}"
    engine = get_engine(url)
    tables = create_schema(engine)
    print(f"Schema ready: {', '.join(tables)}")
    if args.triggers:
        if not hasattr(repo, "install_change_triggers"):
            raise ValueError("Change triggers need the postgres backend (--db-type postgres)")
        repo.install_change_triggers(args.channel)
        print(f"Change triggers notify on channel '{args.channel}'")
    return 0


def cmd_listen(args, repo, service: ReportService) -> int:
    if not hasattr(repo, "connect"):
        raise ValueError("listen needs the postgres backend (--db-type postgres)")

    feed = ChangeFeed()
    service.watch(feed)
    date_range = DateRange.month_of()

    def on_change(event: ChangeEvent) -> None:
        print(f"[{event.received_at:%H:%M:%S}] {event.event_type.value} {event.table}")
        totals = service.totals(date_range)
        print(f"  {date_range} net: {fmt_money(totals.grand_total)}")

    feed.subscribe(callback=on_change)
    listener = PostgresNotifyListener(repo.connect, feed, channel=args.channel)
    listener.run(poll_interval=args.poll_interval)
    return 0


def run(args) -> int:
    settings = SettingsStore().load()

    repo_kwargs = {'db_path': args.db_path} if args.db_path else {}
    repo = get_repository(args.db_type, **repo_kwargs)
    service = ReportService(repo, settings=settings)

    try:
        if args.command == "init-db":
            return cmd_init_db(args, repo)
        if args.command == "listen":
            return cmd_listen(args, repo, service)
        if args.command == "sync-payroll":
            return cmd_sync_payroll(args, service)
        if args.command == "ledger":
            return cmd_ledger(args, service)
        if args.command == "payroll":
            return cmd_payroll(args, service)
        if args.command == "materials":
            return cmd_materials(args, service)
        if args.command == "schedule":
            return cmd_schedule(args, service)
        if args.command == "dashboard":
            return cmd_dashboard(args, service)

        viewer = viewer_from_args(args, repo, settings)
        if args.command == "report":
            return cmd_report(args, service, viewer)
        if args.command == "groups":
            return cmd_groups(args, service, viewer)
        if args.command == "series":
            return cmd_series(args, service, viewer)
        return 1
    finally:
        service.close()
        repo.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        return run(args)
    except (ValueError, ImportError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())

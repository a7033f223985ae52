#!/usr/bin/env python3
"""
Main CLI entrypoint for the receipt ledger.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

import httpx

from receipt_ledger.core.analyzer import AnalysisClient
from receipt_ledger.core.duplicates import find_possible_duplicates
from receipt_ledger.core.errors import BusyError, ConfigError, ReceiptLedgerError, RemoteError
from receipt_ledger.core.models import Receipt
from receipt_ledger.core.mutations import MutationClient
from receipt_ledger.core.reporting import build_summary_pdf, write_csv
from receipt_ledger.core.settings import Settings
from receipt_ledger.core.sheets import SheetSource
from receipt_ledger.core.staging import StagingArea
from receipt_ledger.core.state import ReceiptBook
from receipt_ledger.core.upload import UploadFlow
from receipt_ledger.core.utils import (ALL_CATEGORIES, BILLABLE, NOT_BILLABLE, CARD_TYPES,
                                       BILLABLE_VALUES, money_fmt, parse_amount_input)

# ANSI color codes
YELLOW = '\033[93m'
RED = '\033[91m'
BOLD = '\033[1m'
RESET = '\033[0m'

BAR_WIDTH = 30


def format_row(r: Receipt) -> str:
    return (f"{r.id:<14} {r.transaction_date[:12]:<12} {r.vendor[:20]:<20} "
            f"{r.category[:10]:<10} {money_fmt(r.amount):>12}  {r.card_type or ''}")


def print_receipt(r: Receipt):
    """Detail view of one receipt."""
    print(f"ID:           {r.id}")
    print(f"거래일:       {r.transaction_date}")
    print(f"이용지점:     {r.vendor}")
    print(f"금액:         {money_fmt(r.amount)}")
    print(f"구분:         {r.category}")
    print(f"카드종류:     {r.card_type or '-'}")
    print(f"청구대상여부: {r.billable or '-'}")
    print(f"메모:         {r.memo or '-'}")
    print(f"비고:         {r.note or '-'}")
    if r.url:
        print(f"URL:          {r.url}")
    if r.image:
        image = r.image if not r.image.startswith("data:") else r.image[:40] + "..."
        print(f"이미지:       {image}")


def print_notice(book: ReceiptBook):
    if book.notice is None:
        return
    level = "ERROR" if book.notice.fatal else "WARN"
    print(f"[{level}] {book.notice.message}")


def print_list(book: ReceiptBook):
    counts = book.category_counts()
    chips = []
    for chip in book.category_chips():
        label = chip if chip == ALL_CATEGORIES else f"{chip}({counts[chip]})"
        chips.append(f"[{label}]" if chip == book.selected_category else label)
    print("  ".join(chips))
    print()

    view = book.filtered_records()
    if len(view) == 0:
        print("영수증이 없습니다.")
        return
    for r in view:
        print(format_row(r))


def print_duplicates(book: ReceiptBook):
    groups = find_possible_duplicates(book.receipts)
    if not groups:
        return
    print(f"{YELLOW}{BOLD}[WARN] Found {len(groups)} group(s) of possible duplicates:{RESET}")
    for group in groups:
        first = group[0]
        print(f"{RED}  ⚠ {first.transaction_date} | {first.vendor} | {money_fmt(first.amount)}{RESET}")
        print(f"    ids: {', '.join(r.id for r in group)}")


def print_stats(book: ReceiptBook):
    stats = book.statistics()
    print(f"{BOLD}총 지출{RESET} {money_fmt(stats.grand_total)}  (총 {stats.count}건의 영수증)")
    print()

    print(f"{BOLD}카드 종류별{RESET}")
    for card, bucket in stats.cards.items():
        bar = "#" * round(bucket.share / 100 * BAR_WIDTH)
        print(f"  {card:<6} {money_fmt(bucket.total):>12} {bucket.count:>3}건  "
              f"{bar:<{BAR_WIDTH}} {bucket.share:5.1f}%")
    print()

    print(f"{BOLD}청구대상 여부{RESET}")
    print(f"  청구대상 {money_fmt(stats.billable[BILLABLE].total):>12} {stats.billable[BILLABLE].count:>3}건")
    print(f"  비청구   {money_fmt(stats.billable[NOT_BILLABLE].total):>12} {stats.billable[NOT_BILLABLE].count:>3}건")
    print()

    print(f"{BOLD}카테고리별 지출{RESET}")
    for group in stats.categories:
        bar = "#" * round(group.bar_width / 100 * BAR_WIDTH)
        print(f"  {group.category[:10]:<10} {money_fmt(group.total):>12} {group.count:>3}건  {bar}")


async def _load_book(client: httpx.AsyncClient, settings: Settings) -> ReceiptBook:
    source = SheetSource(settings.require("sheet_id"), settings.sheet_name, client)
    mutations = MutationClient(settings.webhook_url or "", client)
    book = ReceiptBook(source, mutations)
    await book.load()
    print_notice(book)
    return book


async def cmd_list(args, client, settings) -> int:
    book = await _load_book(client, settings)
    if book.notice and book.notice.fatal:
        return 1
    if args.category:
        book.select_category(args.category)
    print_list(book)
    print_duplicates(book)
    return 0


async def cmd_show(args, client, settings) -> int:
    book = await _load_book(client, settings)
    try:
        print_receipt(book.select(args.id))
    except KeyError:
        print(f"[ERROR] No receipt with id {args.id}")
        return 1
    return 0


async def cmd_edit(args, client, settings) -> int:
    settings.require("webhook_url")
    book = await _load_book(client, settings)
    try:
        current = book.select(args.id)
    except KeyError:
        print(f"[ERROR] No receipt with id {args.id}")
        return 1

    changes = {
        "transaction_date": args.date,
        "vendor": args.vendor,
        "category": args.category,
        "card_type": args.card_type,
        "billable": args.billable,
        "memo": args.memo,
        "note": args.note,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    for optional in ("card_type", "billable", "memo", "note"):
        if optional in changes:
            changes[optional] = changes[optional] or None
    if args.amount is not None:
        changes["amount"] = parse_amount_input(args.amount)
    if not changes:
        print("[INFO] Nothing to change")
        return 0

    updated = replace(current, **changes)
    try:
        await book.save(updated)
    except (RemoteError, BusyError) as e:
        print(f"[ERROR] {book.notice.message if book.notice else e}")
        return 1
    print(f"[OK] Saved {updated.id}")
    print_receipt(updated)
    return 0


async def cmd_delete(args, client, settings) -> int:
    settings.require("webhook_url")
    book = await _load_book(client, settings)
    try:
        receipt = book.select(args.id)
    except KeyError:
        print(f"[ERROR] No receipt with id {args.id}")
        return 1

    if not args.yes:
        answer = input(f"Delete {receipt.id} ({receipt.vendor}, {money_fmt(receipt.amount)})? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("[INFO] Cancelled")
            return 0

    try:
        await book.remove(receipt.id)
    except (RemoteError, BusyError) as e:
        print(f"[ERROR] {book.notice.message if book.notice else e}")
        return 1
    print(f"[OK] Deleted {receipt.id}")
    return 0


async def cmd_stats(args, client, settings) -> int:
    book = await _load_book(client, settings)
    if book.notice and book.notice.fatal:
        return 1
    print_stats(book)
    return 0


async def cmd_scan(args, client, settings) -> int:
    staging = StagingArea(settings.staging_db)
    if args.cancel:
        staging.clear()
        print("[OK] Pending upload discarded")
        return 0

    source = SheetSource(settings.require("sheet_id"), settings.sheet_name, client)
    book = ReceiptBook(source, MutationClient(settings.webhook_url or "", client))
    analyzer = AnalysisClient(settings.resolved_analysis_url, client)
    flow = UploadFlow(analyzer, staging, book)

    if args.resume:
        if flow.resume() is None:
            print("[ERROR] Nothing staged to resume")
            return 1
        print(f"[INFO] Resuming {flow.pending.filename}")
    elif args.image:
        try:
            flow.choose_file(Path(args.image))
        except OSError as e:
            print(f"[ERROR] Could not read {args.image}: {e}")
            return 1
        except ValueError as e:
            print(f"[ERROR] {e}")
            return 1
    else:
        print("[ERROR] Give an image path, --resume or --cancel")
        return 1

    if args.card_type is not None:
        flow.set_card_type(args.card_type)
    if args.billable is not None:
        flow.set_billable(args.billable)

    opts = flow.pending.options
    print(f"[INFO] Analyzing {flow.pending.filename} "
          f"(카드종류: {opts.card_type or '-'}, 청구대상여부: {opts.billable or '-'})")
    try:
        result = await flow.submit()
    except (ReceiptLedgerError, ValueError) as e:
        print(f"[ERROR] {flow.error}")
        print(f"        {e}")
        print("[INFO] The image is still staged; run 'scan --resume' to retry")
        return 1

    print("[OK] 영수증 분석 및 저장 완료")
    print_receipt(result)
    print_notice(book)
    flow.complete()
    return 0


async def cmd_report(args, client, settings) -> int:
    book = await _load_book(client, settings)
    if book.notice and book.notice.fatal:
        return 1
    out_dir = Path(args.output)
    out_dir.mkdir(parents=True, exist_ok=True)

    out_csv = out_dir / "receipts.csv"
    write_csv(book.receipts, out_csv)
    print(f"[OK] Wrote {out_csv}")

    summary_pdf = out_dir / "summary.pdf"
    build_summary_pdf(book.receipts, summary_pdf)
    print(f"[OK] Wrote {summary_pdf}")
    return 0


def cmd_relay(args, settings) -> int:
    import uvicorn
    from receipt_ledger.relay.app import create_app

    settings.require("notion_api_key")
    settings.require("notion_database_id")
    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return 0


COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "stats": cmd_stats,
    "scan": cmd_scan,
    "report": cmd_report,
}


async def run_command(args, settings: Settings, transport=None) -> int:
    """Run an async command with a shared HTTP client."""
    async with httpx.AsyncClient(transport=transport, timeout=settings.http_timeout,
                                 follow_redirects=True) as client:
        return await COMMANDS[args.command](args, client, settings)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receipt-ledger",
        description="Browse, edit and scan expense receipts kept in a Google Sheet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List receipts, only meals
  receipt-ledger list --category 식대

  # Fix an amount
  receipt-ledger edit r-102 --amount 15000

  # Scan a receipt photo as a billable corporate card expense
  receipt-ledger scan ./IMG_0042.jpg --card-type 법인카드 --billable O

  # Retry a scan that failed
  receipt-ledger scan --resume
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug logging")
    parser.add_argument("--env-file", help="Read settings from this .env file")
    parser.add_argument("--sheet-id", help="Google Sheet ID (or RECEIPT_SHEET_ID env var)")
    parser.add_argument("--sheet-name", help="Sheet tab name (default: Receipts)")
    parser.add_argument("--webhook-url", help="Update/delete webhook (or RECEIPT_WEBHOOK_URL env var)")
    parser.add_argument("--analysis-url",
                        help="Analysis webhook (or RECEIPT_ANALYSIS_URL env var; defaults to the webhook URL)")
    parser.add_argument("--staging-db", help="SQLite file for pending uploads")

    subparsers = parser.add_subparsers(dest="command", title="commands", metavar="<command>")
    subparsers.required = True

    list_parser = subparsers.add_parser("list", help="List receipts")
    list_parser.add_argument("--category", help="Only show this category")

    show_parser = subparsers.add_parser("show", help="Show one receipt")
    show_parser.add_argument("id")

    edit_parser = subparsers.add_parser("edit", help="Edit a receipt")
    edit_parser.add_argument("id")
    edit_parser.add_argument("--date", help="거래일")
    edit_parser.add_argument("--vendor", help="이용지점")
    edit_parser.add_argument("--amount", help="금액")
    edit_parser.add_argument("--category", help="구분")
    edit_parser.add_argument("--card-type", choices=list(CARD_TYPES) + [""], help="카드종류")
    edit_parser.add_argument("--billable", choices=list(BILLABLE_VALUES) + [""], help="청구대상여부")
    edit_parser.add_argument("--memo", help="메모")
    edit_parser.add_argument("--note", help="비고")

    delete_parser = subparsers.add_parser("delete", help="Delete a receipt")
    delete_parser.add_argument("id")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    subparsers.add_parser("stats", help="Show spending statistics")

    scan_parser = subparsers.add_parser("scan", help="Analyze a receipt photo and save it")
    scan_parser.add_argument("image", nargs="?", help="Receipt image file")
    scan_parser.add_argument("--card-type", choices=list(CARD_TYPES) + [""], help="카드종류 hint")
    scan_parser.add_argument("--billable", choices=list(BILLABLE_VALUES) + [""], help="청구대상여부 hint")
    scan_group = scan_parser.add_mutually_exclusive_group()
    scan_group.add_argument("--resume", action="store_true", help="Retry the staged image")
    scan_group.add_argument("--cancel", action="store_true", help="Discard the staged image")

    report_parser = subparsers.add_parser("report", help="Write receipts.csv and summary.pdf")
    report_parser.add_argument("--output", default="./reports",
                               help="Output folder (default: ./reports)")

    relay_parser = subparsers.add_parser("relay", help="Serve the contact form relay")
    relay_parser.add_argument("--host", default="127.0.0.1")
    relay_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv=None):
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env(Path(args.env_file) if args.env_file else None).override(
        sheet_id=args.sheet_id,
        sheet_name=args.sheet_name,
        webhook_url=args.webhook_url,
        analysis_url=args.analysis_url,
        staging_db=Path(args.staging_db).expanduser() if args.staging_db else None,
    )

    try:
        if args.command == "relay":
            return cmd_relay(args, settings)
        return asyncio.run(run_command(args, settings))
    except ConfigError as e:
        print(f"[ERROR] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

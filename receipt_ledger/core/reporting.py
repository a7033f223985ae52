"""
CSV export and PDF summary of receipts.
"""

import csv
import datetime as dt
import re
from collections import defaultdict
from pathlib import Path
from typing import Iterable, List

from .models import Receipt, WIRE_FIELDS
from .stats import summarize
from .utils import money_fmt, BILLABLE, NOT_BILLABLE

# Built-in reportlab CID font with Hangul glyphs
PDF_FONT = "HYGothic-Medium"

YEAR_MONTH = re.compile(r"^(\d{4})\s*[-./년]\s*(\d{1,2})")


def write_csv(receipts: Iterable[Receipt], out_csv: Path):
    """Write receipts to CSV using the sheet's column names."""
    fieldnames = list(WIRE_FIELDS.values())
    with out_csv.open("w", newline="", encoding="utf-8-sig") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        for r in receipts:
            w.writerow(r.to_wire())


def year_month(date_str: str) -> str:
    """Return "YYYY-MM" for dates that start with a year and month, else "Unknown"."""
    m = YEAR_MONTH.match((date_str or "").strip())
    if not m:
        return "Unknown"
    return f"{m.group(1)}-{int(m.group(2)):02d}"


def _month_label(ym: str) -> str:
    if ym == "Unknown":
        return "날짜 미상"
    year, month = ym.split("-")
    return f"{year}년 {int(month)}월"


def build_summary_pdf(receipts: List[Receipt], out_pdf: Path,
                      title: str = "영수증 지출 요약"):
    """
    Build a summary PDF: totals, card and billable splits, category bars,
    then line items grouped by month.
    """
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.units import inch
    from reportlab.pdfbase import pdfmetrics
    from reportlab.pdfbase.cidfonts import UnicodeCIDFont
    from reportlab.pdfgen import canvas

    pdfmetrics.registerFont(UnicodeCIDFont(PDF_FONT))

    stats = summarize(receipts)
    monthly = defaultdict(list)
    for r in receipts:
        monthly[year_month(r.transaction_date)].append(r)

    c = canvas.Canvas(out_pdf.as_posix(), pagesize=A4)
    width, height = A4
    y = height - 1 * inch

    def line(text: str, size: int = 10, indent: float = 1.0, step: float = 0.22):
        nonlocal y
        if y < 1.0 * inch:
            c.showPage()
            y = height - 1 * inch
        c.setFont(PDF_FONT, size)
        c.drawString(indent * inch, y, text)
        y -= step * inch

    line(title, size=16, step=0.3)
    line(f"생성: {dt.datetime.now().isoformat(timespec='seconds')}", size=9, step=0.4)
    line(f"총 지출 {money_fmt(stats.grand_total)} / {stats.count}건", size=12, step=0.4)

    line("카드 종류별", size=12, step=0.25)
    for card, bucket in stats.cards.items():
        line(f"{card}: {money_fmt(bucket.total)} ({bucket.count}건, {bucket.share:.1f}%)", indent=1.1)
    y -= 0.15 * inch

    line("청구대상 여부", size=12, step=0.25)
    line(f"청구대상: {money_fmt(stats.billable[BILLABLE].total)} "
         f"({stats.billable[BILLABLE].count}건)", indent=1.1)
    line(f"비청구: {money_fmt(stats.billable[NOT_BILLABLE].total)} "
         f"({stats.billable[NOT_BILLABLE].count}건)", indent=1.1)
    y -= 0.15 * inch

    line("카테고리별 지출", size=12, step=0.25)
    bar_max = 2.5 * inch
    for group in stats.categories:
        line(f"{group.category}: {money_fmt(group.total)} ({group.count}건)", indent=1.1, step=0.0)
        c.rect(4.5 * inch, y, bar_max * group.bar_width / 100, 0.12 * inch, stroke=0, fill=1)
        y -= 0.22 * inch

    for ym in sorted(monthly):
        rows = sorted(monthly[ym], key=lambda r: (r.transaction_date, r.vendor))
        c.showPage()
        y = height - 1 * inch
        line(_month_label(ym), size=14, step=0.25)
        line(f"합계: {money_fmt(sum(r.amount for r in rows))}", step=0.35)

        c.setFont(PDF_FONT, 9)
        c.drawString(1.00 * inch, y, "거래일")
        c.drawString(2.10 * inch, y, "이용지점")
        c.drawString(4.30 * inch, y, "구분")
        c.drawRightString(7.20 * inch, y, "금액")
        y -= 0.15 * inch
        c.line(1.0 * inch, y, 7.3 * inch, y)
        y -= 0.18 * inch

        for r in rows:
            if y < 0.8 * inch:
                c.showPage()
                y = height - 1 * inch
                line(f"{_month_label(ym)} (계속)", size=12, step=0.3)
            c.setFont(PDF_FONT, 9)
            c.drawString(1.00 * inch, y, r.transaction_date[:12])
            c.drawString(2.10 * inch, y, r.vendor[:18])
            c.drawString(4.30 * inch, y, r.category[:12])
            c.drawRightString(7.20 * inch, y, money_fmt(r.amount))
            y -= 0.18 * inch

    c.showPage()
    c.save()

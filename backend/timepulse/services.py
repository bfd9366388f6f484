from __future__ import annotations

import csv
import datetime as dt
import hashlib
import io
import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException, status
from openpyxl import Workbook
from pydantic import ValidationError
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from . import engine
from .config import settings
from .models import ExportRecord
from .schemas import BackupPayload, PayPolicy, ShiftRecord
from .state import PolicyState
from .storage import load_entries, parse_entries, save_entries

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

CSV_HEADERS = [
    "Date",
    "Start Time",
    "End Time",
    "Lunch Start",
    "Lunch End",
    "Total Hours",
    "Wage Hours",
    "Overtime Minutes",
    "Rate",
    "Earnings",
    "Notes",
    "Holiday",
    "Holiday Worked",
]

EXPORT_MEDIA_TYPES: Dict[str, str] = {
    "json": "application/json",
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _in_range(entry: ShiftRecord, start: Optional[dt.date], end: Optional[dt.date]) -> bool:
    if start and entry.date < start:
        return False
    if end and entry.date > end:
        return False
    return True


def _filter_entries(
    entries: Iterable[ShiftRecord], start: Optional[dt.date], end: Optional[dt.date]
) -> List[ShiftRecord]:
    return [entry for entry in entries if _in_range(entry, start, end)]


def _validate_entry(entry: ShiftRecord) -> None:
    if entry.is_unworked_holiday:
        return
    if not entry.has_punches:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Start and end time are required")
    if engine.parse_to_minutes(entry.start_time) == engine.parse_to_minutes(entry.end_time):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Start and end time must differ")


def list_entries(
    db: Session, start_date: Optional[dt.date] = None, end_date: Optional[dt.date] = None
) -> List[ShiftRecord]:
    return _filter_entries(load_entries(db), start_date, end_date)


def get_entry(db: Session, entry_id: str) -> ShiftRecord:
    for entry in load_entries(db):
        if entry.id == entry_id:
            return entry
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")


def save_entry(db: Session, entry: ShiftRecord) -> ShiftRecord:
    """Insert ``entry`` or replace the stored entry with the same id."""
    _validate_entry(entry)
    entries = load_entries(db)
    replaced = False
    updated: List[ShiftRecord] = []
    for existing in entries:
        if existing.id == entry.id:
            updated.append(entry)
            replaced = True
        else:
            updated.append(existing)
    if not replaced:
        updated.append(entry)
    save_entries(db, updated)
    logger.info("%s entry %s for %s", "Updated" if replaced else "Created", entry.id, entry.date)
    return entry


def replace_entry(db: Session, entry_id: str, entry: ShiftRecord) -> ShiftRecord:
    get_entry(db, entry_id)
    return save_entry(db, entry.model_copy(update={"id": entry_id}))


def delete_entry(db: Session, entry_id: str) -> None:
    entries = load_entries(db)
    remaining = [entry for entry in entries if entry.id != entry_id]
    if len(remaining) == len(entries):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    save_entries(db, remaining)
    logger.info("Deleted entry %s", entry_id)


def calculate_entry(entry: ShiftRecord, policy: PayPolicy) -> Dict[str, Any]:
    breakdown = engine.earnings_breakdown(entry, policy)
    return {
        "entry_id": entry.id,
        "date": entry.date,
        "hours": engine.compute_worked_hours(entry, policy, for_wage=False),
        "wage_hours": engine.compute_worked_hours(entry, policy, for_wage=True),
        "overtime_minutes": engine.compute_overtime_minutes(entry, policy),
        "earnings": breakdown.total,
        "effective_range": engine.compute_effective_punch_range(entry, policy),
        "breakdown": breakdown,
    }


def update_policy(db: Session, state: PolicyState, payload: Dict[str, Any]) -> PayPolicy:
    try:
        policy = state.apply(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors()) from exc
    state.persist(db)
    return policy


def _sum_hours(entries: Iterable[ShiftRecord], policy: PayPolicy) -> float:
    return sum(engine.compute_worked_hours(entry, policy) for entry in entries)


def _sum_earnings(entries: Iterable[ShiftRecord], policy: PayPolicy) -> float:
    return sum(engine.compute_earnings(entry, policy) for entry in entries)


def dashboard_stats(entries: List[ShiftRecord], policy: PayPolicy, today: dt.date) -> Dict[str, Any]:
    week_start, week_end = engine.week_bounds(today)
    today_entries = [entry for entry in entries if entry.date == today]
    week_entries = _filter_entries(entries, week_start, week_end)
    return {
        "today": today,
        "today_hours": round(_sum_hours(today_entries, policy), 2),
        "has_entry_today": bool(today_entries),
        "week_start": week_start,
        "week_end": week_end,
        "week_hours": round(_sum_hours(week_entries, policy), 2),
        "week_earnings": round(_sum_earnings(week_entries, policy), 2),
        "active_days": len({entry.date for entry in week_entries}),
        "currency": (policy.currency or "").upper(),
        "recent_entries": entries[:3],
    }


def week_stats(entries: List[ShiftRecord], policy: PayPolicy, day: dt.date) -> Dict[str, Any]:
    week_start, week_end = engine.week_bounds(day)
    week_entries = _filter_entries(entries, week_start, week_end)
    days = []
    for offset, name in enumerate(WEEKDAY_NAMES):
        current = week_start + dt.timedelta(days=offset)
        day_entries = [entry for entry in week_entries if entry.date == current]
        days.append({"day": current, "weekday": name, "hours": round(_sum_hours(day_entries, policy), 2)})

    hours = _sum_hours(week_entries, policy)
    goal = policy.weekly_goal_hours or 40
    prev_start = week_start - dt.timedelta(days=7)
    prev_entries = _filter_entries(entries, prev_start, prev_start + dt.timedelta(days=6))
    return {
        "week_start": week_start,
        "week_end": week_end,
        "days": days,
        "hours": round(hours, 2),
        "earnings": round(_sum_earnings(week_entries, policy), 2),
        "overtime_minutes": sum(engine.compute_overtime_minutes(entry, policy) for entry in week_entries),
        "goal_hours": goal,
        "goal_percentage": round(min(100.0, max(0.0, hours / goal * 100)), 2) if goal > 0 else 0.0,
        "previous_week_earnings": round(_sum_earnings(prev_entries, policy), 2),
    }


def month_stats(entries: List[ShiftRecord], policy: PayPolicy, year: int, month: int) -> Dict[str, Any]:
    if not 1 <= month <= 12:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid month")
    month_entries = [entry for entry in entries if entry.date.year == year and entry.date.month == month]
    buckets: Dict[dt.date, Dict[str, float]] = defaultdict(lambda: {"hours": 0.0, "earnings": 0.0})
    for entry in month_entries:
        week_start, _ = engine.week_bounds(entry.date)
        buckets[week_start]["hours"] += engine.compute_worked_hours(entry, policy)
        buckets[week_start]["earnings"] += engine.compute_earnings(entry, policy)
    weeks = [
        {
            "week_start": week_start,
            "week_end": week_start + dt.timedelta(days=6),
            "hours": round(totals["hours"], 2),
            "earnings": round(totals["earnings"], 2),
        }
        for week_start, totals in sorted(buckets.items())
    ]
    return {
        "year": year,
        "month": month,
        "hours": round(_sum_hours(month_entries, policy), 2),
        "earnings": round(_sum_earnings(month_entries, policy), 2),
        "weeks": weeks,
    }


def period_summary(
    entries: List[ShiftRecord], policy: PayPolicy, start_date: dt.date, end_date: dt.date
) -> Dict[str, Any]:
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid range")
    period_entries = _filter_entries(entries, start_date, end_date)
    return {
        "from_date": start_date,
        "to_date": end_date,
        "entry_count": len(period_entries),
        "active_days": len({entry.date for entry in period_entries}),
        "hours": round(_sum_hours(period_entries, policy), 2),
        "wage_hours": round(
            sum(engine.compute_worked_hours(entry, policy, for_wage=True) for entry in period_entries), 2
        ),
        "overtime_minutes": sum(engine.compute_overtime_minutes(entry, policy) for entry in period_entries),
        "earnings": round(_sum_earnings(period_entries, policy), 2),
    }


def _export_row(entry: ShiftRecord, policy: PayPolicy) -> List[Any]:
    return [
        entry.date.isoformat(),
        entry.start_time,
        entry.end_time,
        entry.lunch_start,
        entry.lunch_end,
        round(engine.compute_worked_hours(entry, policy), 2),
        round(engine.compute_worked_hours(entry, policy, for_wage=True), 2),
        round(engine.compute_overtime_minutes(entry, policy)),
        engine.base_rate(entry, policy),
        round(engine.compute_earnings(entry, policy), 2),
        entry.notes,
        entry.is_holiday,
        entry.holiday_worked,
    ]


def build_backup(entries: List[ShiftRecord], policy: PayPolicy) -> Dict[str, Any]:
    return {
        "entries": [entry.model_dump(by_alias=True, mode="json") for entry in entries],
        "settings": policy.model_dump(by_alias=True, mode="json"),
        "exportDate": _now().isoformat(),
    }


def render_csv(entries: Iterable[ShiftRecord], policy: PayPolicy) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for entry in entries:
        row = _export_row(entry, policy)
        row[5] = f"{row[5]:.2f}"
        row[6] = f"{row[6]:.2f}"
        row[9] = f"{row[9]:.2f}"
        row[11] = "true" if row[11] else "false"
        row[12] = "true" if row[12] else "false"
        writer.writerow(row)
    return buffer.getvalue()


def _write_json(path: Path, entries: List[ShiftRecord], policy: PayPolicy) -> None:
    path.write_text(json.dumps(build_backup(entries, policy), indent=2), encoding="utf-8")


def _write_csv(path: Path, entries: List[ShiftRecord], policy: PayPolicy) -> None:
    path.write_text(render_csv(entries, policy), encoding="utf-8")


def _write_xlsx(path: Path, entries: List[ShiftRecord], policy: PayPolicy) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = "Entries"
    ws.append(CSV_HEADERS)
    for entry in entries:
        ws.append(_export_row(entry, policy))
    wb.save(path)


def _write_pdf(path: Path, title: str, entries: List[ShiftRecord], policy: PayPolicy) -> None:
    pdf = canvas.Canvas(str(path), pagesize=A4)
    width, height = A4
    y = height - 2 * cm
    pdf.setTitle(title)
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(2 * cm, y, title)
    y -= 1 * cm
    pdf.setFont("Helvetica", 11)
    currency = (policy.currency or "").upper()
    for entry in entries:
        hours = engine.compute_worked_hours(entry, policy)
        earnings = engine.compute_earnings(entry, policy)
        date_label = engine.format_display_date(entry.date, policy.date_format)
        if entry.is_unworked_holiday:
            span = "Holiday"
        else:
            span = (
                f"{engine.format_display_time(entry.start_time, policy.time_format)} - "
                f"{engine.format_display_time(entry.end_time, policy.time_format)}"
            )
        line = f"{date_label} | {span} | {hours:.2f}h | {earnings:.2f} {currency}"
        pdf.drawString(2 * cm, y, line)
        y -= 0.8 * cm
        if y < 2 * cm:
            pdf.showPage()
            y = height - 2 * cm
            pdf.setFont("Helvetica", 11)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawRightString(
        width - 2 * cm,
        max(y, 2 * cm),
        f"{_sum_hours(entries, policy):.2f}h | {_sum_earnings(entries, policy):.2f} {currency}",
    )
    pdf.save()


def export_entries(
    db: Session,
    policy: PayPolicy,
    export_format: str,
    start_date: Optional[dt.date],
    end_date: Optional[dt.date],
) -> ExportRecord:
    if export_format not in EXPORT_MEDIA_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported export format")
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid range")

    entries = list_entries(db, start_date, end_date)
    range_label = f"{start_date or 'all'}_{end_date or 'all'}"
    filename = f"timepulse-export_{range_label}_{int(_now().timestamp() * 1000)}.{export_format}"
    path = settings.export_dir / filename

    if export_format == "json":
        _write_json(path, entries, policy)
    elif export_format == "csv":
        _write_csv(path, entries, policy)
    elif export_format == "xlsx":
        _write_xlsx(path, entries, policy)
    else:
        _write_pdf(path, f"TimePulse Export {range_label.replace('_', ' - ')}", entries, policy)

    export = ExportRecord(
        format=export_format,
        range_start=start_date,
        range_end=end_date,
        path=str(path),
        checksum=_checksum_file(path),
        entry_count=len(entries),
    )
    db.add(export)
    db.commit()
    db.refresh(export)
    logger.info("Exported %d entries as %s to %s", len(entries), export_format, path)
    return export


def resolve_export(db: Session, export_id: int) -> Tuple[ExportRecord, Path]:
    export = db.get(ExportRecord, export_id)
    if not export:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Export not found")
    path = Path(export.path)
    if not path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Export file missing")
    return export, path


def _checksum_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


def import_backup(db: Session, state: PolicyState, payload: BackupPayload) -> Dict[str, Any]:
    """Replace all entries and the policy with the contents of a backup."""
    if payload.entries is None or payload.settings is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid backup")
    entries, skipped = parse_entries(payload.entries)
    try:
        policy = state.apply(payload.settings)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid backup") from exc
    save_entries(db, entries)
    state.persist(db)
    logger.info("Imported backup with %d entries (%d skipped)", len(entries), skipped)
    return {"imported_entries": len(entries), "skipped_entries": skipped, "settings": policy}

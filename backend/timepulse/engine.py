"""Pure time and earnings calculations for a single shift record.

Every function takes the record and the policy snapshot it should be judged
against and returns plain values. Nothing here reads configuration, touches the
database or mutates its arguments, so a batch of records evaluated against one
policy snapshot is always consistent.

All arithmetic happens in "minutes since midnight" space. A pair whose end lies
before its start crossed midnight and has its end shifted by one day.
"""
from __future__ import annotations

import datetime as dt
import re
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from .schemas import EarningsBreakdown, LunchWindow, PayPolicy, PunchRange, ShiftRecord

MINUTES_PER_DAY = 1440

_MERIDIEM_SUFFIX = re.compile(r"\s*[ap]\.?\s*m\.?\s*$", re.IGNORECASE)


def parse_to_minutes(value: Optional[str]) -> int:
    """Convert ``HH:MM`` to minutes since midnight; anything unreadable is 0.

    A trailing AM/PM marker left over from older stored values is dropped, not
    interpreted.
    """
    if not value or not isinstance(value, str):
        return 0
    text = _MERIDIEM_SUFFIX.sub("", value.strip())
    if not text:
        return 0
    hours_part, _, minutes_part = text.partition(":")
    try:
        hours = int(hours_part.strip() or 0)
        minutes = int(minutes_part.strip()[:2] or 0)
    except ValueError:
        return 0
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return 0
    return hours * 60 + minutes


def normalize_overnight(start_min: int, end_min: int) -> int:
    if end_min < start_min:
        return end_min + MINUTES_PER_DAY
    return end_min


def minutes_to_hhmm(minutes: float) -> str:
    normalized = int(minutes) % MINUTES_PER_DAY
    return f"{normalized // 60:02d}:{normalized % 60:02d}"


def _pair(start: Optional[str], end: Optional[str]) -> Tuple[int, int]:
    start_min = parse_to_minutes(start)
    return start_min, normalize_overnight(start_min, parse_to_minutes(end))


def scheduled_range(record: ShiftRecord, policy: PayPolicy) -> Tuple[int, int]:
    """Contractual shift boundaries the punches are compared against."""
    if record.is_custom_shift:
        start = record.scheduled_start_time or policy.default_start_time
        end = record.scheduled_end_time or policy.default_end_time
    else:
        start = policy.default_start_time
        end = policy.default_end_time
    return _pair(start, end)


def actual_range(record: ShiftRecord) -> Tuple[int, int]:
    return _pair(record.start_time, record.end_time)


def _overlap(start: int, end: int, other_start: int, other_end: int) -> int:
    return max(0, min(end, other_end) - max(start, other_start))


def aligned_actual_range(record: ShiftRecord, policy: PayPolicy) -> Tuple[int, int]:
    """Real punches moved onto the day of the schedule they overlap most.

    A 00:05 punch against a 22:00-06:00 schedule belongs to the night after
    the scheduled start, so it is compared as 24:05. Without any overlap the
    punches stay where they are.
    """
    real_start, real_end = actual_range(record)
    sched_start, sched_end = scheduled_range(record, policy)
    best_shift = 0
    best_overlap = _overlap(real_start, real_end, sched_start, sched_end)
    for shift in (MINUTES_PER_DAY, -MINUTES_PER_DAY):
        overlap = _overlap(real_start + shift, real_end + shift, sched_start, sched_end)
        if overlap > best_overlap:
            best_shift, best_overlap = shift, overlap
    return real_start + best_shift, real_end + best_shift


def _rounded_range(record: ShiftRecord, policy: PayPolicy) -> Tuple[int, int]:
    real_start, real_end = aligned_actual_range(record, policy)
    sched_start, sched_end = scheduled_range(record, policy)
    in_grace = max(0.0, policy.clock_in_rounding_minutes)
    out_grace = max(0.0, policy.clock_out_rounding_minutes)

    # Arriving early never earns extra time.
    if real_start <= sched_start:
        start = sched_start
    elif real_start - sched_start <= in_grace:
        start = sched_start
    else:
        start = real_start

    if real_end < sched_end:
        end = sched_end if sched_end - real_end <= out_grace else real_end
    else:
        end = sched_end if real_end - sched_end <= out_grace else real_end
    return start, end


def _pay_range(record: ShiftRecord, policy: PayPolicy, for_wage: bool) -> Tuple[int, int]:
    if for_wage and policy.rounding_enabled:
        return _rounded_range(record, policy)
    return actual_range(record)


def compute_effective_punch_range(record: ShiftRecord, policy: PayPolicy) -> PunchRange:
    """Start/end actually used for pay, as ``HH:MM`` strings."""
    if not record.has_punches or not policy.rounding_enabled:
        return PunchRange(start=record.start_time, end=record.end_time)
    start, end = _rounded_range(record, policy)
    return PunchRange(start=minutes_to_hhmm(start), end=minutes_to_hhmm(end))


def _break_minutes(record: ShiftRecord, policy: PayPolicy) -> float:
    if record.unpaid_break_minutes is not None:
        return max(0.0, record.unpaid_break_minutes)
    return max(0.0, policy.unpaid_break_minutes)


def holiday_bonus_hours(record: ShiftRecord, policy: PayPolicy) -> float:
    if record.is_holiday and record.holiday_worked and record.holiday_pay:
        return max(0.0, policy.holiday_default_hours)
    return 0.0


def compute_worked_hours(record: ShiftRecord, policy: PayPolicy, for_wage: bool = False) -> float:
    """Paid duration of ``record`` in decimal hours.

    ``for_wage`` selects the rounded punch range (when rounding is enabled) used
    for pay; without it the real logged times are measured. An unworked holiday
    is credited with the policy's default holiday hours, and a worked holiday
    flagged for holiday pay gets those hours on top of the time worked.
    """
    if record.is_unworked_holiday:
        return max(0.0, policy.holiday_default_hours)

    minutes = 0.0
    if record.has_punches:
        start, end = _pay_range(record, policy, for_wage)
        minutes = max(0.0, end - start - _break_minutes(record, policy))
    return minutes / 60 + holiday_bonus_hours(record, policy)


def compute_overtime_minutes(record: ShiftRecord, policy: PayPolicy) -> float:
    """Minutes past the scheduled end, all or nothing against the threshold.

    Measured on the unrounded punch-out so rounding never hides an overage.
    Only time actually worked after the scheduled end counts, so a shift that
    starts after the schedule is over is overtime from its own start.
    """
    if not policy.ot_enabled or not record.has_punches or record.is_unworked_holiday:
        return 0.0
    real_start, real_end = aligned_actual_range(record, policy)
    _, sched_end = scheduled_range(record, policy)
    diff = real_end - max(real_start, sched_end)
    if diff > 0 and diff >= policy.ot_threshold_minutes:
        return float(diff)
    return 0.0


def base_rate(record: ShiftRecord, policy: PayPolicy) -> float:
    rate = record.hourly_rate if record.hourly_rate is not None else policy.hourly_rate
    return max(0.0, rate)


def regular_rate(record: ShiftRecord, policy: PayPolicy) -> float:
    rate = base_rate(record, policy)
    if not (record.is_holiday and record.holiday_worked):
        return rate
    if policy.holiday_worked_rate > 0:
        return policy.holiday_worked_rate
    if policy.ot_enabled:
        # overtime already carries its own multiplier
        return rate
    return rate * max(0.0, policy.holiday_rate_multiplier)


def earnings_breakdown(record: ShiftRecord, policy: PayPolicy) -> EarningsBreakdown:
    rate = base_rate(record, policy)
    reg_rate = regular_rate(record, policy)
    ot_rate = rate * max(0.0, policy.ot_rate_multiplier)

    wage_hours = compute_worked_hours(record, policy, for_wage=True)
    ot_hours = compute_overtime_minutes(record, policy) / 60
    bonus_hours = holiday_bonus_hours(record, policy)
    regular_hours = max(0.0, wage_hours - ot_hours - bonus_hours)

    regular_pay = regular_hours * reg_rate
    overtime_pay = ot_hours * ot_rate
    bonus_pay = bonus_hours * rate
    return EarningsBreakdown(
        base_rate=rate,
        regular_rate=reg_rate,
        overtime_rate=ot_rate,
        regular_hours=regular_hours,
        overtime_hours=ot_hours,
        holiday_bonus_hours=bonus_hours,
        regular_pay=regular_pay,
        overtime_pay=overtime_pay,
        holiday_bonus_pay=bonus_pay,
        total=bonus_pay + regular_pay + overtime_pay,
    )


def compute_earnings(record: ShiftRecord, policy: PayPolicy) -> float:
    return earnings_breakdown(record, policy).total


def suggest_lunch_window(start: Optional[str], end: Optional[str]) -> LunchWindow:
    """One-hour lunch centred on the middle of the shift."""
    if not start or not end:
        return LunchWindow(lunch_start="12:00", lunch_end="13:00")
    start_min, end_min = _pair(start, end)
    lunch_start = (start_min + end_min) // 2 - 30
    return LunchWindow(lunch_start=minutes_to_hhmm(lunch_start), lunch_end=minutes_to_hhmm(lunch_start + 60))


def format_display_time(value: Optional[str], time_format: str) -> str:
    if not value:
        return ""
    if time_format == "24h":
        return value
    minutes = parse_to_minutes(value)
    hours, mins = divmod(minutes, 60)
    suffix = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{mins:02d} {suffix}"


def format_display_date(value: Optional[str | dt.date], date_format: str) -> str:
    if not value:
        return ""
    if isinstance(value, dt.date):
        value = value.isoformat()
    year, _, rest = value.partition("-")
    month, _, day = rest.partition("-")
    if date_format == "DD/MM/YYYY":
        return f"{day}/{month}/{year}"
    return f"{month}/{day}/{year}"


def local_today(timezone: str = "UTC") -> dt.date:
    return dt.datetime.now(ZoneInfo(timezone)).date()


def local_date_string(day: Optional[dt.date] = None, timezone: str = "UTC") -> str:
    return (day or local_today(timezone)).isoformat()


def week_bounds(day: dt.date) -> Tuple[dt.date, dt.date]:
    """Sunday-to-Saturday week containing ``day``."""
    start = day - dt.timedelta(days=(day.weekday() + 1) % 7)
    return start, start + dt.timedelta(days=6)

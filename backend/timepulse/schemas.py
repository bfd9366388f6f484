from __future__ import annotations

import datetime as dt
import math
import uuid
from typing import Any, Dict, List, Optional

from typing_extensions import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def _coerce_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or ``None`` when it cannot be read as one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class ShiftRecord(BaseModel):
    """One logged work day.

    Stored and exchanged with camelCase keys (``startTime``, ``isHoliday``) so the
    persisted ``entries`` blob keeps the layout of existing backups. ``hourly_rate``
    and ``unpaid_break_minutes`` are per-record snapshots: ``None`` means "use the
    policy", ``0`` is a real override.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    date: dt.date
    start_time: str = ""
    end_time: str = ""
    scheduled_start_time: Optional[str] = None
    scheduled_end_time: Optional[str] = None
    is_custom_shift: bool = False
    lunch_enabled: bool = False
    lunch_start: str = ""
    lunch_end: str = ""
    unpaid_break_minutes: Optional[float] = None
    hourly_rate: Optional[float] = None
    notes: str = ""
    is_holiday: bool = False
    holiday_worked: bool = False
    holiday_pay: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("start_time", "end_time", "lunch_start", "lunch_end", "notes", mode="before")
    @classmethod
    def _blank_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("scheduled_start_time", "scheduled_end_time", mode="before")
    @classmethod
    def _optional_time(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("unpaid_break_minutes", "hourly_rate", mode="before")
    @classmethod
    def _optional_number(cls, value: Any) -> Optional[float]:
        return _coerce_number(value)

    @property
    def is_unworked_holiday(self) -> bool:
        return self.is_holiday and not self.holiday_worked

    @property
    def has_punches(self) -> bool:
        return bool(self.start_time) and bool(self.end_time)


POLICY_DEFAULTS: Dict[str, Any] = {
    "default_start_time": "09:00",
    "default_end_time": "17:30",
    "unpaid_break_minutes": 0.0,
    "hourly_rate": 0.0,
    "holiday_rate_multiplier": 2.0,
    "holiday_worked_rate": 0.0,
    "holiday_default_hours": 8.0,
    "weekly_goal_hours": 40.0,
    "rounding_enabled": False,
    "clock_in_rounding_minutes": 5.0,
    "clock_out_rounding_minutes": 5.0,
    "ot_enabled": False,
    "ot_threshold_minutes": 15.0,
    "ot_rate_multiplier": 1.5,
    "user_name": "User",
    "currency": "USD",
    "language": "en",
    "theme": "light",
    "lunch_enabled_default": False,
    "date_format": "MM/DD/YYYY",
    "time_format": "12h",
}

_POLICY_NUMERIC_FIELDS = (
    "unpaid_break_minutes",
    "hourly_rate",
    "holiday_rate_multiplier",
    "holiday_worked_rate",
    "holiday_default_hours",
    "weekly_goal_hours",
    "clock_in_rounding_minutes",
    "clock_out_rounding_minutes",
    "ot_threshold_minutes",
    "ot_rate_multiplier",
)

# Older stored settings used ``paidMinutes`` for the break deduction.
_LEGACY_POLICY_KEYS = {"paidMinutes": "unpaidBreakMinutes"}


class PayPolicy(BaseModel):
    """Pay rules and display preferences, replaced as a whole on every edit."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    default_start_time: str = POLICY_DEFAULTS["default_start_time"]
    default_end_time: str = POLICY_DEFAULTS["default_end_time"]
    unpaid_break_minutes: float = POLICY_DEFAULTS["unpaid_break_minutes"]
    hourly_rate: float = POLICY_DEFAULTS["hourly_rate"]
    holiday_rate_multiplier: float = POLICY_DEFAULTS["holiday_rate_multiplier"]
    holiday_worked_rate: float = POLICY_DEFAULTS["holiday_worked_rate"]
    holiday_default_hours: float = POLICY_DEFAULTS["holiday_default_hours"]
    weekly_goal_hours: float = POLICY_DEFAULTS["weekly_goal_hours"]
    rounding_enabled: bool = POLICY_DEFAULTS["rounding_enabled"]
    clock_in_rounding_minutes: float = POLICY_DEFAULTS["clock_in_rounding_minutes"]
    clock_out_rounding_minutes: float = POLICY_DEFAULTS["clock_out_rounding_minutes"]
    ot_enabled: bool = POLICY_DEFAULTS["ot_enabled"]
    ot_threshold_minutes: float = POLICY_DEFAULTS["ot_threshold_minutes"]
    ot_rate_multiplier: float = POLICY_DEFAULTS["ot_rate_multiplier"]

    user_name: str = POLICY_DEFAULTS["user_name"]
    currency: str = POLICY_DEFAULTS["currency"]
    language: str = POLICY_DEFAULTS["language"]
    theme: str = POLICY_DEFAULTS["theme"]
    lunch_enabled_default: bool = POLICY_DEFAULTS["lunch_enabled_default"]
    date_format: str = POLICY_DEFAULTS["date_format"]
    time_format: str = POLICY_DEFAULTS["time_format"]

    @model_validator(mode="before")
    @classmethod
    def _merge_stored_values(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        merged = dict(data)
        for legacy, current in _LEGACY_POLICY_KEYS.items():
            if legacy in merged:
                value = merged.pop(legacy)
                if current not in merged and "unpaid_break_minutes" not in merged:
                    merged[current] = value
        for name in _POLICY_NUMERIC_FIELDS:
            for key in (name, to_camel(name)):
                if key not in merged:
                    continue
                number = _coerce_number(merged[key])
                if number is None:
                    # unreadable values fall back to the field default
                    merged.pop(key)
                else:
                    merged[key] = number
        for key in list(merged):
            if merged[key] is None:
                merged.pop(key)
        return merged


class PunchRange(BaseModel):
    start: str
    end: str


class LunchWindow(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    lunch_start: str
    lunch_end: str


class EarningsBreakdown(BaseModel):
    base_rate: float
    regular_rate: float
    overtime_rate: float
    regular_hours: float
    overtime_hours: float
    holiday_bonus_hours: float
    regular_pay: float
    overtime_pay: float
    holiday_bonus_pay: float
    total: float


class EntryCalculationResponse(BaseModel):
    entry_id: str
    date: dt.date
    hours: float
    wage_hours: float
    overtime_minutes: float
    earnings: float
    effective_range: PunchRange
    breakdown: EarningsBreakdown


class DayHours(BaseModel):
    day: dt.date
    weekday: str
    hours: float


class DashboardResponse(BaseModel):
    today: dt.date
    today_hours: float
    has_entry_today: bool
    week_start: dt.date
    week_end: dt.date
    week_hours: float
    week_earnings: float
    active_days: int
    currency: str
    recent_entries: List[ShiftRecord] = Field(default_factory=list)


class WeekStatsResponse(BaseModel):
    week_start: dt.date
    week_end: dt.date
    days: List[DayHours]
    hours: float
    earnings: float
    overtime_minutes: float
    goal_hours: float
    goal_percentage: float
    previous_week_earnings: float


class WeekBucket(BaseModel):
    week_start: dt.date
    week_end: dt.date
    hours: float
    earnings: float


class MonthStatsResponse(BaseModel):
    year: int
    month: int
    hours: float
    earnings: float
    weeks: List[WeekBucket]


class PeriodSummaryResponse(BaseModel):
    from_date: dt.date
    to_date: dt.date
    entry_count: int
    active_days: int
    hours: float
    wage_hours: float
    overtime_minutes: float
    earnings: float


class ExportRequest(BaseModel):
    format: Literal["json", "csv", "xlsx", "pdf"]
    range_start: Optional[dt.date] = None
    range_end: Optional[dt.date] = None


class ExportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    format: str
    range_start: Optional[dt.date]
    range_end: Optional[dt.date]
    checksum: str
    entry_count: int
    created_at: dt.datetime


class BackupPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entries: Optional[List[Dict[str, Any]]] = None
    settings: Optional[Dict[str, Any]] = None
    export_date: Optional[str] = Field(default=None, alias="exportDate")


class ImportResponse(BaseModel):
    imported_entries: int
    skipped_entries: int
    settings: PayPolicy

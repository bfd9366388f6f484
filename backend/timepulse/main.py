from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import engine as calc
from .config import settings
from .database import db_session, engine, get_db, init_db
from .schemas import (
    BackupPayload,
    DashboardResponse,
    EntryCalculationResponse,
    ExportRequest,
    ExportResponse,
    ImportResponse,
    LunchWindow,
    MonthStatsResponse,
    PayPolicy,
    PeriodSummaryResponse,
    ShiftRecord,
    WeekStatsResponse,
)
from .services import (
    EXPORT_MEDIA_TYPES,
    calculate_entry,
    dashboard_stats,
    delete_entry,
    export_entries,
    get_entry,
    import_backup,
    list_entries,
    month_stats,
    period_summary,
    replace_entry,
    resolve_export,
    save_entry,
    update_policy,
    week_stats,
)
from .state import PolicyState

logger = logging.getLogger(__name__)

init_db(engine)

policy_state = PolicyState()
with db_session() as session:
    try:
        policy_state.load_from_db(session)
    except SQLAlchemyError:
        logger.warning("Could not load stored settings, using defaults", exc_info=True)

app = FastAPI(title=settings.app_name)
app.state.policy_state = policy_state
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _policy_state(request: Request) -> PolicyState:
    return request.app.state.policy_state


def _today() -> dt.date:
    return calc.local_today(settings.timezone)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/entries", response_model=list[ShiftRecord])
def get_entries(
    from_date: Optional[dt.date] = None,
    to_date: Optional[dt.date] = None,
    db: Session = Depends(get_db),
) -> list[ShiftRecord]:
    if from_date and to_date and to_date < from_date:
        raise HTTPException(status_code=400, detail="Invalid range")
    return list_entries(db, from_date, to_date)


@app.post("/entries", response_model=ShiftRecord, status_code=status.HTTP_201_CREATED)
def create_entry(payload: ShiftRecord, db: Session = Depends(get_db)) -> ShiftRecord:
    return save_entry(db, payload)


@app.get("/entries/{entry_id}", response_model=ShiftRecord)
def read_entry(entry_id: str, db: Session = Depends(get_db)) -> ShiftRecord:
    return get_entry(db, entry_id)


@app.put("/entries/{entry_id}", response_model=ShiftRecord)
def update_entry(entry_id: str, payload: ShiftRecord, db: Session = Depends(get_db)) -> ShiftRecord:
    return replace_entry(db, entry_id, payload)


@app.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_entry(entry_id: str, db: Session = Depends(get_db)) -> Response:
    delete_entry(db, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/entries/{entry_id}/calculation", response_model=EntryCalculationResponse)
def entry_calculation(entry_id: str, request: Request, db: Session = Depends(get_db)) -> EntryCalculationResponse:
    policy = _policy_state(request).snapshot()
    return calculate_entry(get_entry(db, entry_id), policy)


@app.post("/calculate", response_model=EntryCalculationResponse)
def calculate(payload: ShiftRecord, request: Request) -> EntryCalculationResponse:
    return calculate_entry(payload, _policy_state(request).snapshot())


@app.get("/lunch-suggestion", response_model=LunchWindow)
def lunch_suggestion(start: Optional[str] = None, end: Optional[str] = None) -> LunchWindow:
    return calc.suggest_lunch_window(start, end)


@app.get("/settings", response_model=PayPolicy)
def read_settings(request: Request) -> PayPolicy:
    return _policy_state(request).snapshot()


@app.put("/settings", response_model=PayPolicy)
def write_settings(payload: PayPolicy, request: Request, db: Session = Depends(get_db)) -> PayPolicy:
    return update_policy(db, _policy_state(request), payload.model_dump())


@app.get("/stats/dashboard", response_model=DashboardResponse)
def stats_dashboard(request: Request, db: Session = Depends(get_db)) -> DashboardResponse:
    policy = _policy_state(request).snapshot()
    return dashboard_stats(list_entries(db), policy, _today())


@app.get("/stats/week", response_model=WeekStatsResponse)
def stats_week(request: Request, day: Optional[dt.date] = None, db: Session = Depends(get_db)) -> WeekStatsResponse:
    policy = _policy_state(request).snapshot()
    return week_stats(list_entries(db), policy, day or _today())


@app.get("/stats/month", response_model=MonthStatsResponse)
def stats_month(
    request: Request,
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_db),
) -> MonthStatsResponse:
    today = _today()
    policy = _policy_state(request).snapshot()
    return month_stats(list_entries(db), policy, year or today.year, month or today.month)


@app.get("/stats/period", response_model=PeriodSummaryResponse)
def stats_period(
    from_date: dt.date,
    to_date: dt.date,
    request: Request,
    db: Session = Depends(get_db),
) -> PeriodSummaryResponse:
    policy = _policy_state(request).snapshot()
    return period_summary(list_entries(db), policy, from_date, to_date)


@app.post("/exports", response_model=ExportResponse, status_code=status.HTTP_201_CREATED)
def create_export(payload: ExportRequest, request: Request, db: Session = Depends(get_db)) -> ExportResponse:
    policy = _policy_state(request).snapshot()
    return export_entries(db, policy, payload.format, payload.range_start, payload.range_end)


@app.get("/exports/{export_id}")
def download_export(export_id: int, db: Session = Depends(get_db)) -> Response:
    export, path = resolve_export(db, export_id)
    return FileResponse(path, media_type=EXPORT_MEDIA_TYPES[export.format], filename=path.name)


@app.post("/import", response_model=ImportResponse)
def restore_backup(payload: BackupPayload, request: Request, db: Session = Depends(get_db)) -> ImportResponse:
    return import_backup(db, _policy_state(request), payload)

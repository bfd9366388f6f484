from __future__ import annotations

import csv
import io

from fastapi.testclient import TestClient

from timepulse import engine
from timepulse.config import settings


def _entry(**fields) -> dict:
    payload = {"date": "2024-03-04", "startTime": "09:00", "endTime": "17:30"}
    payload.update(fields)
    return payload


def test_healthz(client: TestClient):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_entry_crud_flow(client: TestClient):
    create_resp = client.post("/entries", json=_entry(id="shift-1", notes="Kickoff"))
    assert create_resp.status_code == 201
    created = create_resp.json()
    assert created["id"] == "shift-1"
    assert created["startTime"] == "09:00"
    assert created["hourlyRate"] is None

    update_resp = client.put("/entries/shift-1", json=_entry(endTime="18:00", notes="Stayed late"))
    assert update_resp.status_code == 200
    assert update_resp.json()["id"] == "shift-1"

    entry = client.get("/entries/shift-1").json()
    assert entry["endTime"] == "18:00"
    assert entry["notes"] == "Stayed late"

    delete_resp = client.delete("/entries/shift-1")
    assert delete_resp.status_code == 204
    assert client.get("/entries/shift-1").status_code == 404
    assert client.get("/entries").json() == []


def test_entries_are_sorted_and_filtered(client: TestClient):
    client.post("/entries", json=_entry(id="a", date="2024-03-01"))
    client.post("/entries", json=_entry(id="b", date="2024-03-05", startTime="08:00", endTime="12:00"))
    client.post("/entries", json=_entry(id="c", date="2024-03-05", startTime="13:00", endTime="17:00"))

    ids = [item["id"] for item in client.get("/entries").json()]
    assert ids == ["c", "b", "a"]

    filtered = client.get("/entries", params={"from_date": "2024-03-02", "to_date": "2024-03-31"}).json()
    assert [item["id"] for item in filtered] == ["c", "b"]

    assert client.get("/entries", params={"from_date": "2024-03-31", "to_date": "2024-03-01"}).status_code == 400


def test_entry_validation(client: TestClient):
    same_times = client.post("/entries", json=_entry(startTime="09:00", endTime="09:00"))
    assert same_times.status_code == 400
    assert same_times.json()["detail"] == "Start and end time must differ"

    missing_end = client.post("/entries", json=_entry(endTime=""))
    assert missing_end.status_code == 400

    holiday = client.post("/entries", json=_entry(startTime="", endTime="", isHoliday=True))
    assert holiday.status_code == 201


def test_unknown_entry_operations_return_404(client: TestClient):
    assert client.put("/entries/missing", json=_entry()).status_code == 404
    assert client.delete("/entries/missing").status_code == 404
    assert client.get("/entries/missing/calculation").status_code == 404


def test_settings_replace_and_merge(client: TestClient):
    defaults = client.get("/settings").json()
    assert defaults["defaultStartTime"] == "09:00"
    assert defaults["holidayDefaultHours"] == 8.0

    resp = client.put("/settings", json={"hourlyRate": 20, "otEnabled": True})
    assert resp.status_code == 200
    data = resp.json()
    assert data["hourlyRate"] == 20.0
    assert data["otEnabled"] is True
    assert data["currency"] == "USD"

    assert client.get("/settings").json()["hourlyRate"] == 20.0


def test_entry_calculation_uses_current_policy(client: TestClient):
    client.put(
        "/settings",
        json={
            "defaultStartTime": "09:00",
            "defaultEndTime": "17:30",
            "roundingEnabled": True,
            "clockInRoundingMinutes": 4,
            "clockOutRoundingMinutes": 14,
            "otEnabled": True,
            "otThresholdMinutes": 15,
            "hourlyRate": 20,
        },
    )
    client.post("/entries", json=_entry(id="late", startTime="09:05", endTime="17:45"))

    resp = client.get("/entries/late/calculation")
    assert resp.status_code == 200
    data = resp.json()
    assert data["effective_range"] == {"start": "09:05", "end": "17:45"}
    assert data["overtime_minutes"] == 15.0
    assert abs(data["wage_hours"] - 520 / 60) < 1e-6
    assert abs(data["earnings"] - 175.83) < 0.01
    assert abs(data["breakdown"]["overtime_pay"] - 7.5) < 1e-6


def test_adhoc_calculation_and_lunch_suggestion(client: TestClient):
    client.put("/settings", json={"hourlyRate": 10, "unpaidBreakMinutes": 30})
    resp = client.post("/calculate", json=_entry(startTime="22:00", endTime="06:00"))
    assert resp.status_code == 200
    data = resp.json()
    assert data["hours"] == 7.5
    assert data["earnings"] == 75.0
    assert client.get("/entries").json() == []

    lunch = client.get("/lunch-suggestion", params={"start": "09:00", "end": "17:00"}).json()
    assert lunch == {"lunchStart": "12:30", "lunchEnd": "13:30"}
    assert client.get("/lunch-suggestion").json() == {"lunchStart": "12:00", "lunchEnd": "13:00"}


def test_week_and_period_stats(client: TestClient):
    client.put("/settings", json={"hourlyRate": 10, "weeklyGoalHours": 40})
    client.post("/entries", json=_entry(id="mon", date="2024-03-04", endTime="17:00"))
    client.post("/entries", json=_entry(id="tue", date="2024-03-05", endTime="13:00"))
    client.post("/entries", json=_entry(id="prev", date="2024-02-28", endTime="10:00"))

    week = client.get("/stats/week", params={"day": "2024-03-06"}).json()
    assert week["week_start"] == "2024-03-03"
    assert week["week_end"] == "2024-03-09"
    assert [day["weekday"] for day in week["days"]][:2] == ["Sun", "Mon"]
    assert week["days"][1]["hours"] == 8.0
    assert week["hours"] == 12.0
    assert week["earnings"] == 120.0
    assert week["goal_percentage"] == 30.0
    assert week["previous_week_earnings"] == 10.0

    period = client.get("/stats/period", params={"from_date": "2024-02-01", "to_date": "2024-03-31"}).json()
    assert period["entry_count"] == 3
    assert period["active_days"] == 3
    assert period["hours"] == 13.0
    assert period["earnings"] == 130.0

    inverted = client.get("/stats/period", params={"from_date": "2024-03-31", "to_date": "2024-03-01"})
    assert inverted.status_code == 400


def test_month_stats_group_by_week(client: TestClient):
    client.put("/settings", json={"hourlyRate": 10})
    client.post("/entries", json=_entry(id="w1", date="2024-03-01", endTime="17:00"))
    client.post("/entries", json=_entry(id="w2", date="2024-03-04", endTime="17:00"))
    client.post("/entries", json=_entry(id="other", date="2024-04-01", endTime="17:00"))

    month = client.get("/stats/month", params={"year": 2024, "month": 3}).json()
    assert month["hours"] == 16.0
    assert month["earnings"] == 160.0
    assert [week["week_start"] for week in month["weeks"]] == ["2024-02-25", "2024-03-03"]

    assert client.get("/stats/month", params={"year": 2024, "month": 13}).status_code == 400


def test_dashboard_reports_today(client: TestClient):
    today = engine.local_today(settings.timezone).isoformat()
    client.put("/settings", json={"hourlyRate": 10, "currency": "eur"})
    client.post("/entries", json=_entry(id="today", date=today, endTime="13:00"))

    data = client.get("/stats/dashboard").json()
    assert data["today"] == today
    assert data["today_hours"] == 4.0
    assert data["has_entry_today"] is True
    assert data["week_hours"] == 4.0
    assert data["week_earnings"] == 40.0
    assert data["active_days"] == 1
    assert data["currency"] == "EUR"
    assert data["recent_entries"][0]["id"] == "today"


def test_csv_export(client: TestClient):
    client.put("/settings", json={"hourlyRate": 20})
    client.post("/entries", json=_entry(id="e1", notes='Said "hi", left'))

    resp = client.post("/exports", json={"format": "csv", "range_start": "2024-03-01", "range_end": "2024-03-31"})
    assert resp.status_code == 201
    export = resp.json()
    assert export["entry_count"] == 1

    download = client.get(f"/exports/{export['id']}")
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/csv")
    rows = list(csv.reader(io.StringIO(download.text)))
    assert rows[0][0] == "Date"
    assert rows[1][0] == "2024-03-04"
    assert rows[1][5] == "8.50"
    assert rows[1][9] == "170.00"
    assert rows[1][10] == 'Said "hi", left'
    assert rows[1][11] == "false"


def test_json_backup_and_restore(client: TestClient):
    client.put("/settings", json={"hourlyRate": 15})
    client.post("/entries", json=_entry(id="keep"))

    export = client.post("/exports", json={"format": "json"}).json()
    backup = client.get(f"/exports/{export['id']}").json()
    assert backup["settings"]["hourlyRate"] == 15.0
    assert backup["entries"][0]["id"] == "keep"
    assert "exportDate" in backup

    client.delete("/entries/keep")
    client.put("/settings", json={"hourlyRate": 99})

    restored = client.post("/import", json=backup)
    assert restored.status_code == 200
    assert restored.json()["imported_entries"] == 1
    assert client.get("/settings").json()["hourlyRate"] == 15.0
    assert [item["id"] for item in client.get("/entries").json()] == ["keep"]


def test_import_legacy_backup(client: TestClient):
    payload = {
        "entries": [
            {"id": 1709550000000, "date": "2024-03-04", "startTime": "09:00", "endTime": "17:00", "isHoliday": False},
            {"id": "broken"},
        ],
        "settings": {"paidMinutes": 30, "hourlyRate": 12, "language": "pt"},
    }
    resp = client.post("/import", json=payload)
    assert resp.status_code == 200
    data = resp.json()
    assert data["imported_entries"] == 1
    assert data["skipped_entries"] == 1
    assert data["settings"]["unpaidBreakMinutes"] == 30.0

    calc = client.get("/entries/1709550000000/calculation").json()
    assert calc["hours"] == 7.5


def test_import_requires_entries_and_settings(client: TestClient):
    assert client.post("/import", json={"entries": []}).status_code == 400
    assert client.post("/import", json={"settings": {}}).status_code == 400


def test_export_xlsx_and_pdf(client: TestClient):
    client.post("/entries", json=_entry())

    for fmt, content_type in (
        ("xlsx", "application/vnd.openxmlformats"),
        ("pdf", "application/pdf"),
    ):
        resp = client.post("/exports", json={"format": fmt})
        assert resp.status_code == 201
        download = client.get(f"/exports/{resp.json()['id']}")
        assert download.status_code == 200
        assert download.headers["content-type"].startswith(content_type)

    assert client.post("/exports", json={"format": "docx"}).status_code == 422
    assert client.get("/exports/9999").status_code == 404

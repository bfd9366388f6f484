from __future__ import annotations

import datetime as dt
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from timepulse.config import settings
from timepulse.database import build_engine, get_db, init_db
from timepulse.main import app
from timepulse.schemas import PayPolicy, ShiftRecord
from timepulse.state import PolicyState


@pytest.fixture(scope="session")
def temp_db_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        yield path


@pytest.fixture(scope="session")
def engine(temp_db_path: Path):
    engine = build_engine(temp_db_path)
    init_db(engine)
    return engine


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    session = SessionTesting()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def client(session: Session, tmp_path: Path, monkeypatch) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(settings, "export_dir", tmp_path)
    original_state = app.state.policy_state
    app.state.policy_state = PolicyState()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.policy_state = original_state


@pytest.fixture()
def sample_day() -> dt.date:
    return dt.date(2024, 3, 4)


@pytest.fixture()
def make_record(sample_day: dt.date):
    def _make(**fields) -> ShiftRecord:
        data = {"date": sample_day, "start_time": "09:00", "end_time": "17:30"}
        data.update(fields)
        return ShiftRecord(**data)

    return _make


@pytest.fixture()
def make_policy():
    def _make(**fields) -> PayPolicy:
        return PayPolicy(**fields)

    return _make

from __future__ import annotations

import os
import tempfile
from datetime import date
from decimal import Decimal
from typing import Any, Generator

import pytest

# Point the app at a throwaway SQLite file before any budget_calendar import
_fd, _DB_PATH = tempfile.mkstemp(prefix="budget_calendar_test_", suffix=".sqlite3")
os.close(_fd)
os.environ["BUDGET_DATABASE_URL"] = f"sqlite:///{_DB_PATH}"

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from budget_calendar import models  # noqa: E402
from budget_calendar.core.database import Base, get_db  # noqa: E402
from budget_calendar.core.deps import get_today  # noqa: E402
from budget_calendar.main import app  # noqa: E402

# Tuesday; the Fridays before it are Feb 13, 20, 27 and Mar 6
TODAY = date(2026, 3, 10)


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    yield os.environ["BUDGET_DATABASE_URL"]
    try:
        os.remove(_DB_PATH)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_engine(test_db_url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Wipe table data between tests
        with engine.begin() as conn:
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in Base.metadata.tables.values():
                conn.execute(tbl.delete())
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_today] = lambda: TODAY
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_account(db_session):
    def _make(name: str = "Checking", initial_balance: str = "0", initial_balance_date: date = date(2026, 1, 1)):
        account = models.Account(
            name=name,
            currency="USD",
            initial_balance=Decimal(initial_balance),
            initial_balance_date=initial_balance_date,
        )
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account

    return _make


@pytest.fixture()
def add_txn(db_session):
    def _add(account, amount: str, occurred_at: date, description: str = "manual", **extra):
        txn = models.Transaction(
            account_id=account.id,
            amount=Decimal(amount),
            currency="USD",
            occurred_at=occurred_at,
            description=description,
            **extra,
        )
        db_session.add(txn)
        db_session.commit()
        db_session.refresh(txn)
        return txn

    return _add


@pytest.fixture()
def enable_auto_realize(db_session):
    from budget_calendar.services import SettingsService

    def _enable(lookback_days: int = 30):
        return SettingsService(db_session).update(
            auto_realize_past_due_items=True, past_due_lookback_days=lookback_days
        )

    return _enable

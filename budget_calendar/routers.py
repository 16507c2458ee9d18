from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .core.database import get_db
from .core.deps import get_today
from .repositories import SeriesKind
from .schemas import (
    AppSettingsOut,
    AppSettingsUpdate,
    AutoRealizeResult,
    BatchRealizeRequest,
    BatchRealizeResult,
    CalendarGrid,
    DayDetail,
    InstanceExceptionOut,
    InstanceModify,
    PastDueSummary,
    RealizeRequest,
    RecurringInstanceOut,
    RecurringSeriesUpdate,
    RecurringTransactionCreate,
    RecurringTransactionOut,
    RecurringTransferCreate,
    RecurringTransferOut,
    TransactionList,
    TransactionOut,
)
from .services import (
    AutoRealizeService,
    CalendarGridService,
    DayDetailService,
    PastDueService,
    RecurringService,
    SettingsService,
    TransactionListService,
)

router = APIRouter()


# ===== Calendar =====

@router.get("/calendar/day/{day}", response_model=DayDetail)
def get_day_detail(
    day: date,
    account_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    return DayDetailService(db).day_detail(day, account_id)


@router.get("/calendar/{year}/{month}", response_model=CalendarGrid)
def get_calendar_grid(
    year: int,
    month: int,
    account_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    return CalendarGridService(db).build_grid(year, month, account_id, today=today)


@router.get("/accounts/{account_id}/transactions", response_model=TransactionList)
def get_account_transactions(
    account_id: int,
    start: date = Query(...),
    end: date = Query(...),
    include_recurring: bool = Query(True),
    db: Session = Depends(get_db),
):
    if end < start:
        raise HTTPException(status_code=400, detail="end must be on or after start")
    result = TransactionListService(db).account_transaction_list(account_id, start, end, include_recurring)
    if result is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return result


@router.post("/recurring/auto-realize", response_model=AutoRealizeResult)
def trigger_auto_realize(
    account_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    return AutoRealizeService(db).realize_past_due(today, account_id)


@router.get("/recurring/past-due", response_model=PastDueSummary)
def get_past_due(
    account_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    return PastDueService(db).past_due_items(today, account_id)


@router.post("/recurring/realize-batch", response_model=BatchRealizeResult)
def realize_batch(payload: BatchRealizeRequest, db: Session = Depends(get_db)):
    if not payload.items:
        raise HTTPException(status_code=400, detail="At least one item is required.")
    return PastDueService(db).realize_batch(payload.items)


# ===== Recurring series =====

def _register_series_routes(prefix: str, kind: SeriesKind, out_model, label: str) -> None:
    """Read/lifecycle/instance routes shared by both series kinds."""

    def _out(series):
        if series is None:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return out_model.model_validate(series, from_attributes=True)

    @router.get(prefix, response_model=list[out_model], name=f"list_{kind.value}_series")
    def list_series(account_id: Optional[int] = Query(None, ge=1), db: Session = Depends(get_db)):
        return [_out(s) for s in RecurringService(db).list_series(kind, account_id)]

    @router.get(prefix + "/{series_id}", response_model=out_model, name=f"get_{kind.value}_series")
    def get_series(series_id: int, db: Session = Depends(get_db)):
        return _out(RecurringService(db).get(kind, series_id))

    @router.patch(prefix + "/{series_id}", response_model=out_model, name=f"update_{kind.value}_series")
    def update_series(
        series_id: int,
        payload: RecurringSeriesUpdate,
        from_date: Optional[date] = Query(None),
        db: Session = Depends(get_db),
    ):
        changes = payload.model_dump(exclude_unset=True)
        return _out(RecurringService(db).update(kind, series_id, from_date=from_date, **changes))

    @router.delete(prefix + "/{series_id}", name=f"delete_{kind.value}_series")
    def delete_series(series_id: int, db: Session = Depends(get_db)):
        if not RecurringService(db).delete(kind, series_id):
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return {"deleted": True}

    @router.post(prefix + "/{series_id}/pause", response_model=out_model, name=f"pause_{kind.value}_series")
    def pause_series(series_id: int, db: Session = Depends(get_db)):
        return _out(RecurringService(db).pause(kind, series_id))

    @router.post(prefix + "/{series_id}/resume", response_model=out_model, name=f"resume_{kind.value}_series")
    def resume_series(series_id: int, db: Session = Depends(get_db)):
        return _out(RecurringService(db).resume(kind, series_id))

    @router.post(prefix + "/{series_id}/skip-next", response_model=out_model, name=f"skip_next_{kind.value}")
    def skip_next(series_id: int, db: Session = Depends(get_db)):
        return _out(RecurringService(db).skip_next(kind, series_id))

    @router.get(
        prefix + "/{series_id}/instances",
        response_model=list[RecurringInstanceOut],
        name=f"list_{kind.value}_instances",
    )
    def list_instances(
        series_id: int,
        start: date = Query(...),
        end: date = Query(...),
        db: Session = Depends(get_db),
    ):
        instances = RecurringService(db).list_instances(kind, series_id, start, end)
        if instances is None:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return instances

    @router.put(
        prefix + "/{series_id}/instances/{instance_date}",
        response_model=InstanceExceptionOut,
        name=f"modify_{kind.value}_instance",
    )
    def modify_instance(series_id: int, instance_date: date, payload: InstanceModify, db: Session = Depends(get_db)):
        exc = RecurringService(db).modify_instance(
            kind,
            series_id,
            instance_date,
            amount=payload.amount,
            description=payload.description,
            new_date=payload.date,
        )
        return InstanceExceptionOut.model_validate(exc, from_attributes=True)

    @router.post(
        prefix + "/{series_id}/instances/{instance_date}/skip",
        response_model=InstanceExceptionOut,
        name=f"skip_{kind.value}_instance",
    )
    def skip_instance(series_id: int, instance_date: date, db: Session = Depends(get_db)):
        exc = RecurringService(db).skip_instance(kind, series_id, instance_date)
        return InstanceExceptionOut.model_validate(exc, from_attributes=True)

    @router.post(
        prefix + "/{series_id}/realize",
        response_model=list[TransactionOut],
        status_code=201,
        name=f"realize_{kind.value}_instance",
    )
    def realize_instance(series_id: int, payload: RealizeRequest, db: Session = Depends(get_db)):
        entries = RecurringService(db).realize_instance(
            kind,
            series_id,
            payload.instance_date,
            occurred_at=payload.date,
            amount=payload.amount,
            description=payload.description,
        )
        return [TransactionOut.model_validate(t, from_attributes=True) for t in entries]


@router.post("/recurring-transactions", response_model=RecurringTransactionOut, status_code=201)
def create_recurring_transaction(payload: RecurringTransactionCreate, db: Session = Depends(get_db)):
    series = RecurringService(db).create_transaction_series(**payload.model_dump())
    return RecurringTransactionOut.model_validate(series, from_attributes=True)


@router.post("/recurring-transfers", response_model=RecurringTransferOut, status_code=201)
def create_recurring_transfer(payload: RecurringTransferCreate, db: Session = Depends(get_db)):
    series = RecurringService(db).create_transfer_series(**payload.model_dump())
    return RecurringTransferOut.model_validate(series, from_attributes=True)


_register_series_routes("/recurring-transactions", SeriesKind.TRANSACTION, RecurringTransactionOut, "Recurring transaction")
_register_series_routes("/recurring-transfers", SeriesKind.TRANSFER, RecurringTransferOut, "Recurring transfer")


# ===== Settings =====

@router.get("/settings", response_model=AppSettingsOut)
def get_settings(db: Session = Depends(get_db)):
    return AppSettingsOut.model_validate(SettingsService(db).get(), from_attributes=True)


@router.put("/settings", response_model=AppSettingsOut)
def update_settings(payload: AppSettingsUpdate, db: Session = Depends(get_db)):
    row = SettingsService(db).update(
        auto_realize_past_due_items=payload.auto_realize_past_due_items,
        past_due_lookback_days=payload.past_due_lookback_days,
    )
    return AppSettingsOut.model_validate(row, from_attributes=True)

import logging
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from backup import BackupService
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from database import get_db, init_db, session_scope
from errors import (
    BudgetError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from models import EntryType, MonthlyData
from scheduler import SchedulerManager
from schemas import (
    AdhocInstanceIn,
    AmountIn,
    BankBalancesIn,
    CategoryIn,
    ExpenseIn,
    PaymentIn,
    TogglePaidIn,
)
from services import (
    CategoryService,
    DetailedMonthService,
    InstanceService,
    LeftoverService,
    MonthService,
    UndoService,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget")


def _load_app_version() -> str:
    try:
        import tomllib
    except ImportError:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"


APP_VERSION = _load_app_version()

KIND_SEGMENTS = {"bills": EntryType.bill, "incomes": EntryType.income}


def http_error(exc: BudgetError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ForbiddenError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.error(f"internal_error: type={type(exc).__name__} detail={exc}")
    return HTTPException(status_code=500, detail=str(exc))


def require_csrf(request: Request) -> None:
    if not validate_csrf_token(request.headers.get("X-CSRF-Token", "")):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def kind_from_path(kind: str) -> EntryType:
    try:
        return KIND_SEGMENTS[kind]
    except KeyError as exc:
        raise HTTPException(
            status_code=404, detail="Expected /api/months/YYYY-MM/(bills|incomes)"
        ) from exc


def instance_row(instance, parent_key: str, parent_id) -> dict[str, object]:
    return {
        "id": instance.id,
        parent_key: parent_id,
        "name": instance.name,
        "category_id": instance.category_id,
        "payment_source_id": instance.payment_source_id,
        "expected_amount": instance.expected_amount,
        "actual_amount": instance.actual_amount,
        "payments": [
            {"id": p.id, "amount": p.amount, "date": p.date.isoformat()}
            for p in instance.payments
        ],
        "is_default": instance.is_default,
        "is_paid": instance.is_paid,
        "is_closed": instance.is_closed,
        "is_adhoc": instance.is_adhoc,
        "due_date": instance.due_date.isoformat() if instance.due_date else None,
        "closed_date": (
            instance.closed_date.isoformat() if instance.closed_date else None
        ),
    }


def expense_row(expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "name": expense.name,
        "amount": expense.amount,
        "payment_source_id": expense.payment_source_id,
    }


def month_payload(data: MonthlyData) -> dict[str, object]:
    return {
        "month": data.month,
        "is_read_only": data.is_read_only,
        "bill_instances": [
            instance_row(b, "bill_id", b.bill_id) for b in data.bill_instances
        ],
        "income_instances": [
            instance_row(i, "income_id", i.income_id) for i in data.income_instances
        ],
        "variable_expenses": [expense_row(e) for e in data.variable_expenses],
        "free_flowing_expenses": [expense_row(e) for e in data.free_flowing_expenses],
        "bank_balances": data.bank_balance_map,
    }


def instance_response(
    db: Session, month: str, entry_type: EntryType, instance
) -> dict[str, object]:
    detail = DetailedMonthService(db).describe_instance(entry_type, instance)
    summary = LeftoverService(db).calculate_leftover(month)
    return {
        "instance": jsonable_encoder(detail),
        "summary": summary.model_dump(by_alias=True),
    }


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    init_db()
    with session_scope() as session:
        CategoryService(session).seed_defaults()
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/csrf-token")
def csrf_token():
    return {"token": generate_csrf_token()}


@app.get("/api/months/{month}")
def get_month(month: str, db: Session = Depends(get_db)):
    try:
        data = MonthService(db).get(month)
        summary = LeftoverService(db).calculate_leftover(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    payload = month_payload(data)
    payload["summary"] = summary.model_dump(by_alias=True)
    return payload


@app.get("/api/months/{month}/summary")
def get_month_summary(month: str, db: Session = Depends(get_db)):
    try:
        summary = LeftoverService(db).calculate_leftover(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return summary.model_dump(by_alias=True)


@app.get("/api/months/{month}/detailed")
def get_month_detailed(month: str, db: Session = Depends(get_db)):
    try:
        detailed = DetailedMonthService(db).get_detailed_month(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    payload = jsonable_encoder(detailed)
    payload["leftover_breakdown"] = detailed.leftover_breakdown.model_dump(
        by_alias=True
    )
    return payload


@app.post("/api/months/{month}/generate", dependencies=[Depends(require_csrf)])
def generate_month(month: str, db: Session = Depends(get_db)):
    try:
        data = MonthService(db).generate(month)
        summary = LeftoverService(db).calculate_leftover(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    payload = month_payload(data)
    payload["summary"] = summary.model_dump(by_alias=True)
    return JSONResponse(status_code=201, content=jsonable_encoder(payload))


@app.delete("/api/months/{month}", dependencies=[Depends(require_csrf)])
def delete_month(month: str, db: Session = Depends(get_db)):
    try:
        MonthService(db).delete(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return {"deleted": month}


@app.post("/api/months/{month}/lock", dependencies=[Depends(require_csrf)])
def lock_month(month: str, db: Session = Depends(get_db)):
    try:
        data = MonthService(db).set_read_only(month, True)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return {"month": data.month, "is_read_only": data.is_read_only}


@app.post("/api/months/{month}/unlock", dependencies=[Depends(require_csrf)])
def unlock_month(month: str, db: Session = Depends(get_db)):
    try:
        data = MonthService(db).set_read_only(month, False)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return {"month": data.month, "is_read_only": data.is_read_only}


@app.put("/api/months/{month}/bank-balances", dependencies=[Depends(require_csrf)])
def update_bank_balances(
    month: str, data: BankBalancesIn, db: Session = Depends(get_db)
):
    try:
        monthly = MonthService(db).update_bank_balances(month, data.balances)
        summary = LeftoverService(db).calculate_leftover(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    payload = month_payload(monthly)
    payload["summary"] = summary.model_dump(by_alias=True)
    return payload


@app.post(
    "/api/months/{month}/variable-expenses", dependencies=[Depends(require_csrf)]
)
def add_variable_expense(month: str, data: ExpenseIn, db: Session = Depends(get_db)):
    try:
        expense = MonthService(db).add_variable_expense(month, data)
        summary = LeftoverService(db).calculate_leftover(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return {
        "expense": {"id": expense.id, "name": expense.name, "amount": expense.amount},
        "summary": summary.model_dump(by_alias=True),
    }


@app.post(
    "/api/months/{month}/free-flowing-expenses", dependencies=[Depends(require_csrf)]
)
def add_free_flowing_expense(
    month: str, data: ExpenseIn, db: Session = Depends(get_db)
):
    try:
        expense = MonthService(db).add_free_flowing_expense(month, data)
        summary = LeftoverService(db).calculate_leftover(month)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return {
        "expense": {"id": expense.id, "name": expense.name, "amount": expense.amount},
        "summary": summary.model_dump(by_alias=True),
    }


@app.post("/api/months/{month}/{kind}", dependencies=[Depends(require_csrf)])
def create_adhoc_instance(
    month: str, kind: str, data: AdhocInstanceIn, db: Session = Depends(get_db)
):
    entry_type = kind_from_path(kind)
    try:
        instance = InstanceService(db).create_adhoc(month, entry_type, data)
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.put(
    "/api/months/{month}/{kind}/{instance_id}", dependencies=[Depends(require_csrf)]
)
def update_instance_amount(
    month: str,
    kind: str,
    instance_id: int,
    data: AmountIn,
    db: Session = Depends(get_db),
):
    entry_type = kind_from_path(kind)
    try:
        instance = InstanceService(db).update_amount(
            month, entry_type, instance_id, data.amount
        )
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.put(
    "/api/months/{month}/{kind}/{instance_id}/expected",
    dependencies=[Depends(require_csrf)],
)
def update_instance_expected(
    month: str,
    kind: str,
    instance_id: int,
    data: AmountIn,
    db: Session = Depends(get_db),
):
    entry_type = kind_from_path(kind)
    try:
        instance = InstanceService(db).update_expected_amount(
            month, entry_type, instance_id, data.amount
        )
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.post(
    "/api/months/{month}/{kind}/{instance_id}/paid",
    dependencies=[Depends(require_csrf)],
)
def toggle_instance_paid(
    month: str,
    kind: str,
    instance_id: int,
    data: Optional[TogglePaidIn] = Body(default=None),
    db: Session = Depends(get_db),
):
    entry_type = kind_from_path(kind)
    actual_amount = data.actual_amount if data else None
    try:
        instance = InstanceService(db).toggle_paid(
            month, entry_type, instance_id, actual_amount
        )
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.post(
    "/api/months/{month}/{kind}/{instance_id}/close",
    dependencies=[Depends(require_csrf)],
)
def close_instance(
    month: str, kind: str, instance_id: int, db: Session = Depends(get_db)
):
    entry_type = kind_from_path(kind)
    try:
        instance = InstanceService(db).close(month, entry_type, instance_id)
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.post(
    "/api/months/{month}/{kind}/{instance_id}/reopen",
    dependencies=[Depends(require_csrf)],
)
def reopen_instance(
    month: str, kind: str, instance_id: int, db: Session = Depends(get_db)
):
    entry_type = kind_from_path(kind)
    try:
        instance = InstanceService(db).reopen(month, entry_type, instance_id)
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.post(
    "/api/months/{month}/{kind}/{instance_id}/reset",
    dependencies=[Depends(require_csrf)],
)
def reset_instance(
    month: str, kind: str, instance_id: int, db: Session = Depends(get_db)
):
    entry_type = kind_from_path(kind)
    try:
        instance = InstanceService(db).reset(month, entry_type, instance_id)
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.post(
    "/api/months/{month}/{kind}/{instance_id}/payments",
    dependencies=[Depends(require_csrf)],
)
def add_instance_payment(
    month: str,
    kind: str,
    instance_id: int,
    data: PaymentIn,
    db: Session = Depends(get_db),
):
    entry_type = kind_from_path(kind)
    try:
        instance = InstanceService(db).add_payment(month, entry_type, instance_id, data)
        return instance_response(db, month, entry_type, instance)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db)):
    return [
        {
            "id": c.id,
            "name": c.name,
            "type": c.type.value,
            "color": c.color,
            "sort_order": c.sort_order,
            "is_predefined": c.is_predefined,
        }
        for c in CategoryService(db).list_all()
    ]


@app.post("/api/categories", dependencies=[Depends(require_csrf)])
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return JSONResponse(status_code=201, content={"id": category.id})


@app.delete("/api/categories/{category_id}", dependencies=[Depends(require_csrf)])
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return {"deleted": category_id}


@app.get("/api/undo")
def list_undo_entries(limit: int = 50, db: Session = Depends(get_db)):
    limit = min(max(limit, 1), 200)
    return [
        {
            "id": e.id,
            "entity_type": e.entity_type.value,
            "entity_id": e.entity_id,
            "old_value": e.old_value,
            "new_value": e.new_value,
            "timestamp": e.timestamp.isoformat(),
        }
        for e in UndoService(db).list_recent(limit)
    ]


@app.get("/api/backup/export")
def export_backup(db: Session = Depends(get_db)):
    return BackupService(db).export().model_dump(mode="json")


@app.post("/api/backup/import", dependencies=[Depends(require_csrf)])
def import_backup(
    payload: dict = Body(...), replace: bool = False, db: Session = Depends(get_db)
):
    try:
        summary = BackupService(db).import_(payload, replace=replace)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return jsonable_encoder(summary)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()

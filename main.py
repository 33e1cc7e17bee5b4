import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Response
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, init_db, session_scope
from models import (
    Account,
    Budget,
    Category,
    RecurringRule,
    Transaction,
    TransactionType,
)
from schemas import (
    AccountIn,
    BudgetIn,
    CategoryIn,
    CycleSettingsIn,
    RecurringRuleIn,
    TransactionIn,
)
from services import (
    AccountService,
    BudgetService,
    CategoryService,
    CycleSettingsService,
    DashboardService,
    LedgerService,
    RecurringRuleService,
    TransactionService,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _http_error(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if message.endswith("not found") else 400
    return HTTPException(status_code=status, detail=message)


def account_out(account: Account) -> dict[str, object]:
    return {
        "id": account.id,
        "name": account.name,
        "kind": account.kind,
        "icon": account.icon,
        "initial_balance_cents": account.initial_balance_cents,
        "is_active": account.is_active,
    }


def category_out(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "icon": category.icon,
        "color": category.color,
    }


def transaction_out(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "type": txn.type.value,
        "description": txn.description,
        "amount_cents": txn.amount_cents,
        "date": txn.date.isoformat(),
        "time": txn.time.strftime("%H:%M"),
        "account_id": txn.account_id,
        "destination_account_id": txn.destination_account_id,
        "category_id": txn.category_id,
        "recurring_rule_id": txn.recurring_rule_id,
        "created_at": txn.created_at.isoformat(),
    }


def rule_out(rule: RecurringRule, service: RecurringRuleService) -> dict[str, object]:
    next_due = service.next_due(rule)
    return {
        "id": rule.id,
        "description": rule.description,
        "amount_cents": rule.amount_cents,
        "type": rule.type.value,
        "account_id": rule.account_id,
        "category_id": rule.category_id,
        "frequency": rule.frequency.value,
        "start_date": rule.start_date.isoformat(),
        "end_date": rule.end_date.isoformat() if rule.end_date else None,
        "is_variable": rule.is_variable,
        "is_active": rule.is_active,
        "last_generated_date": (
            rule.last_generated_date.isoformat() if rule.last_generated_date else None
        ),
        "next_due_date": next_due.isoformat() if next_due else None,
    }


def budget_out(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "cycle_key": budget.cycle_key,
        "category_id": budget.category_id,
        "amount_cents": budget.amount_cents,
    }


@app.on_event("startup")
def startup_event():
    init_db()
    if get_settings().run_catch_up_on_startup:
        with session_scope() as session:
            RecurringRuleService(session).catch_up(source="startup")


@app.get("/accounts")
def list_accounts(db: Session = Depends(get_db)):
    return LedgerService(db).account_details()


@app.post("/accounts", status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


@app.put("/accounts/{account_id}")
def update_account(account_id: int, data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).update(account_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


@app.post("/accounts/{account_id}/toggle")
def toggle_account(account_id: int, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).toggle_active(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


@app.delete("/accounts/{account_id}", status_code=204)
def delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).delete(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/categories")
def list_categories(
    type: Optional[TransactionType] = None, db: Session = Depends(get_db)
):
    return [category_out(c) for c in CategoryService(db).list_all(type)]


@app.post("/categories", status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_out(category)


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/transactions")
def list_transactions(offset: int = 0, db: Session = Depends(get_db)):
    cycle = CycleSettingsService(db).current_cycle(offset=offset)
    return [transaction_out(txn) for txn in TransactionService(db).list(cycle)]


@app.post("/transactions", status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int, data: TransactionIn, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update(transaction_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/recurring")
def list_recurring(db: Session = Depends(get_db)):
    service = RecurringRuleService(db)
    return [rule_out(rule, service) for rule in service.list()]


@app.post("/recurring", status_code=201)
def create_recurring(data: RecurringRuleIn, db: Session = Depends(get_db)):
    service = RecurringRuleService(db)
    try:
        rule = service.create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return rule_out(rule, service)


@app.put("/recurring/{rule_id}")
def update_recurring(
    rule_id: int, data: RecurringRuleIn, db: Session = Depends(get_db)
):
    service = RecurringRuleService(db)
    try:
        rule = service.update(rule_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return rule_out(rule, service)


@app.post("/recurring/{rule_id}/toggle")
def toggle_recurring(rule_id: int, is_active: bool, db: Session = Depends(get_db)):
    service = RecurringRuleService(db)
    try:
        rule = service.toggle(rule_id, is_active)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return rule_out(rule, service)


@app.delete("/recurring/{rule_id}", status_code=204)
def delete_recurring(
    rule_id: int, confirm: bool = False, db: Session = Depends(get_db)
):
    try:
        RecurringRuleService(db).delete(rule_id, confirm=confirm)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/recurring/{rule_id}/occurrences")
def recurring_occurrences(rule_id: int, db: Session = Depends(get_db)):
    try:
        occurrences = RecurringRuleService(db).occurrences(rule_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [transaction_out(txn) for txn in occurrences]


@app.get("/settings/cycle")
def get_cycle_settings(db: Session = Depends(get_db)):
    settings = CycleSettingsService(db).get()
    return {
        "frequency": settings.frequency.value,
        "start_day": settings.start_day,
        "monthly_start_type": (
            settings.monthly_start_type.value if settings.monthly_start_type else None
        ),
    }


@app.put("/settings/cycle")
def update_cycle_settings(data: CycleSettingsIn, db: Session = Depends(get_db)):
    CycleSettingsService(db).update(data)
    return get_cycle_settings(db)


@app.get("/cycle")
def current_cycle(offset: int = 0, db: Session = Depends(get_db)):
    cycle = CycleSettingsService(db).current_cycle(offset=offset)
    return LedgerService(db).cycle_summary(cycle)


@app.get("/budgets")
def list_budgets(offset: int = 0, db: Session = Depends(get_db)):
    cycle = CycleSettingsService(db).current_cycle(offset=offset)
    return {
        "cycle": {
            "key": cycle.key,
            "start": cycle.start.isoformat(),
            "end": cycle.end.isoformat(),
        },
        "budgets": BudgetService(db).progress(cycle),
    }


@app.put("/budgets")
def save_budget(data: BudgetIn, offset: int = 0, db: Session = Depends(get_db)):
    cycle = CycleSettingsService(db).current_cycle(offset=offset)
    try:
        budget = BudgetService(db).upsert(data, cycle)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget_out(budget)


@app.delete("/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/budgets/averages")
def budget_averages(db: Session = Depends(get_db)):
    averages = BudgetService(db).category_averages()
    return {str(category_id): cents for category_id, cents in averages.items()}


@app.get("/history")
def history(q: Optional[str] = None, db: Session = Depends(get_db)):
    return LedgerService(db).history(q)


@app.get("/pending")
def pending(db: Session = Depends(get_db)):
    return LedgerService(db).pending()


@app.get("/balances")
def balances(db: Session = Depends(get_db)):
    snapshot = LedgerService(db).snapshot()
    return {
        "total_balance_cents": snapshot.total_balance_cents,
        "accounts": {
            str(account_id): {
                "balance_cents": item.balance_cents,
                "transaction_count": item.transaction_count,
            }
            for account_id, item in snapshot.per_account.items()
        },
    }


@app.post("/refresh")
def refresh(db: Session = Depends(get_db)):
    return DashboardService(db).refresh(source="refresh")


@app.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    return DashboardService(db).refresh(catch_up=False)

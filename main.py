import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from budget_analysis import TIME_RANGES, smart_suggestion
from config import get_settings
from database import get_session
from fx_rates import FxRateService
from models import TransactionType
from money import UnknownCurrency
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    AccountRecord,
    BudgetIn,
    BudgetRecord,
    BusinessEntityIn,
    BusinessEntityRecord,
    BusinessMetricConfig,
    BusinessMetricIn,
    InvestmentIn,
    InvestmentRecord,
    ReportParams,
    TransactionIn,
    TransactionRecord,
)
from services import (
    AccountService,
    BudgetService,
    BusinessMetricService,
    BusinessService,
    DashboardService,
    InvestmentService,
    ReportService,
    TransactionFilters,
    TransactionService,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Dashboard")


def get_fx_service() -> FxRateService:
    return FxRateService()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(UnknownCurrency)
def unknown_currency_handler(request: Request, exc: UnknownCurrency) -> JSONResponse:
    logger.warning(f"unknown_currency: code={exc.code} path={request.url.path}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def base_currency_for(currency: Optional[str]) -> str:
    return (currency or get_settings().base_currency).strip().upper()


def load_rates(fx: FxRateService, base: str) -> dict[str, float]:
    try:
        return fx.rates(base)
    except RuntimeError as exc:
        logger.error(f"fx_unavailable: base={base} error={exc}")
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
def healthcheck():
    return {"status": "ok"}


# --- Accounts ---------------------------------------------------------------


@app.get("/api/accounts")
def list_accounts(db: Session = Depends(get_session)) -> list[AccountRecord]:
    return AccountService(db).records()


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_session)) -> AccountRecord:
    return AccountRecord.model_validate(AccountService(db).create(data))


@app.put("/api/accounts/{account_id}")
def update_account(
    account_id: str, data: AccountIn, db: Session = Depends(get_session)
) -> AccountRecord:
    service = AccountService(db)
    try:
        service.get(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        account = service.update(account_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return AccountRecord.model_validate(account)


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(account_id: str, db: Session = Depends(get_session)):
    try:
        AccountService(db).delete(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/accounts/{account_id}/audit")
def audit_account(account_id: str, db: Session = Depends(get_session)):
    try:
        audit = AccountService(db).audit(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "account_id": audit.account_id,
        "stored_balance": audit.stored_balance,
        "replayed_balance": audit.replayed_balance,
        "drift": audit.drift,
        "is_consistent": audit.is_consistent,
    }


@app.post("/api/accounts/{account_id}/reconcile")
def reconcile_account(account_id: str, db: Session = Depends(get_session)) -> AccountRecord:
    try:
        account = AccountService(db).reconcile(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return AccountRecord.model_validate(account)


# --- Transactions -----------------------------------------------------------


def filters_from_query(
    account_id: Optional[str] = None,
    business_id: Optional[str] = None,
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> TransactionFilters:
    return TransactionFilters(
        account_id=account_id,
        business_id=business_id,
        type=type,
        category=category,
        start=start,
        end=end,
    )


@app.get("/api/transactions")
def list_transactions(
    filters: TransactionFilters = Depends(filters_from_query),
    db: Session = Depends(get_session),
) -> list[TransactionRecord]:
    return TransactionService(db).records(filters)


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(
    filters: TransactionFilters = Depends(filters_from_query),
    db: Session = Depends(get_session),
):
    csv_text = TransactionService(db).export_csv(filters)
    filename = f"transactions_{filters.start or 'all'}_{filters.end or 'all'}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _write_transaction(
    action, *args, data: TransactionIn, fx: FxRateService, db: Session
) -> TransactionRecord:
    """Run a create/update, fetching rates only for foreign-currency amounts."""
    account = AccountService(db).get(data.account_id)
    rates = None
    if data.currency != account.currency:
        rates = load_rates(fx, account.currency)
    return TransactionRecord.model_validate(action(*args, data, rates=rates))


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
) -> TransactionRecord:
    service = TransactionService(db)
    try:
        return _write_transaction(service.create, data=data, fx=fx, db=db)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: str,
    data: TransactionIn,
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
) -> TransactionRecord:
    service = TransactionService(db)
    try:
        service.get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        return _write_transaction(
            service.update, transaction_id, data=data, fx=fx, db=db
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, db: Session = Depends(get_session)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/api/transactions/{transaction_id}/pay")
def pay_recurring_transaction(transaction_id: str, db: Session = Depends(get_session)):
    service = TransactionService(db)
    try:
        service.get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        payment, parent = service.pay_recurring(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "payment": TransactionRecord.model_validate(payment),
        "recurring": TransactionRecord.model_validate(parent),
    }


# --- Budgets ----------------------------------------------------------------


@app.get("/api/budgets")
def list_budgets(
    currency: Optional[str] = None,
    as_of: Optional[date] = None,
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
) -> list[BudgetRecord]:
    base = base_currency_for(currency)
    return BudgetService(db).with_spend(base, load_rates(fx, base), as_of=as_of)


@app.post("/api/budgets", status_code=201)
def create_budget(data: BudgetIn, db: Session = Depends(get_session)) -> BudgetRecord:
    try:
        budget = BudgetService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetRecord.model_validate(budget)


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: str, data: BudgetIn, db: Session = Depends(get_session)
) -> BudgetRecord:
    service = BudgetService(db)
    try:
        service.get(budget_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        budget = service.update(budget_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetRecord.model_validate(budget)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: str, db: Session = Depends(get_session)):
    try:
        BudgetService(db).delete(budget_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/budgets/analysis")
def budget_analysis(
    time_range: str = Query("6m", alias="range"),
    currency: Optional[str] = None,
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
):
    if time_range not in TIME_RANGES:
        raise HTTPException(
            status_code=400, detail=f"Unknown time range: {time_range}"
        )
    base = base_currency_for(currency)
    service = DashboardService(db, base_currency=base, rates=load_rates(fx, base))
    analysis = service.budget_analysis(time_range=time_range)
    return {
        "time_range": analysis.time_range,
        "history": [
            {
                "month": m.month,
                "label": m.label,
                "income": m.income,
                "expense": m.expense,
                "net": m.net,
                "savings_rate": m.savings_rate,
            }
            for m in analysis.history
        ],
        "ideal_allocation": analysis.ideal_allocation,
        "insights": analysis.insights,
        "total_income": analysis.total_income,
        "total_expense": analysis.total_expense,
    }


@app.get("/api/budgets/suggestion")
def budget_suggestion(category: str, income: float):
    return {"suggestion": smart_suggestion(category, income)}


# --- Investments ------------------------------------------------------------


@app.get("/api/investments")
def list_investments(db: Session = Depends(get_session)):
    return [
        {
            **record.model_dump(),
            "unrealized_pnl": record.unrealized_pnl,
            "roi_percent": record.roi_percent,
        }
        for record in InvestmentService(db).records()
    ]


@app.post("/api/investments", status_code=201)
def create_investment(data: InvestmentIn, db: Session = Depends(get_session)) -> InvestmentRecord:
    return InvestmentRecord.model_validate(InvestmentService(db).create(data))


@app.put("/api/investments/{investment_id}")
def update_investment(
    investment_id: str, data: InvestmentIn, db: Session = Depends(get_session)
) -> InvestmentRecord:
    try:
        investment = InvestmentService(db).update(investment_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return InvestmentRecord.model_validate(investment)


@app.patch("/api/investments/{investment_id}/price")
def update_investment_price(
    investment_id: str, price: float, db: Session = Depends(get_session)
) -> InvestmentRecord:
    service = InvestmentService(db)
    try:
        service.get(investment_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        investment = service.update_price(investment_id, price)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return InvestmentRecord.model_validate(investment)


@app.delete("/api/investments/{investment_id}", status_code=204)
def delete_investment(investment_id: str, db: Session = Depends(get_session)):
    try:
        InvestmentService(db).delete(investment_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


# --- Businesses -------------------------------------------------------------


@app.get("/api/businesses")
def list_businesses(
    currency: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
) -> list[BusinessEntityRecord]:
    base = base_currency_for(currency)
    return BusinessService(db).metrics(base, load_rates(fx, base), start=start, end=end)


@app.post("/api/businesses", status_code=201)
def create_business(
    data: BusinessEntityIn, db: Session = Depends(get_session)
) -> BusinessEntityRecord:
    try:
        entity = BusinessService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BusinessEntityRecord.model_validate(entity)


@app.put("/api/businesses/{business_id}")
def update_business(
    business_id: str, data: BusinessEntityIn, db: Session = Depends(get_session)
) -> BusinessEntityRecord:
    service = BusinessService(db)
    try:
        service.get(business_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        entity = service.update(business_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BusinessEntityRecord.model_validate(entity)


@app.delete("/api/businesses/{business_id}", status_code=204)
def delete_business(business_id: str, db: Session = Depends(get_session)):
    try:
        BusinessService(db).delete(business_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/businesses/{business_id}/metrics")
def list_business_metrics(
    business_id: str, db: Session = Depends(get_session)
) -> list[BusinessMetricConfig]:
    try:
        metrics = BusinessMetricService(db).list_for(business_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [BusinessMetricConfig.model_validate(m) for m in metrics]


@app.put("/api/businesses/{business_id}/metrics")
def upsert_business_metric(
    business_id: str, data: BusinessMetricIn, db: Session = Depends(get_session)
) -> BusinessMetricConfig:
    try:
        metric = BusinessMetricService(db).upsert(business_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return BusinessMetricConfig.model_validate(metric)


@app.delete("/api/businesses/{business_id}/metrics/{metric_id}", status_code=204)
def delete_business_metric(
    business_id: str, metric_id: str, db: Session = Depends(get_session)
):
    try:
        BusinessMetricService(db).delete(business_id, metric_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/businesses/{business_id}/health")
def business_health(
    business_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_session),
):
    try:
        return BusinessMetricService(db).health(business_id, start=start, end=end)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# --- Dashboard and reports --------------------------------------------------


@app.get("/api/dashboard")
def dashboard(
    currency: Optional[str] = None,
    as_of: Optional[date] = None,
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
):
    base = base_currency_for(currency)
    service = DashboardService(db, base_currency=base, rates=load_rates(fx, base))
    return service.summary(as_of=as_of)


@app.get("/api/health-score")
def health_score(
    currency: Optional[str] = None,
    as_of: Optional[date] = None,
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
):
    base = base_currency_for(currency)
    service = DashboardService(db, base_currency=base, rates=load_rates(fx, base))
    return service.health_score(as_of=as_of)


@app.get("/api/reports")
def report_snapshot(
    params: ReportParams = Depends(),
    db: Session = Depends(get_session),
    fx: FxRateService = Depends(get_fx_service),
):
    base = base_currency_for(params.base_currency)
    rates = load_rates(fx, base)
    try:
        return ReportService(db).generate(params, base_currency=base, rates=rates)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/fx/rates")
def fx_rates(currency: Optional[str] = None, fx: FxRateService = Depends(get_fx_service)):
    base = base_currency_for(currency)
    return {"base": base, "rates": load_rates(fx, base)}

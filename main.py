import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from errors import (
    FinanceError,
    InvalidRange,
    NotFound,
    ReferentialConflict,
    StoreUnavailable,
    ValidationError,
)
from periods import resolve_period
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    DashboardData,
    FinancialReport,
    MonthlySummary,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    CategoryService,
    DashboardService,
    ReportService,
    SummaryService,
    TransactionService,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")

ERROR_STATUS = (
    (NotFound, 404),
    (InvalidRange, 400),
    (ReferentialConflict, 409),
    (ValidationError, 422),
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    # identity comes from the auth proxy in front of us
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header") from exc


def http_error(exc: FinanceError) -> HTTPException:
    for kind, status in ERROR_STATUS:
        if isinstance(exc, kind):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@app.exception_handler(StoreUnavailable)
def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logging.exception(f"store_unavailable: path={request.url.path}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(OperationalError)
def operational_error_handler(request: Request, exc: OperationalError):
    logging.exception(f"store_unavailable: path={request.url.path}")
    return JSONResponse(
        status_code=503, content={"detail": "Ledger store is unavailable"}
    )


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    user_id: int = Depends(get_user_id), db: Session = Depends(get_db)
):
    return CategoryService(db, user_id).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).create(data)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).get(category_id)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.patch("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryUpdate,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).update(category_id, data)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).list(start_date, end_date)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).create(data)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.patch("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, data)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/summary/monthly", response_model=MonthlySummary)
def monthly_summary(
    year: int,
    month: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return SummaryService(db, user_id).monthly(year, month)
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.get("/api/dashboard", response_model=DashboardData)
def dashboard(user_id: int = Depends(get_user_id), db: Session = Depends(get_db)):
    try:
        return DashboardService(db, user_id).build_dashboard()
    except FinanceError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports", response_model=FinancialReport)
def financial_report(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    period_type: Optional[str] = None,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        period = resolve_period(period_type, start_date, end_date)
        return ReportService(db, user_id).build_report(
            period.start, period.end, period.slug
        )
    except FinanceError as exc:
        raise http_error(exc) from exc

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from models import CategoryKind

ZERO = Decimal("0.00")


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    kind: CategoryKind
    color: Optional[str] = Field(default=None, max_length=9)


class CategoryUpdate(BaseModel):
    """Partial update: only fields present in ``model_fields_set`` change.

    ``kind`` is not accepted; a category keeps its kind for life.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=9)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    kind: CategoryKind
    color: Optional[str]
    created_at: datetime


class TransactionIn(BaseModel):
    category_id: int
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    # YYYY-MM-DD, parsed by the journal
    transaction_date: Union[date, str]


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: Optional[int] = None
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=14, decimal_places=2
    )
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: Optional[Union[date, str]] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    category_id: int
    amount: Decimal
    description: Optional[str]
    transaction_date: date
    created_at: datetime
    updated_at: datetime


class RecentTransaction(TransactionOut):
    category_name: str
    category_kind: CategoryKind


class MonthlySummary(BaseModel):
    year: int
    month: int
    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense

    @computed_field
    @property
    def is_overspent(self) -> bool:
        return self.balance < 0


class CategoryReport(BaseModel):
    category_id: int
    category_name: str
    category_kind: CategoryKind
    total_amount: Decimal
    transaction_count: int


class MonthlyComparison(BaseModel):
    month_label: str
    year: int
    month: int
    income: Decimal = ZERO
    expense: Decimal = ZERO


class DashboardData(BaseModel):
    current_month_summary: MonthlySummary
    recent_transactions: list[RecentTransaction]
    monthly_comparison: list[MonthlyComparison]
    top_categories: list[CategoryReport]


class ReportPeriod(BaseModel):
    start_date: date
    end_date: date
    type: str = "custom"


class ReportSummary(BaseModel):
    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense


class FinancialReport(BaseModel):
    period: ReportPeriod
    summary: ReportSummary
    categories: list[CategoryReport]
    monthly_breakdown: list[MonthlySummary]

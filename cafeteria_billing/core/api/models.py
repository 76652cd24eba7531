"""Pydantic request/response models for the cafeteria billing API."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from cafeteria_billing.core.billing.models import BillingStatus


# ── Health ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    time: str
    timezone: str


# ── Companies ────────────────────────────────────────────────────

class CompanyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    meal_price: str = Field("0", description="Price per billed meal, decimal string (e.g. '80.00').")
    daily_target: int = Field(0, ge=0, description="Minimum meals billed on chargeable days; 0 disables.")
    chargeable_weekdays: Optional[List[int]] = Field(
        None, description="Days the minimum applies, 0=Sunday..6=Saturday. Default Mon-Thu.",
    )
    include_anonymous: Optional[bool] = Field(
        None, description="Bill point-of-sale walk-in sales to this company.",
    )
    billing_email: Optional[str] = None
    billing_note: Optional[str] = None


class CompanyResponse(BaseModel):
    id: str
    name: str
    meal_price: str
    meal_price_cents: int
    daily_target: int
    chargeable_weekdays: List[int]
    include_anonymous: bool
    billing_email: Optional[str] = None
    billing_note: Optional[str] = None


class CompanyListResponse(BaseModel):
    companies: List[CompanyResponse]
    total: int


# ── Consumptions ─────────────────────────────────────────────────

class ConsumptionRequest(BaseModel):
    company_id: str = Field(..., min_length=1)
    employee_id: str = ""
    employee_number: str = ""
    name: str = ""
    timestamp: Optional[str] = Field(None, description="ISO-8601 instant; defaults to now (UTC).")


class ConsumptionResponse(BaseModel):
    id: str
    company_id: str
    timestamp: str
    voided: bool
    employee_id: str
    employee_number: str
    name: str


# ── Billing ──────────────────────────────────────────────────────

class DailyRowResponse(BaseModel):
    date: str
    weekday: int
    chargeable: bool
    actual_count: int
    billed_count: int
    unit_price_cents: int
    subtotal_cents: int
    subtotal: str


class MonthlyInvoiceResponse(BaseModel):
    company_id: str
    company_name: str
    period: str
    timezone: str
    through: Optional[str] = None
    rows: List[DailyRowResponse]
    meal_price_cents: int
    daily_target: int
    actual_meals: int
    billed_meals: int
    total_cents: int
    total: str
    note: Optional[str] = None


class InvoiceRequest(BaseModel):
    company_id: str = Field(..., min_length=1)
    period: str = Field(..., description="YYYY-MM billing period.")


class InvoiceResponse(MonthlyInvoiceResponse):
    invoice_id: str
    customer: str
    generated_at: float
    status: BillingStatus = BillingStatus.PENDING
    invoice_path: Optional[str] = None
    csv_path: Optional[str] = None
    pdf_path: Optional[str] = None


class CompanyRevenue(BaseModel):
    company_id: str
    total_cents: int
    total: str


class RevenueResponse(BaseModel):
    period: str
    through: Optional[str] = None
    total_cents: int
    total: str
    companies: List[CompanyRevenue]


class TrendPoint(BaseModel):
    period: str
    total_cents: int
    total: str


class TrendResponse(BaseModel):
    end_period: str
    months: int
    points: List[TrendPoint]


class StatusRequest(BaseModel):
    company_id: str = Field(..., min_length=1)
    period: str = Field(..., description="YYYY-MM billing period.")
    status: BillingStatus


class StatusResponse(BaseModel):
    period: str
    statuses: Dict[str, BillingStatus]


class SendInvoiceResponse(BaseModel):
    invoice_id: str
    billing_email: str
    status: BillingStatus

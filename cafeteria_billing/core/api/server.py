"""Cafeteria billing HTTP API server (FastAPI + uvicorn)."""

from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from cafeteria_billing import __version__
from cafeteria_billing.core.api.errors import (
    billing_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from cafeteria_billing.core.api.middleware import RequestIDMiddleware
from cafeteria_billing.core.api.models import (
    CompanyListResponse,
    CompanyRequest,
    CompanyResponse,
    ConsumptionRequest,
    ConsumptionResponse,
    HealthResponse,
    InvoiceRequest,
    InvoiceResponse,
    MonthlyInvoiceResponse,
    RevenueResponse,
    SendInvoiceResponse,
    StatusRequest,
    StatusResponse,
    TrendResponse,
)
from cafeteria_billing.core.api.settings import Settings, load_settings, validate_host
from cafeteria_billing.core.billing.cache import BillingCache
from cafeteria_billing.core.billing.dispatch import send_invoice
from cafeteria_billing.core.billing.export import (
    export_consumptions_csv,
    export_daily_csv,
    export_daily_jsonl,
)
from cafeteria_billing.core.billing.invoice import (
    create_invoice,
    render_invoice_pdf,
    write_invoice_csv,
    write_invoice_json,
    write_invoice_pdf,
)
from cafeteria_billing.core.billing.metering import build_invoice, revenue_trend
from cafeteria_billing.core.billing.models import BillingStatus, Company, MonthlyInvoice
from cafeteria_billing.core.billing.periods import (
    current_period,
    parse_period,
    parse_through,
    previous_periods,
    resolve_timezone,
)
from cafeteria_billing.core.billing.pricing import BillingConfig, cents_to_decimal, to_cents
from cafeteria_billing.core.billing.store import billing_store
from cafeteria_billing.core.errors import BillingError
from cafeteria_billing.core.io import load_companies

logger = logging.getLogger("cafeteria.api")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and return the FastAPI application."""
    if settings is None:
        settings = load_settings()

    resolve_timezone(settings.timezone)  # fail fast on a bad zone
    docs_url = "/docs" if settings.enable_docs else None
    openapi_url = "/openapi.json" if settings.enable_docs else None

    app = FastAPI(
        title="Cafeteria Billing API",
        description="Monthly meal billing with per-company minimum guarantees.",
        version=__version__,
        docs_url=docs_url,
        openapi_url=openapi_url,
        redoc_url=None,
    )

    app.state.settings = settings
    cache = BillingCache(maxsize=settings.cache_size)
    app.state.billing_cache = cache
    tz = settings.timezone

    # ── Normalized error envelope (always-on) ────────────────────
    app.add_exception_handler(BillingError, billing_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(RequestIDMiddleware)

    # ── Reset singletons for test isolation ──────────────────────
    billing_store.reset()

    if settings.persist:
        persist_path = str(Path(settings.data_dir) / "cafeteria_billing_events.jsonl")
        billing_store.configure_persistence(persist_path)

    if settings.companies_path:
        for company in load_companies(settings.companies_path, settings.include_anonymous):
            # replayed companies carry admin edits; the YAML only seeds new ones
            if not billing_store.has_company(company.id):
                billing_store.upsert_company(company)
        logger.info("Loaded %d companies from %s", len(billing_store.list_companies()), settings.companies_path)

    # ── Helpers ──────────────────────────────────────────────────

    def _monthly(company: Company, period: str, through: Optional[datetime.date] = None) -> MonthlyInvoice:
        year, month = parse_period(period)
        events = billing_store.events_for_period(company.id, period, tz)
        rows = cache.daily_rows(company.id, company.billing, events, year, month, tz, through)
        return build_invoice(company, rows, period, tz, through)

    # ── Routes ───────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "timezone": tz,
        }

    # ── Companies ────────────────────────────────────────────────

    @app.get("/v1/companies", response_model=CompanyListResponse)
    def list_companies() -> Dict[str, Any]:
        companies = [c.to_dict() for c in billing_store.list_companies()]
        return {"companies": companies, "total": len(companies)}

    @app.put("/v1/companies/{company_id}", response_model=CompanyResponse)
    def upsert_company(company_id: str, body: CompanyRequest) -> Dict[str, Any]:
        include_anonymous = (
            settings.include_anonymous if body.include_anonymous is None else body.include_anonymous
        )
        company = Company(
            id=company_id,
            name=body.name,
            billing=BillingConfig(
                meal_price_cents=to_cents(body.meal_price),
                daily_target=body.daily_target,
                chargeable_weekdays=body.chargeable_weekdays,
                include_anonymous=include_anonymous,
            ),
            billing_email=body.billing_email,
            billing_note=body.billing_note,
        )
        billing_store.upsert_company(company)
        logger.info("Company %s billing config updated", company_id)
        return company.to_dict()

    # ── Consumptions ─────────────────────────────────────────────

    @app.post("/v1/consumptions", response_model=ConsumptionResponse, status_code=201)
    def record_consumption(body: ConsumptionRequest) -> Dict[str, Any]:
        billing_store.get_company(body.company_id)
        evt = billing_store.record_consumption(
            company_id=body.company_id,
            employee_id=body.employee_id,
            employee_number=body.employee_number,
            name=body.name,
            timestamp=body.timestamp,
        )
        return evt.to_dict()

    @app.post("/v1/consumptions/{consumption_id}/void", response_model=ConsumptionResponse)
    def void_consumption(consumption_id: str) -> Dict[str, Any]:
        return billing_store.void_consumption(consumption_id).to_dict()

    # ── Billing ──────────────────────────────────────────────────

    @app.get("/v1/billing/daily", response_model=MonthlyInvoiceResponse)
    def billing_daily(
        company_id: str = Query(..., description="Company to bill."),
        period: Optional[str] = Query(None, description="YYYY-MM billing period (default: current)."),
        through: Optional[str] = Query(None, description="Month-to-date cut-off, YYYY-MM-DD."),
    ) -> Dict[str, Any]:
        effective = period or current_period(tz)
        company = billing_store.get_company(company_id)
        return _monthly(company, effective, parse_through(through, effective)).to_dict()

    @app.get("/v1/billing/invoice-preview", response_model=MonthlyInvoiceResponse)
    def billing_invoice_preview(
        company_id: str = Query(..., description="Company to preview."),
        period: Optional[str] = Query(None, description="YYYY-MM billing period (default: current)."),
    ) -> Dict[str, Any]:
        effective = period or current_period(tz)
        company = billing_store.get_company(company_id)
        return _monthly(company, effective).to_dict()

    @app.post("/v1/billing/invoice", response_model=InvoiceResponse)
    def billing_generate_invoice(body: InvoiceRequest) -> Dict[str, Any]:
        """Generate and persist an invoice with deterministic ID + artifacts."""
        company = billing_store.get_company(body.company_id)
        invoice = create_invoice(_monthly(company, body.period))
        invoice_data = invoice.to_dict()
        invoice_data["status"] = billing_store.get_status(company.id, body.period).value

        try:
            invoice_dir = str(Path(settings.data_dir) / "billing" / "invoices")
            invoice_data["invoice_path"] = write_invoice_json(invoice, invoice_dir)
            invoice_data["csv_path"] = write_invoice_csv(invoice, invoice_dir)
            invoice_data["pdf_path"] = write_invoice_pdf(invoice, invoice_dir)
        except OSError:
            logger.warning("Failed to persist invoice %s", invoice.invoice_id, exc_info=True)

        billing_store.store_invoice(invoice.invoice_id, invoice_data)
        return invoice_data

    @app.get("/v1/billing/invoice/{invoice_id}", response_model=InvoiceResponse)
    def billing_get_invoice(invoice_id: str) -> Dict[str, Any]:
        """Retrieve a previously generated invoice by ID."""
        return billing_store.get_invoice(invoice_id)

    @app.get("/v1/billing/revenue", response_model=RevenueResponse)
    def billing_revenue(
        period: Optional[str] = Query(None, description="YYYY-MM billing period (default: current)."),
        through: Optional[str] = Query(None, description="Month-to-date cut-off, YYYY-MM-DD."),
    ) -> Dict[str, Any]:
        """Fleet-wide billed revenue, with the per-company split."""
        effective = period or current_period(tz)
        parse_period(effective)
        cut = parse_through(through, effective)
        per_company: List[Dict[str, Any]] = []
        total = 0
        for company in billing_store.list_companies():
            cents = _monthly(company, effective, cut).total_cents
            total += cents
            per_company.append({
                "company_id": company.id,
                "total_cents": cents,
                "total": str(cents_to_decimal(cents)),
            })
        return {
            "period": effective,
            "through": cut.isoformat() if cut else None,
            "total_cents": total,
            "total": str(cents_to_decimal(total)),
            "companies": per_company,
        }

    @app.get("/v1/billing/trend", response_model=TrendResponse)
    def billing_trend(
        period: Optional[str] = Query(None, description="Last period of the trend (default: current)."),
        months: int = Query(6, ge=1, le=36, description="Number of months."),
    ) -> Dict[str, Any]:
        end = period or current_period(tz)
        periods = previous_periods(end, months)
        events = []
        for p in periods:
            events.extend(billing_store.events_for_period(None, p, tz))
        points = revenue_trend(billing_store.list_companies(), events, end, months, tz)
        return {"end_period": end, "months": months, "points": points}

    @app.get("/v1/billing/export")
    def billing_export(
        company_id: str = Query(..., description="Company to export."),
        period: Optional[str] = Query(None, description="YYYY-MM billing period (default: current)."),
        format: str = Query("csv", description="csv, jsonl or detail (one row per meal)."),
    ) -> PlainTextResponse:
        effective = period or current_period(tz)
        company = billing_store.get_company(company_id)
        if format == "detail":
            parse_period(effective)
            events = billing_store.events_for_period(company.id, effective, tz)
            return PlainTextResponse(export_consumptions_csv(company, events, tz), media_type="text/csv")
        if format not in ("csv", "jsonl"):
            raise HTTPException(status_code=422, detail="format must be csv, jsonl, or detail.")
        rows = _monthly(company, effective).rows
        if format == "csv":
            return PlainTextResponse(export_daily_csv(rows), media_type="text/csv")
        return PlainTextResponse(export_daily_jsonl(rows), media_type="application/x-ndjson")

    @app.put("/v1/billing/status", response_model=StatusResponse)
    def billing_set_status(body: StatusRequest) -> Dict[str, Any]:
        parse_period(body.period)
        billing_store.get_company(body.company_id)
        billing_store.set_status(body.company_id, body.period, body.status)
        return {"period": body.period, "statuses": billing_store.statuses_for_period(body.period)}

    @app.get("/v1/billing/status", response_model=StatusResponse)
    def billing_get_status(
        period: Optional[str] = Query(None, description="YYYY-MM billing period (default: current)."),
    ) -> Dict[str, Any]:
        effective = period or current_period(tz)
        parse_period(effective)
        return {"period": effective, "statuses": billing_store.statuses_for_period(effective)}

    @app.post("/v1/billing/send", response_model=SendInvoiceResponse)
    def billing_send(body: InvoiceRequest, request: Request) -> Dict[str, Any]:
        """Email the account statement and mark the period SENT."""
        if not settings.dispatch_url:
            raise HTTPException(status_code=409, detail="Invoice dispatch is not configured.")
        company = billing_store.get_company(body.company_id)
        invoice = create_invoice(_monthly(company, body.period))
        result = send_invoice(
            invoice,
            company,
            settings.dispatch_url,
            pdf_bytes=render_invoice_pdf(invoice),
            http_client=getattr(request.app.state, "dispatch_client", None),
            timeout=settings.dispatch_timeout,
        )
        billing_store.set_status(company.id, body.period, BillingStatus.SENT)
        return {
            "invoice_id": result["invoice_id"],
            "billing_email": result["billing_email"],
            "status": BillingStatus.SENT,
        }

    return app


def start_server(
    host: str = "127.0.0.1",
    port: int = 8080,
    allow_nonlocal: bool = False,
    reload: bool = False,
    settings: Optional[Settings] = None,
) -> None:
    """Validate host and start uvicorn."""
    import uvicorn

    validate_host(host, allow_nonlocal)
    if settings is None:
        settings = load_settings(bind=host, port=port, allow_nonlocal=allow_nonlocal)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    def app_factory() -> FastAPI:
        return create_app(settings)

    uvicorn.run(
        app_factory,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        factory=True,
    )

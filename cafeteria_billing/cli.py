"""Cafeteria billing CLI -- Typer app with all subcommands."""

from __future__ import annotations

import json
import traceback
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from cafeteria_billing import __version__

console = Console(stderr=True)

app = typer.Typer(
    name="cafeteria-billing",
    help=(
        "Cafeteria billing: monthly meal invoices with per-company minimums.\n\n"
        "Offline commands read a companies YAML file and a consumptions JSONL file."
    ),
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog=(
        "Quick start:\n"
        "  cafeteria-billing daily -c companies.yaml -e consumptions.jsonl --company acme --period 2026-03\n"
        "  cafeteria-billing invoice -c companies.yaml -e consumptions.jsonl --company acme --period 2026-03 --out ./invoices\n"
        "  cafeteria-billing revenue -c companies.yaml -e consumptions.jsonl --period 2026-03\n"
        "  cafeteria-billing serve --port 8080\n"
    ),
)

_COMPANIES_OPT = typer.Option(..., "--companies", "-c", help="Companies YAML file.")
_EVENTS_OPT = typer.Option(..., "--events", "-e", help="Consumptions JSONL file.")
_TZ_OPT = typer.Option(
    "America/Mexico_City", "--tz", help="IANA timezone of the cafeteria.", envvar="CAFETERIA_TIMEZONE",
)


def _version_callback(value: bool) -> None:
    if value:
        from rich.panel import Panel
        c = Console()
        c.print(Panel(f"[bold]Cafeteria Billing[/bold] v{__version__}", border_style="blue"))
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
) -> None:
    """Cafeteria billing: monthly meal invoices with per-company minimums."""
    pass


@app.command()
def version() -> None:
    """Show version info."""
    Console().print(f"cafeteria-billing {__version__}")


# ── shared loading ───────────────────────────────────────────────

def _load(companies_path: str, events_path: str, include_anonymous: bool):
    from cafeteria_billing.core.io import load_companies, load_consumptions

    companies = load_companies(companies_path, include_anonymous=include_anonymous)
    events = load_consumptions(events_path)
    return companies, events


def _pick(companies, company_id: str):
    from cafeteria_billing.core.errors import NotFoundError

    for c in companies:
        if c.id == company_id:
            return c
    raise NotFoundError(f"Company {company_id} not found in companies file.")


def _resolve_period(period: Optional[str], tz: str) -> str:
    from cafeteria_billing.core.billing.periods import current_period, parse_period

    effective = period or current_period(tz)
    parse_period(effective)
    return effective


def _print_rows(monthly) -> None:
    from cafeteria_billing.core.billing.pricing import format_cents

    table = Table(title=f"{monthly.company_name} - {monthly.period}")
    table.add_column("Date")
    table.add_column("Day")
    table.add_column("Actual", justify="right")
    table.add_column("Billed", justify="right")
    table.add_column("Subtotal", justify="right")
    days = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
    for row in monthly.rows:
        billed = f"[yellow]{row.billed_count}[/yellow]" if row.minimum_applied else str(row.billed_count)
        table.add_row(
            row.date.isoformat(),
            days[row.weekday],
            str(row.actual_count),
            billed,
            format_cents(row.subtotal_cents),
        )
    console.print(table)
    console.print(f"  Meal price:    {format_cents(monthly.meal_price_cents)}")
    console.print(f"  Daily target:  {monthly.daily_target or 'none'}")
    console.print(f"  Meals served:  {monthly.actual_meals}")
    console.print(f"  Meals billed:  {monthly.billed_meals}")
    console.print(f"  [bold]Total:         {format_cents(monthly.total_cents)}[/bold]")


# ── daily ────────────────────────────────────────────────────────

@app.command()
def daily(
    companies: str = _COMPANIES_OPT,
    events: str = _EVENTS_OPT,
    company: str = typer.Option(..., "--company", help="Company ID."),
    period: Optional[str] = typer.Option(None, "--period", "-p", help="YYYY-MM (default: current)."),
    through: Optional[str] = typer.Option(None, "--through", help="Month-to-date cut-off, YYYY-MM-DD."),
    tz: str = _TZ_OPT,
    include_anonymous: bool = typer.Option(
        False, "--include-anonymous", help="Bill point-of-sale walk-in sales by default.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Show the per-day billing breakdown for one company.

    Example:
      cafeteria-billing daily -c companies.yaml -e consumptions.jsonl --company acme --period 2026-03
    """
    _run_safe(
        lambda: _daily_impl(companies, events, company, period, through, tz, include_anonymous, json_output),
        verbose=verbose,
    )


def _daily_impl(
    companies_path: str, events_path: str, company_id: str, period: Optional[str],
    through: Optional[str], tz: str, include_anonymous: bool, json_output: bool,
) -> None:
    from cafeteria_billing.core.billing.metering import compute_invoice
    from cafeteria_billing.core.billing.periods import parse_through

    companies, events = _load(companies_path, events_path, include_anonymous)
    company = _pick(companies, company_id)
    effective = _resolve_period(period, tz)
    monthly = compute_invoice(company, events, effective, tz, parse_through(through, effective))

    if json_output:
        Console().print_json(json.dumps(monthly.to_dict()))
        return
    _print_rows(monthly)


# ── invoice ──────────────────────────────────────────────────────

@app.command()
def invoice(
    companies: str = _COMPANIES_OPT,
    events: str = _EVENTS_OPT,
    company: str = typer.Option(..., "--company", help="Company ID."),
    period: Optional[str] = typer.Option(None, "--period", "-p", help="YYYY-MM (default: current)."),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output directory for artifacts."),
    pdf: bool = typer.Option(False, "--pdf", help="Also write a PDF (needs the 'pdf' extra)."),
    tz: str = _TZ_OPT,
    include_anonymous: bool = typer.Option(
        False, "--include-anonymous", help="Bill point-of-sale walk-in sales by default.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Generate a monthly invoice, optionally writing JSON/CSV/PDF artifacts.

    Example:
      cafeteria-billing invoice -c companies.yaml -e consumptions.jsonl --company acme --period 2026-03 --out ./invoices
    """
    _run_safe(
        lambda: _invoice_impl(
            companies, events, company, period, out, pdf, tz, include_anonymous, json_output,
        ),
        verbose=verbose,
    )


def _invoice_impl(
    companies_path: str, events_path: str, company_id: str, period: Optional[str],
    out_dir: Optional[str], pdf: bool, tz: str, include_anonymous: bool, json_output: bool,
) -> None:
    from cafeteria_billing.core.billing.invoice import (
        create_invoice,
        write_invoice_csv,
        write_invoice_json,
        write_invoice_pdf,
    )
    from cafeteria_billing.core.billing.metering import compute_invoice

    companies, events = _load(companies_path, events_path, include_anonymous)
    company = _pick(companies, company_id)
    effective = _resolve_period(period, tz)
    inv = create_invoice(compute_invoice(company, events, effective, tz))

    if json_output:
        Console().print_json(json.dumps(inv.to_dict()))
    else:
        console.print(f"[bold]Invoice {inv.invoice_id}[/bold]")
        _print_rows(inv.invoice)

    if out_dir:
        console.print(f"  Invoice saved to: {write_invoice_json(inv, out_dir)}")
        console.print(f"  CSV saved to:     {write_invoice_csv(inv, out_dir)}")
        if pdf:
            pdf_path = write_invoice_pdf(inv, out_dir)
            if pdf_path is None:
                console.print("  [yellow]PDF skipped:[/yellow] install cafeteria-billing[pdf].")
            else:
                console.print(f"  PDF saved to:     {pdf_path}")


# ── revenue ──────────────────────────────────────────────────────

@app.command()
def revenue(
    companies: str = _COMPANIES_OPT,
    events: str = _EVENTS_OPT,
    period: Optional[str] = typer.Option(None, "--period", "-p", help="YYYY-MM (default: current)."),
    through: Optional[str] = typer.Option(None, "--through", help="Month-to-date cut-off, YYYY-MM-DD."),
    tz: str = _TZ_OPT,
    include_anonymous: bool = typer.Option(
        False, "--include-anonymous", help="Bill point-of-sale walk-in sales by default.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Fleet-wide billed revenue for a month, split by company.

    Example:
      cafeteria-billing revenue -c companies.yaml -e consumptions.jsonl --period 2026-03
    """
    _run_safe(
        lambda: _revenue_impl(companies, events, period, through, tz, include_anonymous, json_output),
        verbose=verbose,
    )


def _revenue_impl(
    companies_path: str, events_path: str, period: Optional[str], through: Optional[str],
    tz: str, include_anonymous: bool, json_output: bool,
) -> None:
    from cafeteria_billing.core.billing.metering import compute_invoice
    from cafeteria_billing.core.billing.periods import parse_through
    from cafeteria_billing.core.billing.pricing import cents_to_decimal, format_cents

    companies, events = _load(companies_path, events_path, include_anonymous)
    effective = _resolve_period(period, tz)
    cut = parse_through(through, effective)
    per_company = [compute_invoice(c, events, effective, tz, cut) for c in companies]
    total = sum(m.total_cents for m in per_company)

    if json_output:
        Console().print_json(json.dumps({
            "period": effective,
            "total_cents": total,
            "total": str(cents_to_decimal(total)),
            "companies": [
                {"company_id": m.company_id, "total_cents": m.total_cents, "total": str(m.total)}
                for m in per_company
            ],
        }))
        return

    table = Table(title=f"Billed revenue - {effective}")
    table.add_column("Company")
    table.add_column("Meals billed", justify="right")
    table.add_column("Total", justify="right")
    for m in per_company:
        table.add_row(m.company_name, str(m.billed_meals), format_cents(m.total_cents))
    console.print(table)
    console.print(f"  [bold]Fleet total:   {format_cents(total)}[/bold]")


# ── trend ────────────────────────────────────────────────────────

@app.command()
def trend(
    companies: str = _COMPANIES_OPT,
    events: str = _EVENTS_OPT,
    period: Optional[str] = typer.Option(None, "--period", "-p", help="Last month of the trend."),
    months: int = typer.Option(6, "--months", "-m", help="Number of months."),
    tz: str = _TZ_OPT,
    include_anonymous: bool = typer.Option(
        False, "--include-anonymous", help="Bill point-of-sale walk-in sales by default.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Fleet revenue for the last N months.

    Example:
      cafeteria-billing trend -c companies.yaml -e consumptions.jsonl --months 6
    """
    _run_safe(
        lambda: _trend_impl(companies, events, period, months, tz, include_anonymous, json_output),
        verbose=verbose,
    )


def _trend_impl(
    companies_path: str, events_path: str, period: Optional[str], months: int,
    tz: str, include_anonymous: bool, json_output: bool,
) -> None:
    from cafeteria_billing.core.billing.metering import revenue_trend
    from cafeteria_billing.core.billing.pricing import format_cents

    companies, events = _load(companies_path, events_path, include_anonymous)
    effective = _resolve_period(period, tz)
    points = revenue_trend(companies, events, effective, months, tz)

    if json_output:
        Console().print_json(json.dumps({"end_period": effective, "points": points}))
        return

    table = Table(title=f"Revenue trend - last {months} months")
    table.add_column("Period")
    table.add_column("Total", justify="right")
    for p in points:
        table.add_row(str(p["period"]), format_cents(int(p["total_cents"])))
    console.print(table)


# ── export ───────────────────────────────────────────────────────

@app.command()
def export(
    companies: str = _COMPANIES_OPT,
    events: str = _EVENTS_OPT,
    company: str = typer.Option(..., "--company", help="Company ID."),
    period: Optional[str] = typer.Option(None, "--period", "-p", help="YYYY-MM (default: current)."),
    fmt: str = typer.Option("csv", "--format", "-f", help="csv, jsonl, or detail (one row per meal)."),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output file (default: stdout)."),
    tz: str = _TZ_OPT,
    include_anonymous: bool = typer.Option(
        False, "--include-anonymous", help="Bill point-of-sale walk-in sales by default.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Export daily billing rows (csv/jsonl) or the per-meal detail (detail).

    Example:
      cafeteria-billing export -c companies.yaml -e consumptions.jsonl --company acme --format csv
    """
    _run_safe(
        lambda: _export_impl(companies, events, company, period, fmt, out, tz, include_anonymous),
        verbose=verbose,
    )


def _export_impl(
    companies_path: str, events_path: str, company_id: str, period: Optional[str],
    fmt: str, out: Optional[str], tz: str, include_anonymous: bool,
) -> None:
    from cafeteria_billing.core.billing.export import (
        export_consumptions_csv,
        export_daily_csv,
        export_daily_jsonl,
    )
    from cafeteria_billing.core.billing.metering import compute_invoice
    from cafeteria_billing.core.billing.periods import local_date
    from cafeteria_billing.core.errors import BillingError

    if fmt not in ("csv", "jsonl", "detail"):
        raise BillingError("--format must be csv, jsonl, or detail.")

    companies, events = _load(companies_path, events_path, include_anonymous)
    company = _pick(companies, company_id)
    effective = _resolve_period(period, tz)

    if fmt == "detail":
        in_period: List = [
            e for e in events if local_date(e.timestamp, tz).strftime("%Y-%m") == effective
        ]
        content = export_consumptions_csv(company, in_period, tz)
    else:
        rows = compute_invoice(company, events, effective, tz).rows
        content = export_daily_csv(rows) if fmt == "csv" else export_daily_jsonl(rows)

    if out:
        path = Path(out)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        console.print(f"  Export saved to: {path}")
    else:
        typer.echo(content, nl=False)


# ── serve ────────────────────────────────────────────────────────

@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to (default: 127.0.0.1)."),
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on."),
    allow_nonlocal: bool = typer.Option(
        False, "--allow-nonlocal",
        help="Allow binding to non-localhost addresses (use with caution).",
    ),
    companies: Optional[str] = typer.Option(
        None, "--companies", "-c", help="Seed companies from a YAML file.",
    ),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Start the billing HTTP API server.

    Example:
      cafeteria-billing serve
      cafeteria-billing serve --port 8099 --companies companies.yaml
    """
    _run_safe(lambda: _serve_impl(host, port, allow_nonlocal, companies, reload), verbose=verbose)


def _serve_impl(
    host: str, port: int, allow_nonlocal: bool, companies: Optional[str], reload: bool,
) -> None:
    from cafeteria_billing.core.api.server import start_server
    from cafeteria_billing.core.api.settings import load_settings, startup_warnings

    overrides = {"bind": host, "port": port, "allow_nonlocal": allow_nonlocal}
    if companies:
        overrides["companies_path"] = companies
    settings = load_settings(**overrides)

    console.print("[bold]Cafeteria Billing API Server[/bold]")
    console.print(f"  Bind:        {settings.bind}:{settings.port}")
    console.print(f"  Timezone:    {settings.timezone}")
    console.print(f"  Persistence: {settings.persist}")
    for w in startup_warnings(settings):
        console.print(f"  [yellow]•[/yellow] {w}")
    console.print()

    start_server(
        host=host, port=port,
        allow_nonlocal=allow_nonlocal,
        reload=reload,
        settings=settings,
    )


def _run_safe(fn, verbose: bool = False) -> None:
    """Run a function with clean error handling."""
    try:
        fn()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise SystemExit(130)
    except Exception as e:
        console.print(f"\n[red bold]Error:[/red bold] {e}")
        if verbose:
            console.print(traceback.format_exc())
        else:
            console.print("[dim]Run with --verbose for full traceback.[/dim]")
        raise SystemExit(1)

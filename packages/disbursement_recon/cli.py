"""CLI for the ``disbursement_recon`` package.

Exposes callable command handlers (``cmd_verify``, ``cmd_reconcile``,
``cmd_map_scale``, ``cmd_diagnose``) and a Typer-based console interface.
Environment variables are loaded from a local ``.env`` using ``python-dotenv``
before any command runs; settings are then read through
:class:`~disbursement_recon.config.Settings`. Business logic lives in
``disbursement_recon.api`` and the core modules.
"""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .config import Settings
from .dataset import ReferenceDataset, load_dataset
from .errors import SourceUnavailable
from .logging_setup import configure_logging
from .matching import TolerancePolicy, fixed_tolerance
from .models import Transaction, VerificationStatus
from .reconciliation import CurrencyTotals, DirectionReport, ReportingPeriod
from .sources import (
    LEDGER,
    TRANSFERS,
    CsvLedgerSource,
    CsvTransferSource,
    DatasetManualRecordsSource,
    SqlTransferSource,
    TransferSource,
    call_with_timeout,
)

_console = Console()
_err_console = Console(stderr=True)

DIAGNOSE_WINDOW_DAYS = 30


# ---- Small module-level helpers used by CLI commands -------------------------


def _load_context() -> tuple[Settings, ReferenceDataset]:
    settings = Settings.from_env()
    return settings, load_dataset(settings.dataset_path)


def _transfer_source(
    transfers_csv: Path | None, database_url: str | None, settings: Settings
) -> TransferSource:
    if transfers_csv is not None:
        return CsvTransferSource(transfers_csv)
    return SqlTransferSource(database_url=database_url or settings.database_url)


def _ledger_source(
    ledger_csv: Path, settings: Settings, dataset: ReferenceDataset
) -> CsvLedgerSource:
    return CsvLedgerSource(
        ledger_csv, loan_wallets=dataset.known_loan_wallets, rate=settings.rate_for(dataset)
    )


def _load_ledger(
    ledger_csv: Path, settings: Settings, dataset: ReferenceDataset
) -> list[Transaction]:
    source = _ledger_source(ledger_csv, settings, dataset)
    return call_with_timeout(LEDGER, source.load_transactions, settings.source_timeout)


def _fmt(value: float | None, places: int = 3) -> str:
    return "n/a" if value is None else f"{value:,.{places}f}"


def _totals_cells(t: CurrencyTotals | None) -> tuple[str, str, str]:
    if t is None:
        return ("error", "error", "-")
    return (_fmt(t.hbd), _fmt(t.hive), str(t.count))


# ---- Command handlers ---------------------------------------------------------


def cmd_verify(
    *,
    ledger_csv: Path,
    transfers_csv: Path | None,
    database_url: str | None,
    account: str | None,
    tolerance_days: int,
    adaptive: bool,
    show: int,
) -> int:
    """Verify ledger rows against the transfer log; print a summary table."""

    from .api import verify_batch

    settings, dataset = _load_context()
    try:
        transactions = _load_ledger(ledger_csv, settings, dataset)
    except SourceUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    policy: TolerancePolicy = dataset.to_tolerance_policy() if adaptive else fixed_tolerance
    batch = verify_batch(
        transactions,
        account or settings.org_account,
        tolerance_days,
        transfer_source=_transfer_source(transfers_csv, database_url, settings),
        tolerance_policy=policy,
        timeout=settings.source_timeout,
    )

    summary = Table(title=f"Verification ({len(transactions)} ledger rows)")
    summary.add_column("Status")
    summary.add_column("Count", justify="right")
    for status in VerificationStatus:
        summary.add_row(status.value, str(batch.summary.get(status.value, 0)))
    _console.print(summary)

    if show > 0:
        detail = Table(title="Unverified and discrepant rows")
        for col in ("Date", "Wallet", "HBD", "HIVE", "Status", "Detail"):
            detail.add_column(col)
        shown = 0
        for r in batch.results:
            if r.status is VerificationStatus.VERIFIED:
                continue
            tx = r.transaction
            note = r.reason or ""
            if r.detail is not None:
                note = f"date {r.detail.date_delta_days:+d}d"
                if r.detail.currency_mismatch:
                    note += f", {r.detail.currency_expected}->{r.detail.currency_actual}"
            detail.add_row(
                str(tx.date), tx.wallet, _fmt(tx.hbd), _fmt(tx.hive), r.status.value, note
            )
            shown += 1
            if shown >= show:
                break
        _console.print(detail)

    if batch.error is not None:
        print(f"Error: {batch.error}", file=sys.stderr)
        return 2
    return 0


def _direction_table(title: str, paper_label: str, d: DirectionReport) -> Table:
    t = Table(title=title)
    for col in ("Side", "HBD", "HIVE", "Count"):
        t.add_column(col, justify="right" if col != "Side" else "left")
    t.add_row("Transfer log", *_totals_cells(d.transfers))
    t.add_row(paper_label, *_totals_cells(d.records))
    for kind, totals in d.breakdown.items():
        t.add_row(f"  {kind}", *_totals_cells(totals))
    if d.difference is not None:
        t.add_row(
            "Difference",
            f"{_fmt(d.difference.hbd)} ({d.difference.hbd_percent:.2f}%)",
            f"{_fmt(d.difference.hive)} ({d.difference.hive_percent:.2f}%)",
            "",
        )
    if d.unaccounted is not None:
        t.add_row("Unaccounted", *_totals_cells(d.unaccounted.totals))
    return t


def cmd_reconcile(
    *,
    year: int,
    ledger_csv: Path,
    transfers_csv: Path | None,
    database_url: str | None,
    account: str | None,
) -> int:
    """Reconcile ledger, transfer log, and manual records for one year."""

    from .api import reconcile

    settings, dataset = _load_context()
    report = reconcile(
        ReportingPeriod.for_year(year),
        account=account or settings.org_account,
        ledger_source=_ledger_source(ledger_csv, settings, dataset),
        transfer_source=_transfer_source(transfers_csv, database_url, settings),
        manual_source=DatasetManualRecordsSource(dataset),
        timeout=settings.source_timeout,
        sample_limit=settings.sample_limit,
        conversion_rate=settings.rate_for(dataset),
    )

    _console.print(_direction_table(f"Outgoing {report.period.label}", "Ledger", report.outgoing))
    _console.print(
        _direction_table(f"Incoming {report.period.label}", "Manual records", report.incoming)
    )
    if report.net is not None:
        _console.print(f"Net flow: {_fmt(report.net.hbd)} HBD, {_fmt(report.net.hive)} HIVE")
    if report.authoritative_total is not None:
        _console.print(
            f"Outgoing HBD-eq: {_fmt(report.authoritative_total, 2)} "
            f"(rate {report.conversion_rate:g})"
        )
    for name, err in report.errors.items():
        _err_console.print(f"[red]Source {name} unavailable:[/red] {err}")
    return 0 if report.complete else 2


def cmd_map_scale(
    *,
    year: int,
    ledger_csv: Path,
    transfers_csv: Path | None,
    database_url: str | None,
    account: str | None,
    authoritative_total: float | None,
) -> int:
    """Map ledger spend to the taxonomy and scale it to the on-chain total."""

    from .api import map_and_scale, reconcile

    settings, dataset = _load_context()
    period = ReportingPeriod.for_year(year)
    try:
        transactions = [
            t for t in _load_ledger(ledger_csv, settings, dataset) if period.contains(t.date)
        ]
    except SourceUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if authoritative_total is None:
        report = reconcile(
            period,
            account=account or settings.org_account,
            ledger_source=_ledger_source(ledger_csv, settings, dataset),
            transfer_source=_transfer_source(transfers_csv, database_url, settings),
            manual_source=DatasetManualRecordsSource(dataset),
            timeout=settings.source_timeout,
            sample_limit=0,
            conversion_rate=settings.rate_for(dataset),
        )
        if report.authoritative_total is None:
            print(f"Error: transfer log unavailable: {report.errors}", file=sys.stderr)
            return 1
        authoritative_total = report.authoritative_total

    result = map_and_scale(
        transactions,
        dataset.to_taxonomy(),
        authoritative_total,
        low_coverage_threshold=settings.low_coverage_threshold,
    )

    t = Table(title=f"Category totals {period.label} (scaled x{result.scale_factor:.4f})")
    for col in ("Category", "Raw HBD-eq", "Scaled HBD-eq", "Rows"):
        t.add_column(col, justify="left" if col == "Category" else "right")
    for b in result.buckets:
        t.add_row(b.name, _fmt(b.total, 2), _fmt(b.scaled_total, 2), str(b.count))
    _console.print(t)
    _console.print(
        f"Coverage ratio: {result.coverage_ratio:.2%} of ledger spend mapped; "
        f"excluded {_fmt(result.excluded_total, 2)} HBD-eq. "
        "Scaled figures assume unmapped spend shares the mapped distribution."
    )
    return 0


def cmd_diagnose(
    *,
    ledger_csv: Path,
    transfers_csv: Path | None,
    database_url: str | None,
    account: str | None,
    tolerance_days: int,
    limit: int,
) -> int:
    """Explain not-found rows by listing nearby transfers."""

    from .api import verify_batch
    from .verification import diagnose_not_found

    settings, dataset = _load_context()
    acct = account or settings.org_account
    source = _transfer_source(transfers_csv, database_url, settings)
    try:
        transactions = _load_ledger(ledger_csv, settings, dataset)
    except SourceUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    batch = verify_batch(
        transactions, acct, tolerance_days, transfer_source=source, timeout=settings.source_timeout
    )
    if batch.error is not None:
        print(f"Error: {batch.error}", file=sys.stderr)
        return 2

    missing = [r.transaction for r in batch.results if r.status is VerificationStatus.NOT_FOUND]
    dated = [t.date for t in missing if t.date is not None]
    if not dated:
        _console.print("No not-found rows to diagnose.")
        return 0
    span = timedelta(days=DIAGNOSE_WINDOW_DAYS)
    try:
        transfers = call_with_timeout(
            TRANSFERS,
            lambda: source.fetch_transfers(acct, min(dated) - span, max(dated) + span),
            settings.source_timeout,
        )
    except SourceUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    t = Table(title="Not-found diagnosis")
    for col in ("Date", "Wallet", "Declared", "Likely cause", "Nearest"):
        t.add_column(col)
    for tx in missing[:limit]:
        d = diagnose_not_found(tx, transfers, acct, window_days=DIAGNOSE_WINDOW_DAYS)
        nearest = d.same_recipient[0] if d.same_recipient else (
            d.same_amount_other_recipient[0] if d.same_amount_other_recipient else None
        )
        near_txt = (
            f"{nearest.transfer.recipient} {nearest.transfer.amount:.3f} "
            f"{nearest.transfer.currency} ({nearest.date_delta_days:+d}d)"
            if nearest
            else "-"
        )
        t.add_row(
            str(tx.date), tx.wallet, f"{_fmt(tx.hbd)} HBD / {_fmt(tx.hive)} HIVE", d.likely_cause, near_txt
        )
    _console.print(t)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Reconcile disbursements across the ledger CSV, the on-chain transfer log, "
        "and manual loan/refund records. Loads settings from a local .env."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
LEDGER_CSV_OPTION: OptionInfo = typer.Option(
    ...,
    "--ledger-csv",
    help="Path to the ledger CSV export (canonical headers).",
    dir_okay=False,
    file_okay=True,
    exists=True,
    readable=True,
)
TRANSFERS_CSV_OPTION: OptionInfo = typer.Option(
    None,
    "--transfers-csv",
    help="Read transfers from a CSV export instead of the database.",
    dir_okay=False,
    file_okay=True,
    exists=True,
    readable=True,
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
ACCOUNT_OPTION: OptionInfo = typer.Option(
    None, "--account", help="Organization account (defaults to RECON_ORG_ACCOUNT)."
)
YEAR_OPTION: OptionInfo = typer.Option(2025, "--year", help="Reporting year.")


@app.command("verify")
def verify_cmd(
    ledger_csv: Annotated[Path, LEDGER_CSV_OPTION],
    *,
    transfers_csv: Path | None = TRANSFERS_CSV_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    account: str | None = ACCOUNT_OPTION,
    tolerance_days: int = typer.Option(1, min=0, help="Base date window in days."),
    adaptive: bool = typer.Option(
        False, help="Use the dataset's per-period windows instead of a fixed window."
    ),
    show: int = typer.Option(20, min=0, help="Rows to list that did not verify."),
) -> None:
    """Verify ledger rows against on-chain transfers."""

    raise typer.Exit(
        cmd_verify(
            ledger_csv=ledger_csv,
            transfers_csv=transfers_csv,
            database_url=database_url,
            account=account,
            tolerance_days=tolerance_days,
            adaptive=adaptive,
            show=show,
        )
    )


@app.command("reconcile")
def reconcile_cmd(
    ledger_csv: Annotated[Path, LEDGER_CSV_OPTION],
    *,
    transfers_csv: Path | None = TRANSFERS_CSV_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    account: str | None = ACCOUNT_OPTION,
    year: int = YEAR_OPTION,
) -> None:
    """Cross-check totals and list unaccounted transfers for a year."""

    raise typer.Exit(
        cmd_reconcile(
            year=year,
            ledger_csv=ledger_csv,
            transfers_csv=transfers_csv,
            database_url=database_url,
            account=account,
        )
    )


@app.command("map-scale")
def map_scale_cmd(
    ledger_csv: Annotated[Path, LEDGER_CSV_OPTION],
    *,
    transfers_csv: Path | None = TRANSFERS_CSV_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    account: str | None = ACCOUNT_OPTION,
    year: int = YEAR_OPTION,
    authoritative_total: float | None = typer.Option(
        None, help="Trusted total in HBD-equivalent; defaults to the on-chain outgoing total."
    ),
) -> None:
    """Map spend to categories and scale to an authoritative total."""

    raise typer.Exit(
        cmd_map_scale(
            year=year,
            ledger_csv=ledger_csv,
            transfers_csv=transfers_csv,
            database_url=database_url,
            account=account,
            authoritative_total=authoritative_total,
        )
    )


@app.command("diagnose")
def diagnose_cmd(
    ledger_csv: Annotated[Path, LEDGER_CSV_OPTION],
    *,
    transfers_csv: Path | None = TRANSFERS_CSV_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    account: str | None = ACCOUNT_OPTION,
    tolerance_days: int = typer.Option(1, min=0, help="Base date window in days."),
    limit: int = typer.Option(25, min=1, help="Maximum rows to diagnose."),
) -> None:
    """Show near-miss transfers for ledger rows that verified as not found."""

    raise typer.Exit(
        cmd_diagnose(
            ledger_csv=ledger_csv,
            transfers_csv=transfers_csv,
            database_url=database_url,
            account=account,
            tolerance_days=tolerance_days,
            limit=limit,
        )
    )


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps already-set environment variables.
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()

"""Cross-source reconciliation per reporting period.

For one period and one organization account the aggregator computes:

- **outgoing**: transfer-log total where the organization is sender, against
  the ledger total;
- **incoming**: transfer-log total where the organization is recipient,
  against the manual records (loans, loan refunds, event refunds);
- a difference per direction and currency, ``transfer side - paper side``,
  with a percentage relative to the transfer side;
- **unaccounted** transfers: on-chain activity with no paperwork on the same
  calendar day for the same amount (``|delta| < 0.01``) in the same currency;
- the **authoritative total**: outgoing transfers in stable units at the
  report's conversion rate, the figure category scaling is corrected against.

The unaccounted match is intentionally stricter than the verification
window: it answers "which transfers have no paperwork at all", and a wide
window would hide exactly those.

A source that cannot be loaded never reads as zero. Its name and error land
in ``ReconciliationReport.errors`` and every figure that depends on it is
``None``; the remaining sections are still filled.
"""

from __future__ import annotations

import math
import time
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .errors import SourceUnavailable
from .ledger import DEFAULT_CONVERSION_RATE
from .logging_setup import get_logger
from .models import (
    Currency,
    ManualRecord,
    ManualRecordKind,
    Transaction,
    Transfer,
    normalize_account,
)
from .pmap import p_map
from .sources import (
    LEDGER,
    MANUAL,
    TRANSFERS,
    LedgerSource,
    ManualRecordsSource,
    TransferSource,
    call_with_timeout,
)

_logger = get_logger("disbursement_recon.reconciliation")

SAME_DAY_AMOUNT_TOLERANCE = 0.01
DEFAULT_SAMPLE_LIMIT = 50

# ---------------------------------------------------------------------------
# Report shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReportingPeriod:
    """Inclusive calendar range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("period end must not precede start")

    @classmethod
    def for_year(cls, year: int) -> ReportingPeriod:
        return cls(date(year, 1, 1), date(year, 12, 31))

    def contains(self, d: date | None) -> bool:
        return d is not None and self.start <= d <= self.end

    @property
    def label(self) -> str:
        if (self.start.month, self.start.day, self.end.month, self.end.day) == (1, 1, 12, 31) and (
            self.start.year == self.end.year
        ):
            return str(self.start.year)
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True, slots=True)
class CurrencyTotals:
    hbd: float = 0.0
    hive: float = 0.0
    count: int = 0

    def amount_in(self, currency: Currency) -> float:
        return self.hbd if currency == Currency.STABLE else self.hive

    def stable_equivalent(self, rate: float) -> float:
        return self.hbd + self.hive * rate

    @classmethod
    def of_transfers(cls, transfers: Iterable[Transfer]) -> CurrencyTotals:
        hbd = hive = 0.0
        n = 0
        for t in transfers:
            if t.currency == Currency.STABLE:
                hbd += t.amount
            else:
                hive += t.amount
            n += 1
        return cls(hbd, hive, n)

    @classmethod
    def of_records(cls, records: Iterable[Transaction | ManualRecord]) -> CurrencyTotals:
        hbd = hive = 0.0
        n = 0
        for r in records:
            hbd += r.hbd
            hive += r.hive
            n += 1
        return cls(hbd, hive, n)


@dataclass(frozen=True, slots=True)
class Difference:
    """``transfer side - paper side`` per currency, plus percentages.

    Percentages divide by ``max(transfer side, 1)`` so an empty transfer side
    yields a finite figure.
    """

    hbd: float
    hive: float
    hbd_percent: float
    hive_percent: float

    @classmethod
    def between(cls, transfer_side: CurrencyTotals, paper_side: CurrencyTotals) -> Difference:
        hbd = transfer_side.hbd - paper_side.hbd
        hive = transfer_side.hive - paper_side.hive
        return cls(
            hbd=hbd,
            hive=hive,
            hbd_percent=hbd / max(transfer_side.hbd, 1.0) * 100.0,
            hive_percent=hive / max(transfer_side.hive, 1.0) * 100.0,
        )


@dataclass(frozen=True, slots=True)
class UnaccountedSet:
    """Full count and totals, plus a bounded sample of the transfers."""

    count: int
    totals: CurrencyTotals
    sample: tuple[Transfer, ...]
    sample_limit: int

    @classmethod
    def of(cls, transfers: Sequence[Transfer], sample_limit: int) -> UnaccountedSet:
        return cls(
            count=len(transfers),
            totals=CurrencyTotals.of_transfers(transfers),
            sample=tuple(transfers[:sample_limit]),
            sample_limit=sample_limit,
        )


@dataclass(frozen=True, slots=True)
class DirectionReport:
    """One direction of flow. ``None`` marks a figure whose source failed."""

    transfers: CurrencyTotals | None
    records: CurrencyTotals | None
    difference: Difference | None
    unaccounted: UnaccountedSet | None
    breakdown: dict[str, CurrencyTotals] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NetFlow:
    hbd: float
    hive: float


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    period: ReportingPeriod
    account: str
    outgoing: DirectionReport
    incoming: DirectionReport
    net: NetFlow | None
    errors: dict[str, str] = field(default_factory=dict)
    conversion_rate: float = DEFAULT_CONVERSION_RATE

    @property
    def complete(self) -> bool:
        return not self.errors

    @property
    def authoritative_total(self) -> float | None:
        """Outgoing transfer-log total in stable units (``hbd + hive * rate``).

        ``None`` when the transfer log could not be loaded.
        """

        out = self.outgoing.transfers
        return None if out is None else out.stable_equivalent(self.conversion_rate)


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


def _index_by_day(records: Iterable[Any]) -> dict[date, list[Any]]:
    out: dict[date, list[Any]] = defaultdict(list)
    for r in records:
        if r.date is not None:
            out[r.date].append(r)
    return out


def _ledger_covers(transfer: Transfer, candidates: Sequence[Transaction]) -> bool:
    for tx in candidates:
        declared = tx.amount_in(transfer.currency)
        if declared > 0 and abs(declared - transfer.amount) < SAME_DAY_AMOUNT_TOLERANCE:
            return True
    return False


def _manual_covers(transfer: Transfer, candidates: Sequence[ManualRecord]) -> bool:
    for rec in candidates:
        if rec.kind is ManualRecordKind.LOAN:
            # Loans are recorded in the stable currency only.
            if transfer.currency != Currency.STABLE:
                continue
            declared = rec.hbd
        else:
            declared = rec.amount_in(transfer.currency)
        if declared > 0 and abs(declared - transfer.amount) < SAME_DAY_AMOUNT_TOLERANCE:
            return True
    return False


def aggregate(
    period: ReportingPeriod,
    *,
    account: str,
    ledger: Sequence[Transaction] | None,
    transfers: Sequence[Transfer] | None,
    manual: Sequence[ManualRecord] | None,
    errors: Mapping[str, str] | None = None,
    sample_limit: int = DEFAULT_SAMPLE_LIMIT,
    conversion_rate: float = DEFAULT_CONVERSION_RATE,
) -> ReconciliationReport:
    """Build a report from already-loaded data.

    Pass ``None`` for a source that failed to load and record why in
    ``errors``; the report then omits the figures that depend on it.
    """

    if sample_limit < 0:
        raise ValueError("sample_limit must be >= 0")
    if not math.isfinite(conversion_rate) or conversion_rate < 0:
        raise ValueError("conversion_rate must be a finite, non-negative number")
    acct = normalize_account(account)

    ledger_in = [t for t in ledger if period.contains(t.date)] if ledger is not None else None
    manual_in = [r for r in manual if period.contains(r.date)] if manual is not None else None
    outgoing_tx: list[Transfer] | None = None
    incoming_tx: list[Transfer] | None = None
    if transfers is not None:
        in_period = [t for t in transfers if period.contains(t.day)]
        outgoing_tx = [t for t in in_period if normalize_account(t.sender) == acct]
        incoming_tx = [t for t in in_period if normalize_account(t.recipient) == acct]

    # ---- Outgoing: transfer log vs ledger ---------------------------------
    out_transfers = CurrencyTotals.of_transfers(outgoing_tx) if outgoing_tx is not None else None
    out_records = CurrencyTotals.of_records(ledger_in) if ledger_in is not None else None
    out_diff = out_unaccounted = None
    if out_transfers is not None and out_records is not None:
        assert outgoing_tx is not None and ledger_in is not None
        out_diff = Difference.between(out_transfers, out_records)
        ledger_by_day = _index_by_day(ledger_in)
        missing = [t for t in outgoing_tx if not _ledger_covers(t, ledger_by_day.get(t.day, ()))]
        out_unaccounted = UnaccountedSet.of(missing, sample_limit)

    # ---- Incoming: transfer log vs manual records -------------------------
    in_transfers = CurrencyTotals.of_transfers(incoming_tx) if incoming_tx is not None else None
    in_records = CurrencyTotals.of_records(manual_in) if manual_in is not None else None
    breakdown: dict[str, CurrencyTotals] = {}
    if manual_in is not None:
        for kind in ManualRecordKind:
            breakdown[kind.value] = CurrencyTotals.of_records(
                r for r in manual_in if r.kind is kind
            )
    in_diff = in_unaccounted = None
    if in_transfers is not None and in_records is not None:
        assert incoming_tx is not None and manual_in is not None
        in_diff = Difference.between(in_transfers, in_records)
        manual_by_day = _index_by_day(manual_in)
        missing = [t for t in incoming_tx if not _manual_covers(t, manual_by_day.get(t.day, ()))]
        in_unaccounted = UnaccountedSet.of(missing, sample_limit)

    net = None
    if in_transfers is not None and out_transfers is not None:
        net = NetFlow(
            hbd=in_transfers.hbd - out_transfers.hbd,
            hive=in_transfers.hive - out_transfers.hive,
        )

    return ReconciliationReport(
        period=period,
        account=acct,
        outgoing=DirectionReport(out_transfers, out_records, out_diff, out_unaccounted),
        incoming=DirectionReport(in_transfers, in_records, in_diff, in_unaccounted, breakdown),
        net=net,
        errors=dict(errors or {}),
        conversion_rate=conversion_rate,
    )


# ---------------------------------------------------------------------------
# Aggregator over live sources
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Loaded:
    name: str
    value: Any = None
    error: SourceUnavailable | None = None


class ReconciliationAggregator:
    """Load all three sources concurrently and aggregate them.

    Each source call is bounded by ``timeout``. A failing source is reported
    per section; it never aborts the others.
    """

    def __init__(
        self,
        ledger_source: LedgerSource,
        transfer_source: TransferSource,
        manual_source: ManualRecordsSource,
        *,
        account: str,
        timeout: float | None = None,
        sample_limit: int = DEFAULT_SAMPLE_LIMIT,
        conversion_rate: float = DEFAULT_CONVERSION_RATE,
    ) -> None:
        self._ledger = ledger_source
        self._transfers = transfer_source
        self._manual = manual_source
        self._account = normalize_account(account)
        self._timeout = timeout
        self._sample_limit = sample_limit
        self._conversion_rate = conversion_rate

    def reconcile(self, period: ReportingPeriod) -> ReconciliationReport:
        t0 = time.perf_counter()
        loaders: list[tuple[str, Callable[[], Any]]] = [
            (LEDGER, self._ledger.load_transactions),
            (
                TRANSFERS,
                lambda: self._transfers.fetch_transfers(self._account, period.start, period.end),
            ),
            (MANUAL, self._manual.load_records),
        ]

        def _load(item: tuple[str, Callable[[], Any]]) -> _Loaded:
            name, fn = item
            try:
                return _Loaded(name, value=call_with_timeout(name, fn, self._timeout))
            except SourceUnavailable as e:
                return _Loaded(name, error=e)

        loaded = {r.name: r for r in p_map(loaders, _load, concurrency=len(loaders))}
        errors: dict[str, str] = {}
        for r in loaded.values():
            if r.error is not None:
                errors[r.name] = r.error.detail
                _logger.error(
                    "reconcile:source_failed source=%s period=%s error=%s",
                    r.name,
                    period.label,
                    r.error.detail,
                )

        report = aggregate(
            period,
            account=self._account,
            ledger=loaded[LEDGER].value if loaded[LEDGER].error is None else None,
            transfers=loaded[TRANSFERS].value if loaded[TRANSFERS].error is None else None,
            manual=loaded[MANUAL].value if loaded[MANUAL].error is None else None,
            errors=errors,
            sample_limit=self._sample_limit,
            conversion_rate=self._conversion_rate,
        )
        _logger.info(
            "reconcile:done period=%s account=%s complete=%s unaccounted_out=%s "
            "unaccounted_in=%s latency_ms=%.2f",
            period.label,
            self._account,
            report.complete,
            report.outgoing.unaccounted.count if report.outgoing.unaccounted else None,
            report.incoming.unaccounted.count if report.incoming.unaccounted else None,
            (time.perf_counter() - t0) * 1000.0,
        )
        return report


__all__ = [
    "SAME_DAY_AMOUNT_TOLERANCE",
    "DEFAULT_SAMPLE_LIMIT",
    "ReportingPeriod",
    "CurrencyTotals",
    "Difference",
    "UnaccountedSet",
    "DirectionReport",
    "NetFlow",
    "ReconciliationReport",
    "aggregate",
    "ReconciliationAggregator",
]

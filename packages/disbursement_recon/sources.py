"""Collaborator contracts and concrete data sources.

The engine consumes three sources through small protocols:

- :class:`TransferSource` returns time-ordered transfers involving an account;
- :class:`LedgerSource` returns normalized, derived ledger transactions;
- :class:`ManualRecordsSource` returns the static loan/refund table.

Sources own their own parsing, connections, and retries. The engine wraps
every call in :func:`call_with_timeout`, which turns timeouts and failures
into :class:`~disbursement_recon.errors.SourceUnavailable` naming the source.
"""

from __future__ import annotations

import csv
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Protocol, TypeVar

from db.client import session_scope
from db.models.recon import RcTransfer
from sqlalchemy import or_, select

from .dataset import ReferenceDataset
from .errors import SourceUnavailable
from .ingest.adapters.ledger_csv import REQUIRED_HEADERS, to_transactions
from .ingest.adapters.transfer_csv import to_transfers
from .ledger import DEFAULT_CONVERSION_RATE
from .logging_setup import get_logger
from .models import Currency, ManualRecord, Transaction, Transfer, normalize_account
from .pmap import p_map

_logger = get_logger("disbursement_recon.sources")

T = TypeVar("T")

# Names used in errors and report sections.
TRANSFERS = "transfers"
LEDGER = "ledger"
MANUAL = "manual_records"


class TransferSource(Protocol):
    def fetch_transfers(
        self, account: str, start: date | None = None, end: date | None = None
    ) -> list[Transfer]: ...


class LedgerSource(Protocol):
    def load_transactions(self) -> list[Transaction]: ...


class ManualRecordsSource(Protocol):
    def load_records(self) -> list[ManualRecord]: ...


def call_with_timeout(source: str, fn: Callable[[], T], timeout: float | None) -> T:
    """Run ``fn`` with an optional deadline.

    Raises
    ------
    SourceUnavailable
        When ``fn`` raises or does not return within ``timeout`` seconds.
    """

    try:
        (value,) = p_map(
            [fn],
            lambda f: f(),
            concurrency=1,
            timeout=timeout if timeout and timeout > 0 else None,
        )
    except SourceUnavailable:
        raise
    except TimeoutError as e:
        _logger.warning("source:timeout source=%s timeout_s=%s", source, timeout)
        raise SourceUnavailable(source, f"timed out after {timeout}s") from e
    except Exception as e:  # noqa: BLE001
        _logger.warning("source:failed source=%s error=%s", source, e.__class__.__name__)
        raise SourceUnavailable(source, f"{e.__class__.__name__}: {e}") from e
    return value


def _filter_transfers(
    transfers: Iterable[Transfer], account: str, start: date | None, end: date | None
) -> list[Transfer]:
    acct = normalize_account(account)
    out = [
        t
        for t in transfers
        if acct in (normalize_account(t.sender), normalize_account(t.recipient))
        and (start is None or t.day >= start)
        and (end is None or t.day <= end)
    ]
    out.sort(key=lambda t: t.timestamp)
    return out


# ---------------------------------------------------------------------------
# Transfer sources
# ---------------------------------------------------------------------------


class SqlTransferSource:
    """Reads the ``rc_transfers`` mirror through SQLAlchemy."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def fetch_transfers(
        self, account: str, start: date | None = None, end: date | None = None
    ) -> list[Transfer]:
        acct = normalize_account(account)
        stmt = select(RcTransfer).where(
            or_(RcTransfer.from_account == acct, RcTransfer.to_account == acct)
        )
        if start is not None:
            stmt = stmt.where(RcTransfer.timestamp >= datetime.combine(start, time.min))
        if end is not None:
            stmt = stmt.where(
                RcTransfer.timestamp < datetime.combine(end + timedelta(days=1), time.min)
            )
        stmt = stmt.order_by(RcTransfer.timestamp, RcTransfer.id)

        with session_scope(database_url=self._database_url) as session:
            rows = session.execute(stmt).scalars().all()
            out = [
                Transfer(
                    id=row.trx_id,
                    timestamp=row.timestamp,
                    sender=row.from_account,
                    recipient=row.to_account,
                    amount=float(row.amount),
                    currency=Currency(row.currency),
                    memo=row.memo or "",
                )
                for row in rows
            ]
        _logger.info(
            "source:transfers_fetched account=%s start=%s end=%s count=%d",
            acct,
            start,
            end,
            len(out),
        )
        return out


class CsvTransferSource:
    """Reads a transfer-log CSV export. The file is re-read on every fetch."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def fetch_transfers(
        self, account: str, start: date | None = None, end: date | None = None
    ) -> list[Transfer]:
        with self._path.open("r", encoding="utf-8", newline="") as f:
            transfers = list(to_transfers(csv.DictReader(f)))
        return _filter_transfers(transfers, account, start, end)


class StaticTransferSource:
    """In-memory transfers, filtered like the SQL source."""

    def __init__(self, transfers: Sequence[Transfer]) -> None:
        self._transfers = tuple(transfers)
        self.calls = 0

    def fetch_transfers(
        self, account: str, start: date | None = None, end: date | None = None
    ) -> list[Transfer]:
        self.calls += 1
        return _filter_transfers(self._transfers, account, start, end)


# ---------------------------------------------------------------------------
# Ledger sources
# ---------------------------------------------------------------------------


class CsvLedgerSource:
    """Reads the canonical-header ledger CSV and derives flags/totals."""

    def __init__(
        self,
        path: Path,
        *,
        loan_wallets: Iterable[str] = (),
        rate: float = DEFAULT_CONVERSION_RATE,
    ) -> None:
        self._path = Path(path)
        self._loan_wallets = tuple(loan_wallets)
        self._rate = rate

    def load_transactions(self) -> list[Transaction]:
        with self._path.open("r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            headers = reader.fieldnames
            if headers is None:
                raise csv.Error(f"CSV appears to have no header row: {self._path}")
            missing = sorted(h for h in REQUIRED_HEADERS if h not in headers)
            if missing:
                raise csv.Error("ledger CSV header mismatch. Missing columns: " + ", ".join(missing))
            txs = list(to_transactions(reader, loan_wallets=self._loan_wallets, rate=self._rate))
        _logger.info("source:ledger_loaded path=%s count=%d", self._path, len(txs))
        return txs


class StaticLedgerSource:
    def __init__(self, transactions: Sequence[Transaction]) -> None:
        self._transactions = tuple(transactions)

    def load_transactions(self) -> list[Transaction]:
        return list(self._transactions)


# ---------------------------------------------------------------------------
# Manual record sources
# ---------------------------------------------------------------------------


class DatasetManualRecordsSource:
    """Manual loans/refunds from the reference dataset."""

    def __init__(self, dataset: ReferenceDataset) -> None:
        self._dataset = dataset

    def load_records(self) -> list[ManualRecord]:
        return self._dataset.to_manual_records()


class StaticManualRecordsSource:
    def __init__(self, records: Sequence[ManualRecord]) -> None:
        self._records = tuple(records)

    def load_records(self) -> list[ManualRecord]:
        return list(self._records)


__all__ = [
    "TRANSFERS",
    "LEDGER",
    "MANUAL",
    "TransferSource",
    "LedgerSource",
    "ManualRecordsSource",
    "call_with_timeout",
    "SqlTransferSource",
    "CsvTransferSource",
    "StaticTransferSource",
    "CsvLedgerSource",
    "StaticLedgerSource",
    "DatasetManualRecordsSource",
    "StaticManualRecordsSource",
]

from __future__ import annotations

import csv
from datetime import date, datetime
from pathlib import Path

import pytest

from disbursement_recon.errors import SourceUnavailable
from disbursement_recon.ingest.adapters.ledger_csv import LEDGER_HEADERS, to_transactions
from disbursement_recon.ingest.adapters.transfer_csv import TRANSFER_HEADERS, to_transfers
from disbursement_recon.models import Currency
from disbursement_recon.sources import (
    LEDGER,
    CsvLedgerSource,
    CsvTransferSource,
    call_with_timeout,
)


def _ledger_row(**overrides: str) -> dict[str, str]:
    row = dict.fromkeys(LEDGER_HEADERS, "")
    row.update(overrides)
    return row


def _write_csv(path: Path, headers: tuple[str, ...] | list[str], rows: list[dict[str, str]]) -> Path:
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=list(headers))
        w.writeheader()
        w.writerows(rows)
    return path


# ---- Ledger rows -----------------------------------------------------------------


def test_ledger_rows_are_parsed_and_derived() -> None:
    rows = [
        _ledger_row(
            Wallet=" @Alice ",
            Date="24/01/2025",
            HBD="1,200.50",
            HIVE="",
            **{"Event/Project": "Hive  Fest", "Category": "Marketing"},
        ),
        _ledger_row(Wallet="bob", Date="2025-02-01", HBD="0", HIVE="100", **{"Hive To HBD": "25"}),
    ]
    alice, bob = list(to_transactions(rows))
    assert alice.wallet == "@Alice"
    assert alice.recipient == "alice"
    assert alice.date == date(2025, 1, 24)
    assert alice.hbd == 1200.5
    assert alice.event_project == "Hive Fest"
    assert alice.total_spend == pytest.approx(1200.5)
    assert bob.hive_to_hbd == 25.0
    assert bob.total_spend == pytest.approx(25.0)


def test_ledger_skips_totals_blanks_zero_and_bad_dates() -> None:
    rows = [
        _ledger_row(Wallet="", Date="24/01/2025", HBD="1"),
        _ledger_row(Wallet="Total", Date="", HBD="999"),
        _ledger_row(Wallet="carol", Date="Total", HBD="5"),
        _ledger_row(Wallet="dave", Date="24/01/2025", HBD="0", HIVE="-"),
        _ledger_row(Wallet="erin", Date="31/02/2025", HBD="3"),
        _ledger_row(Wallet="frank", Date="24/01/2025", HBD="4"),
    ]
    assert [t.wallet for t in to_transactions(rows)] == ["frank"]


def test_ledger_keeps_wallets_that_merely_contain_total() -> None:
    rows = [
        _ledger_row(Wallet="totalhive", Date="05/04/2025", HBD="100", HIVE="0"),
        _ledger_row(Wallet="bitotalizer", Date="05/04/2025", HBD="5"),
        _ledger_row(Wallet="HBD Total", Date="05/04/2025", HBD="105"),
        _ledger_row(Wallet="Total March", Date="31/03/2025", HBD="105"),
    ]
    assert [t.wallet for t in to_transactions(rows)] == ["totalhive", "bitotalizer"]


@pytest.mark.parametrize(
    ("cell", "expected"),
    [
        ("300,00", 300.0),
        ("1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("8309,24", 8309.24),
        ("1,234,567", 1234567.0),
        ("42", 42.0),
    ],
)
def test_ledger_amounts_accept_us_and_european_notation(cell: str, expected: float) -> None:
    (row,) = to_transactions([_ledger_row(Wallet="alice", Date="24/01/2025", HBD=cell)])
    assert row.hbd == pytest.approx(expected)


def test_ledger_skips_rows_with_unreadable_amounts() -> None:
    rows = [
        _ledger_row(Wallet="alice", Date="24/01/2025", HBD="n/a"),
        _ledger_row(Wallet="bob", Date="24/01/2025", HBD="7"),
    ]
    assert [t.wallet for t in to_transactions(rows)] == ["bob"]


def test_ledger_flags_use_loan_wallets() -> None:
    rows = [_ledger_row(Wallet="blocktrades", Date="24/01/2025", HBD="13000")]
    (row,) = to_transactions(rows, loan_wallets=["blocktrades"])
    assert row.is_loan


def test_csv_ledger_source_reads_file(tmp_path: Path) -> None:
    path = _write_csv(
        tmp_path / "ledger.csv",
        LEDGER_HEADERS,
        [_ledger_row(Wallet="alice", Date="24/01/2025", HBD="10", HIVE="10")],
    )
    (row,) = CsvLedgerSource(path, rate=0.5).load_transactions()
    assert row.total_spend == pytest.approx(15.0)


def test_csv_ledger_source_missing_headers_is_source_unavailable(tmp_path: Path) -> None:
    path = _write_csv(tmp_path / "ledger.csv", ["Wallet", "Date"], [{"Wallet": "a", "Date": "1/1/2025"}])
    source = CsvLedgerSource(path)
    with pytest.raises(csv.Error, match="HBD, HIVE"):
        source.load_transactions()
    with pytest.raises(SourceUnavailable) as exc:
        call_with_timeout(LEDGER, source.load_transactions, 5)
    assert exc.value.source == "ledger"


# ---- Transfer rows ---------------------------------------------------------------


def _transfer_row(**overrides: str) -> dict[str, str]:
    row = {
        "Transaction ID": "abc",
        "Timestamp": "2025-03-01T10:00:00",
        "From Account": "ValuePlan",
        "To Account": "Alice",
        "Amount": "12.500 HBD",
        "Currency": "HBD",
        "Amount Value": "12.5",
        "Memo": " thanks ",
    }
    row.update(overrides)
    return row


def test_transfer_rows() -> None:
    (t,) = to_transfers([_transfer_row()])
    assert t.id == "abc"
    assert t.timestamp == datetime(2025, 3, 1, 10, 0)
    assert (t.sender, t.recipient) == ("valueplan", "alice")
    assert (t.amount, t.currency, t.memo) == (12.5, Currency.STABLE, "thanks")


def test_transfer_amount_falls_back_to_display_and_timezone_is_dropped() -> None:
    (t,) = to_transfers(
        [_transfer_row(**{"Amount Value": "", "Amount": "1,000.000 HIVE", "Currency": "hive"})]
    )
    assert t.amount == 1000.0 and t.currency is Currency.VOLATILE
    (u,) = to_transfers([_transfer_row(Timestamp="2025-03-01T10:00:00+00:00")])
    assert u.timestamp.tzinfo is None


@pytest.mark.parametrize(
    "bad",
    [{"Currency": "BTC"}, {"Timestamp": "yesterday"}, {"Amount Value": "", "Amount": "lots"}],
)
def test_malformed_transfer_rows_raise(bad: dict[str, str]) -> None:
    with pytest.raises(ValueError, match="row 0"):
        list(to_transfers([_transfer_row(**bad)]))


def test_csv_transfer_source_filters_by_account_and_dates(tmp_path: Path) -> None:
    path = _write_csv(
        tmp_path / "transfers.csv",
        TRANSFER_HEADERS,
        [
            _transfer_row(**{"Transaction ID": "2", "Timestamp": "2025-03-05T00:00:00"}),
            _transfer_row(**{"Transaction ID": "1", "Timestamp": "2025-03-01T00:00:00"}),
            _transfer_row(**{"Transaction ID": "3", "From Account": "x", "To Account": "y"}),
            _transfer_row(**{"Transaction ID": "4", "Timestamp": "2025-04-01T00:00:00"}),
        ],
    )
    got = CsvTransferSource(path).fetch_transfers("valueplan", date(2025, 3, 1), date(2025, 3, 31))
    assert [t.id for t in got] == ["1", "2"]

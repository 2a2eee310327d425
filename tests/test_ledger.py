from __future__ import annotations

from datetime import date

import pytest

from disbursement_recon.ledger import (
    derive,
    detect_flags,
    filter_spending,
    manual_as_transaction,
    total_spend,
)
from disbursement_recon.models import ManualRecord, ManualRecordKind, Transaction
from tests.helpers.records import tx

D = date(2025, 2, 2)


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"category": "Loan"}, (True, False, False)),
        ({"event_project": "Bridge LOAN"}, (True, False, False)),
        ({"category": "Loan Refund"}, (False, False, True)),
        ({"event_type": "refund-loan"}, (False, False, True)),
        ({"category": "Event refund"}, (False, True, False)),
        ({"category": "Marketing"}, (False, False, False)),
    ],
)
def test_detect_flags(fields, expected) -> None:
    assert detect_flags(Transaction(wallet="someone", date=D, **fields)) == expected


def test_known_loan_wallet_is_a_loan_regardless_of_text() -> None:
    row = Transaction(wallet="@GuitieParties", date=D, hbd=10.0)
    assert detect_flags(row, loan_wallets=["guitieparties"]) == (True, False, False)
    assert detect_flags(row) == (False, False, False)


def test_total_spend_uses_ledger_conversion_when_present() -> None:
    assert total_spend(Transaction("a", D, hbd=10.0, hive=100.0)) == pytest.approx(34.0)
    assert total_spend(Transaction("a", D, hbd=10.0, hive=100.0), rate=0.5) == pytest.approx(60.0)
    assert total_spend(Transaction("a", D, hbd=10.0, hive=100.0, hive_to_hbd=30.0)) == pytest.approx(40.0)


def test_derive_returns_new_record() -> None:
    raw = Transaction("a", D, hbd=1.0, category="loan")
    out = derive(raw)
    assert out is not raw
    assert out.is_loan and out.total_spend == 1.0
    assert raw.is_loan is False


def test_manual_record_as_transaction() -> None:
    rec = ManualRecord(ManualRecordKind.LOAN_REFUND, D, "alpha", hive=1000.0, description="bridge")
    row = manual_as_transaction(rec)
    assert row.is_loan_refund and not row.is_loan and not row.is_refund
    assert row.category == "Loan Refund"
    assert row.memo == "bridge"
    assert row.total_spend == pytest.approx(240.0)


def test_filter_spending_keeps_pattern_flagged_ledger_rows() -> None:
    rows = [
        tx("a", D, hbd=1.0, project="Refund bonus contest"),
        manual_as_transaction(ManualRecord(ManualRecordKind.LOAN, D, "blocktrades", hbd=5.0)),
        manual_as_transaction(ManualRecord(ManualRecordKind.EVENT_REFUND, D, "hiverun", hbd=5.0)),
        tx("b", D, hbd=1.0, category="Loan Refund"),
        tx("c", D, hbd=1.0, project="Meetup"),
    ]
    kept = filter_spending(rows)
    assert [r.wallet for r in kept] == ["a", "c"]
    assert kept[0].is_refund

"""Derivation rules for ledger transactions.

The ledger collaborator hands over raw-but-typed rows; this module derives
the loan/refund flags and the stable-equivalent total once, at ingestion, so
every downstream consumer sees the same values.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence

from .models import ManualRecord, ManualRecordKind, Transaction, normalize_account

DEFAULT_CONVERSION_RATE = 0.24

# Category labels given to manual records when they are viewed as transactions.
MANUAL_CATEGORY = {
    ManualRecordKind.LOAN: "Loan",
    ManualRecordKind.LOAN_REFUND: "Loan Refund",
    ManualRecordKind.EVENT_REFUND: "Event Refund",
}

_LOAN_REFUND_PHRASES = ("loan refund", "loan-refund", "refund loan", "refund-loan")


def detect_flags(
    transaction: Transaction, *, loan_wallets: Iterable[str] = ()
) -> tuple[bool, bool, bool]:
    """Return ``(is_loan, is_refund, is_loan_refund)`` for a ledger row.

    Text from wallet, category, project, and event type is searched together.
    A loan refund is never also a loan or a plain refund. A transfer to a known
    loan wallet counts as a loan regardless of its text.
    """

    combined = " ".join(
        (
            transaction.wallet.lower(),
            transaction.category.lower(),
            transaction.event_project.lower(),
            transaction.event_type.lower(),
        )
    )
    is_loan_refund = any(p in combined for p in _LOAN_REFUND_PHRASES)
    is_refund = not is_loan_refund and "refund" in combined
    wallets = {normalize_account(w) for w in loan_wallets}
    is_loan = not is_loan_refund and ("loan" in combined or transaction.recipient in wallets)
    return is_loan, is_refund, is_loan_refund


def total_spend(transaction: Transaction, *, rate: float = DEFAULT_CONVERSION_RATE) -> float:
    """Stable-equivalent spend: stable amount plus converted volatile amount.

    A ledger-provided conversion wins over ``rate`` when present.
    """

    if transaction.hive_to_hbd is not None:
        converted = transaction.hive_to_hbd
    else:
        converted = transaction.hive * rate if transaction.hive else 0.0
    return (transaction.hbd or 0.0) + converted


def derive(
    transaction: Transaction,
    *,
    loan_wallets: Iterable[str] = (),
    rate: float = DEFAULT_CONVERSION_RATE,
) -> Transaction:
    """Return a copy of ``transaction`` with flags and ``total_spend`` filled."""

    is_loan, is_refund, is_loan_refund = detect_flags(transaction, loan_wallets=loan_wallets)
    return dataclasses.replace(
        transaction,
        is_loan=is_loan,
        is_refund=is_refund,
        is_loan_refund=is_loan_refund,
        total_spend=total_spend(transaction, rate=rate),
    )


def manual_as_transaction(
    record: ManualRecord, *, rate: float = DEFAULT_CONVERSION_RATE
) -> Transaction:
    """View a manual record as a flagged ledger transaction."""

    tx = Transaction(
        wallet=record.counterparty,
        date=record.date,
        hbd=record.hbd,
        hive=record.hive,
        category=MANUAL_CATEGORY[record.kind],
        memo=record.description,
        is_loan=record.kind is ManualRecordKind.LOAN,
        is_refund=record.kind is ManualRecordKind.EVENT_REFUND,
        is_loan_refund=record.kind is ManualRecordKind.LOAN_REFUND,
    )
    return dataclasses.replace(tx, total_spend=total_spend(tx, rate=rate))


def filter_spending(transactions: Sequence[Transaction]) -> list[Transaction]:
    """Drop rows that are not spending: explicit loans, loan refunds, event refunds.

    Pattern-flagged ledger rows (e.g. a project named "refund bonus") are kept
    unless they carry the explicit manual category.
    """

    out: list[Transaction] = []
    for tx in transactions:
        if tx.is_loan and tx.category == MANUAL_CATEGORY[ManualRecordKind.LOAN]:
            continue
        if tx.is_loan_refund:
            continue
        if tx.is_refund and tx.category == MANUAL_CATEGORY[ManualRecordKind.EVENT_REFUND]:
            continue
        out.append(tx)
    return out


__all__ = [
    "DEFAULT_CONVERSION_RATE",
    "MANUAL_CATEGORY",
    "detect_flags",
    "total_spend",
    "derive",
    "manual_as_transaction",
    "filter_spending",
]

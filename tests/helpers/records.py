"""Small builders for engine records used across tests."""

from __future__ import annotations

from datetime import date, datetime, time
from itertools import count

from disbursement_recon.ledger import derive
from disbursement_recon.models import Currency, Transaction, Transfer

ORG = "valueplan"

_ids = count(1)


def tx(
    wallet: str,
    day: date | None,
    *,
    hbd: float = 0.0,
    hive: float = 0.0,
    project: str = "",
    category: str = "",
    event_type: str = "",
    loan_wallets: tuple[str, ...] = (),
) -> Transaction:
    """A derived ledger transaction."""

    return derive(
        Transaction(
            wallet=wallet,
            date=day,
            hbd=hbd,
            hive=hive,
            event_project=project,
            category=category,
            event_type=event_type,
        ),
        loan_wallets=loan_wallets,
    )


def transfer(
    recipient: str,
    day: date,
    amount: float,
    currency: Currency = Currency.STABLE,
    *,
    sender: str = ORG,
    trx_id: str | None = None,
    at: time = time(12, 0),
) -> Transfer:
    return Transfer(
        id=trx_id or f"trx-{next(_ids):05d}",
        timestamp=datetime.combine(day, at),
        sender=sender,
        recipient=recipient,
        amount=amount,
        currency=currency,
    )

"""Records and result types for ``disbursement_recon``.

Three independently maintained sources feed the engine:

- the **ledger** (human-edited spreadsheet export) yields :class:`Transaction`
  records, one per declared disbursement;
- the **transfer log** (on-chain, immutable) yields :class:`Transfer` records
  and is treated as ground truth for amount and date;
- the **manual records** table yields :class:`ManualRecord` entries for loans
  and refunds that never appear in the ledger.

Every record is a frozen dataclass. Derived fields on ``Transaction`` (flags
and stable-equivalent total) are computed once by :mod:`.ledger` at ingestion.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

# ---------------------------------------------------------------------------
# Currencies and account names
# ---------------------------------------------------------------------------


class Currency(StrEnum):
    """The two units tracked on every record."""

    STABLE = "HBD"
    VOLATILE = "HIVE"

    @property
    def other(self) -> Currency:
        return Currency.VOLATILE if self == Currency.STABLE else Currency.STABLE


def normalize_account(name: str | None) -> str:
    """Return the canonical account id: lower-cased, ``@`` removed, trimmed."""

    return (name or "").lower().replace("@", "").strip()


# ---------------------------------------------------------------------------
# Source records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A ledger row declaring one disbursement.

    Attributes
    ----------
    wallet:
        Recipient account as typed in the ledger (may carry ``@`` or odd case);
        use :attr:`recipient` for comparisons.
    date:
        Parsed transaction date, or ``None`` when the ledger cell was blank.
    hbd, hive:
        Declared amounts in the stable and volatile currency.
    hive_to_hbd:
        Optional pre-computed volatile-to-stable conversion from the ledger.
    event_project, category, country, theme, event_type:
        Free-text tags used by the category mapper.
    is_loan, is_refund, is_loan_refund, total_spend:
        Derived by :func:`disbursement_recon.ledger.derive`.
    """

    wallet: str
    date: date | None
    hbd: float = 0.0
    hive: float = 0.0
    hive_to_hbd: float | None = None
    event_project: str = ""
    category: str = ""
    country: str = ""
    theme: str = ""
    event_type: str = ""
    memo: str = ""
    is_loan: bool = False
    is_refund: bool = False
    is_loan_refund: bool = False
    total_spend: float = 0.0

    @property
    def recipient(self) -> str:
        return normalize_account(self.wallet)

    @property
    def is_flagged(self) -> bool:
        """True for loans and refunds, which reconcile outside verification."""
        return self.is_loan or self.is_refund or self.is_loan_refund

    def amount_in(self, currency: Currency) -> float:
        return self.hbd if currency == Currency.STABLE else self.hive


@dataclass(frozen=True, slots=True)
class Transfer:
    """An on-chain transfer. Amount and timestamp are authoritative."""

    id: str
    timestamp: datetime
    sender: str
    recipient: str
    amount: float
    currency: Currency
    memo: str = ""

    @property
    def day(self) -> date:
        return self.timestamp.date()


class ManualRecordKind(StrEnum):
    LOAN = "loan"
    LOAN_REFUND = "loan_refund"
    EVENT_REFUND = "event_refund"


@dataclass(frozen=True, slots=True)
class ManualRecord:
    """A hand-curated loan or refund. Static reference data."""

    kind: ManualRecordKind
    date: date
    counterparty: str
    hbd: float = 0.0
    hive: float = 0.0
    description: str = ""

    def amount_in(self, currency: Currency) -> float:
        return self.hbd if currency == Currency.STABLE else self.hive


# ---------------------------------------------------------------------------
# Verification results
# ---------------------------------------------------------------------------


class VerificationStatus(StrEnum):
    VERIFIED = "verified"
    DISCREPANCY = "discrepancy"
    NOT_FOUND = "not_found"
    UNVERIFIED = "unverified"


@dataclass(frozen=True, slots=True)
class Discrepancy:
    """Differences between a ledger row and its matched transfer.

    ``date_delta_days`` is signed (transfer day minus ledger day).
    ``currency_expected``/``currency_actual`` are set only on a currency
    mismatch.
    """

    amount_delta: float = 0.0
    date_delta_days: int = 0
    currency_expected: Currency | None = None
    currency_actual: Currency | None = None

    @property
    def currency_mismatch(self) -> bool:
        return self.currency_expected is not None and self.currency_expected != self.currency_actual


@dataclass(frozen=True, slots=True)
class VerificationResult:
    transaction: Transaction
    status: VerificationStatus
    transfer: Transfer | None = None
    detail: Discrepancy | None = None
    reason: str | None = None

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED


# ---------------------------------------------------------------------------
# Category mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaxonomyEntry:
    """One bucket of the category taxonomy and its canonical project names."""

    name: str
    projects: tuple[str, ...] = ()


type Taxonomy = tuple[TaxonomyEntry, ...]


@dataclass(frozen=True, slots=True)
class CategoryBucket:
    """Totals for one taxonomy entry.

    The ``scaled_*`` fields stay ``None`` until
    :func:`disbursement_recon.scaling.scale` fills them.
    """

    name: str
    aliases: tuple[str, ...] = ()
    hbd: float = 0.0
    hive: float = 0.0
    total: float = 0.0
    count: int = 0
    scaled_hbd: float | None = None
    scaled_hive: float | None = None
    scaled_total: float | None = None


__all__ = [
    "Currency",
    "normalize_account",
    "Transaction",
    "Transfer",
    "ManualRecordKind",
    "ManualRecord",
    "VerificationStatus",
    "Discrepancy",
    "VerificationResult",
    "TaxonomyEntry",
    "Taxonomy",
    "CategoryBucket",
]

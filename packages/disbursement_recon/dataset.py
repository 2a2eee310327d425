"""Versioned reference dataset: taxonomy, manual records, and loan wallets.

Everything that is data rather than logic lives in one JSON document
(``data/reference_data.v1.json`` by default) and is validated with pydantic
when loaded. Load it once at startup with :func:`load_dataset`; the result is
cached per path.

Manual-record dates keep the day-first strings the curators typed
(``"24/01/2025"``) and are parsed through :func:`disbursement_recon.dates.parse_date`
so the same rules apply as for ledger rows. The loan-wallet list is kept
verbatim, including its known misspelling.
"""

from __future__ import annotations

import functools
from datetime import date
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

from .dates import parse_date
from .logging_setup import get_logger
from .matching import PeriodTolerancePolicy, TolerancePeriod
from .models import ManualRecord, ManualRecordKind, Taxonomy, TaxonomyEntry

_logger = get_logger("disbursement_recon.dataset")

SUPPORTED_VERSION = 1
DEFAULT_DATASET_PATH = Path(__file__).resolve().parent / "data" / "reference_data.v1.json"


class TolerancePeriodModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")
    start: date
    end: date
    days: int

    @field_validator("days")
    @classmethod
    def _days_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("days must be >= 0")
        return v


class ToleranceModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")
    floor_days: int = 0
    periods: list[TolerancePeriodModel] = []


class TaxonomyEntryModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid", str_strip_whitespace=True)
    name: str
    projects: list[str]

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("taxonomy entry name must be non-empty")
        return v


class ManualRecordModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")
    date: str
    hbd: float = 0.0
    hive: float = 0.0
    counterparty: str
    description: str = ""

    @field_validator("date")
    @classmethod
    def _date_parseable(cls, v: str) -> str:
        # DateParseError is a ValueError, surfaced as a ValidationError.
        parse_date(v)
        return v


class ReferenceDataset(BaseModel):
    """Top-level schema for the reference dataset JSON file."""

    model_config = ConfigDict(strict=True, extra="forbid")

    version: int
    conversion_rate: float
    known_loan_wallets: list[str]
    tolerance: ToleranceModel
    taxonomy: list[TaxonomyEntryModel]
    loans: list[ManualRecordModel] = []
    loan_refunds: list[ManualRecordModel] = []
    event_refunds: list[ManualRecordModel] = []

    @field_validator("version")
    @classmethod
    def _supported_version(cls, v: int) -> int:
        if v != SUPPORTED_VERSION:
            raise ValueError(f"unsupported dataset version {v} (expected {SUPPORTED_VERSION})")
        return v

    # ---- Domain views -----------------------------------------------------

    def to_taxonomy(self) -> Taxonomy:
        return tuple(TaxonomyEntry(name=e.name, projects=tuple(e.projects)) for e in self.taxonomy)

    def to_tolerance_policy(self) -> PeriodTolerancePolicy:
        return PeriodTolerancePolicy(
            periods=tuple(
                TolerancePeriod(start=p.start, end=p.end, days=p.days)
                for p in self.tolerance.periods
            ),
            floor_days=self.tolerance.floor_days,
        )

    def to_manual_records(self) -> list[ManualRecord]:
        out: list[ManualRecord] = []
        for kind, rows in (
            (ManualRecordKind.LOAN, self.loans),
            (ManualRecordKind.LOAN_REFUND, self.loan_refunds),
            (ManualRecordKind.EVENT_REFUND, self.event_refunds),
        ):
            for r in rows:
                out.append(
                    ManualRecord(
                        kind=kind,
                        date=parse_date(r.date),
                        counterparty=r.counterparty,
                        hbd=r.hbd,
                        hive=r.hive,
                        description=r.description,
                    )
                )
        return out


@functools.cache
def _load_cached(path: Path) -> ReferenceDataset:
    dataset = ReferenceDataset.model_validate_json(path.read_text(encoding="utf-8"))
    _logger.info(
        "dataset:loaded path=%s version=%d taxonomy=%d manual_records=%d",
        path,
        dataset.version,
        len(dataset.taxonomy),
        len(dataset.loans) + len(dataset.loan_refunds) + len(dataset.event_refunds),
    )
    return dataset


def load_dataset(path: Path | str | None = None) -> ReferenceDataset:
    """Load and validate the reference dataset (cached per resolved path).

    Raises ``pydantic.ValidationError`` on schema violations and ``OSError``
    when the file cannot be read.
    """

    resolved = Path(path).resolve() if path is not None else DEFAULT_DATASET_PATH
    return _load_cached(resolved)


__all__ = [
    "SUPPORTED_VERSION",
    "DEFAULT_DATASET_PATH",
    "ReferenceDataset",
    "load_dataset",
]

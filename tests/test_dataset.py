from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest
from pydantic import ValidationError

from disbursement_recon.categories import ADOPTION, CONFERENCES, ECOSYSTEM_MARKETING, SOCIAL_IMPACT
from disbursement_recon.dataset import DEFAULT_DATASET_PATH, ReferenceDataset, load_dataset
from disbursement_recon.models import ManualRecordKind


@pytest.fixture(scope="module")
def dataset() -> ReferenceDataset:
    return load_dataset()


def test_packaged_dataset_loads_and_is_cached(dataset) -> None:
    assert dataset.version == 1
    assert load_dataset() is dataset
    assert load_dataset(DEFAULT_DATASET_PATH) is dataset


def test_loan_wallets_kept_verbatim(dataset) -> None:
    assert dataset.known_loan_wallets == ["guitieparties", "blocktrades", "alpha"]
    assert dataset.conversion_rate == 0.24


def test_taxonomy_buckets(dataset) -> None:
    taxonomy = dataset.to_taxonomy()
    assert [e.name for e in taxonomy] == [ECOSYSTEM_MARKETING, SOCIAL_IMPACT, ADOPTION, CONFERENCES]
    by_name = {e.name: e for e in taxonomy}
    assert "HiveFest" in by_name[ECOSYSTEM_MARKETING].projects
    assert "Wrestlefest" in by_name[SOCIAL_IMPACT].projects
    assert by_name[ADOPTION].projects == ("Hive B2B", "Workshops")


def test_manual_records(dataset) -> None:
    records = dataset.to_manual_records()
    kinds = [r.kind for r in records]
    assert kinds.count(ManualRecordKind.LOAN) == 2
    assert kinds.count(ManualRecordKind.LOAN_REFUND) == 2
    assert kinds.count(ManualRecordKind.EVENT_REFUND) == 21

    first_loan = records[0]
    assert (first_loan.date, first_loan.counterparty, first_loan.hbd) == (
        date(2025, 1, 24),
        "blocktrades",
        13000.0,
    )
    alpha_refund = next(r for r in records if r.kind is ManualRecordKind.LOAN_REFUND and r.counterparty == "alpha")
    assert alpha_refund.hive == 91325.0
    assert alpha_refund.date == date(2025, 7, 8)


def test_tolerance_policy(dataset) -> None:
    policy = dataset.to_tolerance_policy()
    assert policy(date(2025, 2, 1), 1) == 14
    assert policy(date(2025, 3, 1), 1) == 7
    assert policy(date(2024, 11, 1), 1) == 3


def _write(tmp_path: Path, payload: dict) -> Path:
    p = tmp_path / "ds.json"
    p.write_text(json.dumps(payload), encoding="utf-8")
    return p


def _minimal() -> dict:
    return {
        "version": 1,
        "conversion_rate": 0.3,
        "known_loan_wallets": [],
        "tolerance": {"floor_days": 0, "periods": []},
        "taxonomy": [{"name": "Events", "projects": ["Meetup"]}],
    }


def test_custom_dataset_path(tmp_path: Path) -> None:
    ds = load_dataset(_write(tmp_path, _minimal()))
    assert ds.conversion_rate == 0.3
    assert ds.to_manual_records() == []


@pytest.mark.parametrize(
    "patch",
    [
        {"version": 2},
        {"extra_field": True},
        {"taxonomy": [{"name": "", "projects": []}]},
        {"loans": [{"date": "31/02/2025", "counterparty": "x", "hbd": 1.0}]},
        {"tolerance": {"floor_days": 0, "periods": [{"start": "2025-01-01", "end": "2025-01-31", "days": -1}]}},
    ],
)
def test_invalid_dataset_is_rejected(tmp_path: Path, patch: dict) -> None:
    payload = _minimal() | patch
    with pytest.raises(ValidationError):
        load_dataset(_write(tmp_path, payload))

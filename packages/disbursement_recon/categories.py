"""Map free-text project/category labels onto the fixed taxonomy.

Resolution is two-phase and first-hit-wins.

Phase 1 looks at the transaction's project label and compares it with every
canonical project name in the taxonomy, one tier at a time across all
entries:

1. ``exact``: case-insensitive equality;
2. ``normalized``: equality after stripping non-alphanumerics and
   lower-casing ("Hive Fest" == "HiveFest");
3. ``contains``: either normalized string contains the other
   ("Wrestlefest Qualifier" contains "wrestlefest").

Phase 2 runs only when phase 1 finds nothing. It applies
:data:`DEFAULT_KEYWORD_RULES` in order to the category text, then falls back
to case-insensitive equality with a bucket name.

Anything still unmatched is excluded, never defaulted into an "other" bucket.
:func:`map_transactions` reports the excluded spend so mapping coverage can be
audited.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from .logging_setup import get_logger
from .models import CategoryBucket, Taxonomy, Transaction

_logger = get_logger("disbursement_recon.categories")

type MatchTier = Literal["exact", "normalized", "contains", "keyword", "bucket_name"]

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_label(label: str | None) -> str:
    """Lower-case and strip every non-alphanumeric character."""

    return _NON_ALNUM_RE.sub("", (label or "").lower())


# ---------------------------------------------------------------------------
# Keyword rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class KeywordRule:
    """Route category text containing keywords to a bucket.

    The rule hits when any of ``any_terms`` appears, or when every group in
    ``all_groups`` has at least one term present; and in either case none of
    ``exclude_terms`` appears. Matching is on lower-cased text.
    """

    category: str
    any_terms: tuple[str, ...] = ()
    all_groups: tuple[tuple[str, ...], ...] = ()
    exclude_terms: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if any(t in text for t in self.exclude_terms):
            return False
        if any(t in text for t in self.any_terms):
            return True
        return bool(self.all_groups) and all(
            any(t in text for t in group) for group in self.all_groups
        )


ECOSYSTEM_MARKETING = "Ecosystem Marketing"
SOCIAL_IMPACT = "Social Impact + Niche Promotion"
ADOPTION = "Hive and HBD Adoption"
CONFERENCES = "Conferences"

DEFAULT_KEYWORD_RULES: tuple[KeywordRule, ...] = (
    KeywordRule(ECOSYSTEM_MARKETING, any_terms=("marketing", "ecosystem")),
    KeywordRule(
        SOCIAL_IMPACT,
        any_terms=("social impact", "niche promotion"),
        all_groups=(("social",), ("impact",)),
    ),
    KeywordRule(ADOPTION, all_groups=(("hive", "hbd"), ("adoption", "adopt"))),
    KeywordRule(ADOPTION, all_groups=(("adoption",),), exclude_terms=("social",)),
    KeywordRule(CONFERENCES, any_terms=("conference", "convention")),
)


# ---------------------------------------------------------------------------
# Single-transaction mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategoryMatch:
    category: str
    tier: MatchTier
    matched: str


def match_project(label: str | None, taxonomy: Taxonomy) -> CategoryMatch | None:
    """Phase 1: resolve a project label against canonical project names."""

    raw = (label or "").strip()
    if not raw:
        return None
    lowered = raw.lower()
    for entry in taxonomy:
        for project in entry.projects:
            if project.strip().lower() == lowered:
                return CategoryMatch(entry.name, "exact", project)

    norm = normalize_label(raw)
    if not norm:
        return None
    for entry in taxonomy:
        for project in entry.projects:
            if normalize_label(project) == norm:
                return CategoryMatch(entry.name, "normalized", project)
    for entry in taxonomy:
        for project in entry.projects:
            p = normalize_label(project)
            if p and (p in norm or norm in p):
                return CategoryMatch(entry.name, "contains", project)
    return None


def match_category_text(
    text: str | None,
    taxonomy: Taxonomy,
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES,
) -> CategoryMatch | None:
    """Phase 2: keyword rules, then bucket-name equality.

    A rule that points at a bucket missing from ``taxonomy`` is skipped.
    """

    lowered = (text or "").strip().lower()
    if not lowered:
        return None
    names = {e.name for e in taxonomy}
    for rule in rules:
        if rule.category in names and rule.matches(lowered):
            return CategoryMatch(rule.category, "keyword", text or "")
    for entry in taxonomy:
        if entry.name.lower() == lowered:
            return CategoryMatch(entry.name, "bucket_name", entry.name)
    return None


def resolve_category(
    transaction: Transaction,
    taxonomy: Taxonomy,
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES,
) -> CategoryMatch | None:
    return match_project(transaction.event_project, taxonomy) or match_category_text(
        transaction.category, taxonomy, rules
    )


def map_to_category(
    transaction: Transaction,
    taxonomy: Taxonomy,
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES,
) -> str | None:
    """Return the bucket name for ``transaction``, or ``None`` when excluded."""

    m = resolve_category(transaction, taxonomy, rules)
    return m.category if m is not None else None


# ---------------------------------------------------------------------------
# Batch mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UnmappedLabel:
    label: str
    count: int
    total: float


@dataclass(frozen=True, slots=True)
class CategoryMapping:
    """Naive per-bucket sums plus the coverage bookkeeping.

    ``ledger_total`` is the stable-equivalent total over every input
    transaction; ``mapped_total`` and ``excluded_total`` partition it.
    """

    buckets: tuple[CategoryBucket, ...]
    mapped_total: float
    ledger_total: float
    excluded_total: float
    excluded_stable_total: float
    excluded_count: int
    unmapped: tuple[UnmappedLabel, ...] = field(default_factory=tuple)

    @property
    def coverage_ratio(self) -> float:
        return self.mapped_total / self.ledger_total if self.ledger_total else 0.0


def map_transactions(
    transactions: Iterable[Transaction],
    taxonomy: Taxonomy,
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES,
) -> CategoryMapping:
    """Sum every transaction into its bucket, tracking excluded spend.

    Buckets come back in taxonomy order, including empty ones. Unmapped labels
    (project label, else category, else ``"(blank)"``) are summarized by total
    spend, largest first.
    """

    acc: dict[str, list[float]] = {e.name: [0.0, 0.0, 0.0, 0] for e in taxonomy}
    ledger_total = mapped_total = 0.0
    excluded_total = excluded_stable = 0.0
    excluded_count = 0
    unmapped: dict[str, list[float]] = {}
    tiers: dict[str, int] = {}

    for tx in transactions:
        ledger_total += tx.total_spend
        m = resolve_category(tx, taxonomy, rules)
        if m is None:
            excluded_total += tx.total_spend
            excluded_stable += tx.hbd
            excluded_count += 1
            label = tx.event_project.strip() or tx.category.strip() or "(blank)"
            slot = unmapped.setdefault(label, [0, 0.0])
            slot[0] += 1
            slot[1] += tx.total_spend
            continue
        tiers[m.tier] = tiers.get(m.tier, 0) + 1
        row = acc[m.category]
        row[0] += tx.hbd
        row[1] += tx.hive
        row[2] += tx.total_spend
        row[3] += 1
        mapped_total += tx.total_spend

    buckets = tuple(
        CategoryBucket(
            name=e.name,
            aliases=e.projects,
            hbd=acc[e.name][0],
            hive=acc[e.name][1],
            total=acc[e.name][2],
            count=int(acc[e.name][3]),
        )
        for e in taxonomy
    )
    unmapped_summary = tuple(
        sorted(
            (UnmappedLabel(label, int(c), t) for label, (c, t) in unmapped.items()),
            key=lambda u: (-u.total, u.label),
        )
    )
    _logger.info(
        "categories:mapped buckets=%d mapped_total=%.3f excluded_total=%.3f "
        "excluded_count=%d tiers=%s",
        len(buckets),
        mapped_total,
        excluded_total,
        excluded_count,
        ",".join(f"{k}:{v}" for k, v in sorted(tiers.items())) or "-",
    )
    return CategoryMapping(
        buckets=buckets,
        mapped_total=mapped_total,
        ledger_total=ledger_total,
        excluded_total=excluded_total,
        excluded_stable_total=excluded_stable,
        excluded_count=excluded_count,
        unmapped=unmapped_summary,
    )


__all__ = [
    "MatchTier",
    "normalize_label",
    "KeywordRule",
    "ECOSYSTEM_MARKETING",
    "SOCIAL_IMPACT",
    "ADOPTION",
    "CONFERENCES",
    "DEFAULT_KEYWORD_RULES",
    "CategoryMatch",
    "match_project",
    "match_category_text",
    "resolve_category",
    "map_to_category",
    "UnmappedLabel",
    "CategoryMapping",
    "map_transactions",
]

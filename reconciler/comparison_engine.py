"""
Three-way AWB weight comparison.

Joins the JASTER, CIS and UNIFIKASI record lists on the AWB key and:
1. Collapses each source to one weight per key (first record wins)
2. Classifies where each key is present
3. Flags weight mismatches beyond the match tolerance
4. Flags sources holding conflicting duplicate records for a key
5. Aggregates the rows into summary statistics
"""
import logging
import math
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from config import CIS, JASTER, SHEET_NAMES, SOURCES, UNIFIKASI, WEIGHT_MATCH_THRESHOLD
from parsers.base_parser import Record

logger = logging.getLogger(__name__)

# Reporter signature: reporter(checkpoint, details)
Reporter = Callable[[str, Dict[str, Any]], None]

CHECKPOINT_PRE_UNION = "pre_union"
CHECKPOINT_POST_ROWS = "post_rows"
CHECKPOINT_POST_STATS = "post_stats"

WEIGHT_MISMATCH = "Weight mismatch"


def check_tolerance(tolerance: float) -> float:
    """
    Validate a weight match tolerance.

    Raises:
        ValueError: If the tolerance is not a positive finite number
    """
    tolerance = float(tolerance)
    if not math.isfinite(tolerance) or tolerance <= 0:
        raise ValueError(f"Tolerance must be a positive number, got {tolerance}")
    return tolerance


def missing_tag(source: str) -> str:
    """Discrepancy tag for a key absent from ``source``."""
    return f"Missing in {SHEET_NAMES[source]}"


def duplicate_tag(source: str) -> str:
    """Discrepancy tag for conflicting duplicates within ``source``."""
    return f"Duplicate in {SHEET_NAMES[source]}"


@dataclass(frozen=True)
class SourceWeights:
    """Representative weight per source; None when the key is absent."""
    jaster: Optional[float]
    cis: Optional[float]
    unifikasi: Optional[float]

    def get(self, source: str) -> Optional[float]:
        return getattr(self, source)

    def present(self) -> List[float]:
        """Non-null weights in source order (JASTER, CIS, UNIFIKASI)."""
        return [w for w in (self.jaster, self.cis, self.unifikasi) if w is not None]


@dataclass(frozen=True)
class Presence:
    """Which sources contain the key."""
    in_jaster: bool
    in_cis: bool
    in_unifikasi: bool

    @property
    def count(self) -> int:
        return sum((self.in_jaster, self.in_cis, self.in_unifikasi))

    def has(self, source: str) -> bool:
        return getattr(self, f"in_{source}")


@dataclass(frozen=True)
class DuplicateInfo:
    """Sources that hold two or more records for the key with differing weights."""
    jaster: bool = False
    cis: bool = False
    unifikasi: bool = False

    def flagged(self, source: str) -> bool:
        return getattr(self, source)


@dataclass(frozen=True)
class ComparisonRow:
    """Comparison of a single AWB across the three sources."""
    key: str
    weight_by_source: SourceWeights
    presence: Presence
    weights_match: bool
    discrepancies: Tuple[str, ...]
    duplicate_info: Optional[DuplicateInfo] = None

    @property
    def has_duplicates(self) -> bool:
        return self.duplicate_info is not None

    @property
    def jaster_weight(self) -> Optional[float]:
        return self.weight_by_source.jaster

    @property
    def cis_weight(self) -> Optional[float]:
        return self.weight_by_source.cis

    @property
    def unifikasi_weight(self) -> Optional[float]:
        return self.weight_by_source.unifikasi

    def to_dict(self) -> Dict[str, Any]:
        """Convert row to a JSON-compatible dictionary."""
        return {
            'key': self.key,
            'weight_by_source': asdict(self.weight_by_source),
            'presence': asdict(self.presence),
            'weights_match': self.weights_match,
            'discrepancies': list(self.discrepancies),
            'has_duplicates': self.has_duplicates,
            'duplicate_info': asdict(self.duplicate_info) if self.duplicate_info else None,
        }


@dataclass(frozen=True)
class ComparisonStats:
    """Aggregate counters over all comparison rows."""
    total_unique_awbs: int = 0
    in_all_three: int = 0
    in_jaster_only: int = 0
    in_cis_only: int = 0
    in_unifikasi_only: int = 0
    in_jaster_and_cis: int = 0
    in_jaster_and_unifikasi: int = 0
    in_cis_and_unifikasi: int = 0
    perfect_matches: int = 0
    weight_mismatches: int = 0

    def percentage(self, count: int) -> float:
        """
        Express ``count`` as a percentage of all unique AWBs.

        Returns 0.0 when there are no AWBs at all.
        """
        if self.total_unique_awbs == 0:
            return 0.0
        return count / self.total_unique_awbs * 100

    @property
    def single_source_count(self) -> int:
        return self.in_jaster_only + self.in_cis_only + self.in_unifikasi_only

    @property
    def perfect_match_rate(self) -> float:
        return self.percentage(self.perfect_matches)

    @property
    def mismatch_rate(self) -> float:
        return self.percentage(self.weight_mismatches)

    @property
    def single_source_rate(self) -> float:
        return self.percentage(self.single_source_count)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class ComparisonResult:
    """Complete output of one comparison."""
    rows: Tuple[ComparisonRow, ...]
    stats: ComparisonStats
    generated_at: datetime

    def rows_with_issues(self) -> List[ComparisonRow]:
        """Rows carrying at least one discrepancy tag."""
        return [row for row in self.rows if row.discrepancies]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rows': [row.to_dict() for row in self.rows],
            'stats': self.stats.to_dict(),
            'generated_at': self.generated_at.isoformat(),
        }


class _SourceIndex:
    """First-wins lookup over one source, keeping every raw weight per key."""

    def __init__(self, records: Iterable[Record]):
        self.lookup: Dict[str, float] = {}
        self.raw: Dict[str, List[float]] = {}
        self.record_count = 0

        for key, weight in records:
            self.record_count += 1
            if key not in self.lookup:
                self.lookup[key] = weight
            self.raw.setdefault(key, []).append(weight)

    def has_conflicting_duplicates(self, key: str) -> bool:
        weights = self.raw.get(key, [])
        return len(weights) >= 2 and len(set(weights)) > 1


class ComparisonEngine:
    """
    Reconciles AWB weights across the JASTER, CIS and UNIFIKASI sources.

    Every call to :meth:`compare` works on fresh state, so one engine can be
    shared between threads or requests.
    """

    def __init__(
        self,
        tolerance: float = WEIGHT_MATCH_THRESHOLD,
        reporter: Optional[Reporter] = None
    ):
        """
        Initialize the engine.

        Args:
            tolerance: Absolute difference below which two weights are equal
            reporter: Optional callback invoked as ``reporter(checkpoint, details)``
                      at the pre_union, post_rows and post_stats checkpoints

        Raises:
            ValueError: If tolerance is not a positive finite number
        """
        self.tolerance = check_tolerance(tolerance)
        self.reporter = reporter

    def compare(
        self,
        jaster: Iterable[Record],
        cis: Iterable[Record],
        unifikasi: Iterable[Record]
    ) -> ComparisonResult:
        """
        Compare the three sources.

        Args:
            jaster: JASTER records as (key, weight) pairs
            cis: CIS records as (key, weight) pairs
            unifikasi: UNIFIKASI records as (key, weight) pairs

        Returns:
            ComparisonResult with one row per distinct key and summary stats
        """
        indexes = {
            JASTER: _SourceIndex(jaster),
            CIS: _SourceIndex(cis),
            UNIFIKASI: _SourceIndex(unifikasi),
        }

        self._checkpoint(CHECKPOINT_PRE_UNION, {
            source: {
                'records': index.record_count,
                'unique_keys': len(index.lookup),
            }
            for source, index in indexes.items()
        })

        # Union in first-seen order: JASTER, then CIS, then UNIFIKASI
        all_keys: Dict[str, None] = {}
        for source in SOURCES:
            all_keys.update(dict.fromkeys(indexes[source].lookup))

        rows = tuple(self._build_row(key, indexes) for key in all_keys)
        self._checkpoint(CHECKPOINT_POST_ROWS, {'rows': len(rows)})

        stats = self._calculate_stats(rows)
        self._checkpoint(CHECKPOINT_POST_STATS, stats.to_dict())

        return ComparisonResult(
            rows=rows,
            stats=stats,
            generated_at=datetime.now(timezone.utc),
        )

    def weights_match(self, weights: List[float]) -> bool:
        """
        Check that every weight is within tolerance of the first one.

        The first weight is the pivot; this is not a max-minus-min check.
        Differences are taken on the decimal values as written, so 10.01
        against 10.0 is exactly 0.01 rather than 0.00999... in binary floats.
        """
        if len(weights) <= 1:
            return True
        tolerance = Decimal(str(self.tolerance))
        pivot = Decimal(str(weights[0]))
        return all(abs(Decimal(str(w)) - pivot) < tolerance for w in weights)

    def _build_row(self, key: str, indexes: Dict[str, _SourceIndex]) -> ComparisonRow:
        """Build the comparison row for one key."""
        weights = SourceWeights(
            jaster=indexes[JASTER].lookup.get(key),
            cis=indexes[CIS].lookup.get(key),
            unifikasi=indexes[UNIFIKASI].lookup.get(key),
        )
        presence = Presence(
            in_jaster=weights.jaster is not None,
            in_cis=weights.cis is not None,
            in_unifikasi=weights.unifikasi is not None,
        )
        weights_match = self.weights_match(weights.present())

        duplicates = {
            source: indexes[source].has_conflicting_duplicates(key)
            for source in SOURCES
        }
        duplicate_info = DuplicateInfo(**duplicates) if any(duplicates.values()) else None

        discrepancies: List[str] = []
        for source in SOURCES:
            if not presence.has(source):
                discrepancies.append(missing_tag(source))
        if not weights_match:
            discrepancies.append(WEIGHT_MISMATCH)
        for source in SOURCES:
            if duplicates[source]:
                discrepancies.append(duplicate_tag(source))

        return ComparisonRow(
            key=key,
            weight_by_source=weights,
            presence=presence,
            weights_match=weights_match,
            discrepancies=tuple(discrepancies),
            duplicate_info=duplicate_info,
        )

    def _calculate_stats(self, rows: Tuple[ComparisonRow, ...]) -> ComparisonStats:
        """Aggregate rows into summary statistics in a single pass."""
        counts = {f.name: 0 for f in fields(ComparisonStats)}
        counts['total_unique_awbs'] = len(rows)

        for row in rows:
            presence = row.presence
            present = presence.count

            if present == 3:
                counts['in_all_three'] += 1
                if row.weights_match:
                    counts['perfect_matches'] += 1
                else:
                    counts['weight_mismatches'] += 1
            elif present == 2:
                if presence.in_jaster and presence.in_cis:
                    counts['in_jaster_and_cis'] += 1
                elif presence.in_jaster and presence.in_unifikasi:
                    counts['in_jaster_and_unifikasi'] += 1
                else:
                    counts['in_cis_and_unifikasi'] += 1
                if not row.weights_match:
                    counts['weight_mismatches'] += 1
            elif present == 1:
                if presence.in_jaster:
                    counts['in_jaster_only'] += 1
                elif presence.in_cis:
                    counts['in_cis_only'] += 1
                else:
                    counts['in_unifikasi_only'] += 1

        return ComparisonStats(**counts)

    def _checkpoint(self, name: str, details: Dict[str, Any]) -> None:
        logger.debug("Comparison checkpoint %s: %s", name, details)
        if self.reporter is not None:
            self.reporter(name, details)


def compare(
    jaster: Iterable[Record],
    cis: Iterable[Record],
    unifikasi: Iterable[Record],
    tolerance: float = WEIGHT_MATCH_THRESHOLD,
    reporter: Optional[Reporter] = None
) -> ComparisonResult:
    """
    Compare three record lists with a one-off engine.

    Args:
        jaster: JASTER records
        cis: CIS records
        unifikasi: UNIFIKASI records
        tolerance: Weight match tolerance (default 0.01)
        reporter: Optional diagnostics callback

    Returns:
        ComparisonResult
    """
    engine = ComparisonEngine(tolerance=tolerance, reporter=reporter)
    return engine.compare(jaster, cis, unifikasi)

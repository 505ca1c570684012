"""
Filtering, sorting and pagination over comparison rows.

Used by the web interface and the CLI issue listing. None of this affects
the comparison itself.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Sequence

from config import DEFAULT_PAGE_SIZE, PAGE_SIZE_OPTIONS
from reconciler.comparison_engine import ComparisonRow


class FilterType(Enum):
    """Row subsets offered to the user."""
    ALL = "all"
    MISMATCHES = "mismatches"
    MISSING = "missing"
    PERFECT = "perfect"
    DUPLICATES = "duplicates"


class SortField(Enum):
    AWB = "awb"
    JASTER = "jaster"
    CIS = "cis"
    UNIFIKASI = "unifikasi"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Page:
    """One page of rows plus the bookkeeping needed to render pagers."""
    rows: List[ComparisonRow]
    page: int
    page_size: int
    total_rows: int
    total_pages: int
    start_index: int
    end_index: int


def _matches_filter(row: ComparisonRow, filter_type: FilterType) -> bool:
    weights = row.weight_by_source
    if filter_type is FilterType.MISMATCHES:
        return not row.weights_match and bool(row.discrepancies)
    if filter_type is FilterType.MISSING:
        return weights.jaster is None or weights.cis is None or weights.unifikasi is None
    if filter_type is FilterType.PERFECT:
        return row.presence.count == 3 and row.weights_match
    if filter_type is FilterType.DUPLICATES:
        return row.has_duplicates
    return True


def filter_rows(
    rows: Iterable[ComparisonRow],
    filter_type: FilterType = FilterType.ALL,
    search: str = ""
) -> List[ComparisonRow]:
    """
    Select rows by AWB search term and row subset.

    Args:
        rows: Comparison rows
        filter_type: Subset to keep
        search: Case-insensitive substring to look for in the AWB

    Returns:
        Matching rows in their original order
    """
    term = search.strip().lower()
    return [
        row for row in rows
        if (not term or term in row.key.lower()) and _matches_filter(row, filter_type)
    ]


def sort_rows(
    rows: Iterable[ComparisonRow],
    field: SortField = SortField.AWB,
    direction: SortDirection = SortDirection.ASC
) -> List[ComparisonRow]:
    """
    Sort rows by AWB (case-insensitive) or by one source's weight.

    Absent weights sort as -1, so they come first in ascending order.
    """
    reverse = direction is SortDirection.DESC

    if field is SortField.AWB:
        # Case-insensitive, ties broken by the exact key
        return sorted(rows, key=lambda row: (row.key.lower(), row.key), reverse=reverse)

    def weight_key(row: ComparisonRow) -> float:
        weight = row.weight_by_source.get(field.value)
        return -1 if weight is None else weight

    return sorted(rows, key=weight_key, reverse=reverse)


def paginate(
    rows: Sequence[ComparisonRow],
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE
) -> Page:
    """
    Slice one page out of ``rows``.

    Pages are 1-based; out-of-range page numbers are clamped.

    Raises:
        ValueError: If page_size is not one of PAGE_SIZE_OPTIONS
    """
    if page_size not in PAGE_SIZE_OPTIONS:
        raise ValueError(
            f"Invalid page size {page_size}; choose one of {PAGE_SIZE_OPTIONS}"
        )

    total_rows = len(rows)
    total_pages = math.ceil(total_rows / page_size)
    page = min(max(page, 1), max(total_pages, 1))

    start_index = (page - 1) * page_size
    end_index = min(start_index + page_size, total_rows)

    return Page(
        rows=list(rows[start_index:end_index]),
        page=page,
        page_size=page_size,
        total_rows=total_rows,
        total_pages=total_pages,
        start_index=start_index,
        end_index=end_index,
    )

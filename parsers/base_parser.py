"""
Abstract base class and shared types for source parsers.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

import pandas as pd

from config import SHEET_NAMES, SOURCES, get_column_mappings
from normalizer.weight_parser import has_valid_weight, normalize_key, parse_weight

logger = logging.getLogger(__name__)


class Record(NamedTuple):
    """One (AWB, weight) row from one source."""
    key: str
    weight: float


@dataclass
class SourceData:
    """
    Normalized records for all three sources, in input order.
    """
    jaster: List[Record] = field(default_factory=list)
    cis: List[Record] = field(default_factory=list)
    unifikasi: List[Record] = field(default_factory=list)

    def get(self, source: str) -> List[Record]:
        """Get the records for a source identifier."""
        return getattr(self, source)

    def counts(self) -> Dict[str, int]:
        """Number of records per source."""
        return {source: len(self.get(source)) for source in SOURCES}


@dataclass
class ValidationIssue:
    """
    Represents a validation issue found during parsing.
    """
    source: str
    row_numbers: List[int]
    issue_type: str
    message: str
    severity: str = "warning"  # "warning" or "error"


class ParserError(Exception):
    """Base error for source ingestion failures."""


class UnreadableFileError(ParserError):
    """The input file could not be opened or decoded."""


class MissingSheetsError(ParserError):
    """The workbook lacks one or more required source sheets."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing required sheets: {', '.join(missing)}")


class MissingColumnError(ParserError):
    """No header matched any alias for a required column."""

    def __init__(self, source: str, column: str, aliases: List[str]):
        self.source = source
        self.column = column
        self.aliases = aliases
        super().__init__(
            f"{SHEET_NAMES[source]}: no {column} column found "
            f"(expected one of: {', '.join(aliases)})"
        )


def find_column(headers: Iterable[Any], aliases: List[str]) -> Optional[Any]:
    """
    Resolve a column from an ordered list of aliases.

    For each alias in order, an exact header match wins, then a
    case-insensitive match ignoring surrounding whitespace.

    Args:
        headers: Column headers as they appear in the file
        aliases: Acceptable names, most preferred first

    Returns:
        The matching header, or None if no alias matches
    """
    headers = list(headers)
    for alias in aliases:
        if alias in headers:
            return alias

        wanted = alias.strip().lower()
        for header in headers:
            if str(header).strip().lower() == wanted:
                return header

    return None


class BaseParser(ABC):
    """
    Abstract base class for source parsers.
    """

    def __init__(self, filepath: str):
        """
        Initialize the parser with a file path.

        Args:
            filepath: Path to the source file
        """
        self.filepath = filepath
        self._data = SourceData()
        self._validation_issues: List[ValidationIssue] = []

    @abstractmethod
    def parse(self) -> SourceData:
        """
        Parse the file and return normalized records.

        Returns:
            SourceData with records for each source found
        """
        pass

    def validate(self) -> List[ValidationIssue]:
        """
        Return validation issues collected while parsing.

        Returns:
            List of ValidationIssue objects
        """
        return list(self._validation_issues)

    def _extract_records(
        self,
        df: pd.DataFrame,
        source: str,
        first_row_number: int = 2
    ) -> List[Record]:
        """
        Extract (AWB, weight) records for one source from a DataFrame.

        Rows without an AWB are skipped. A missing or unparseable weight
        becomes 0.0 and is reported as a validation issue.

        Args:
            df: DataFrame whose columns are the sheet headers
            source: Source identifier (jaster, cis, unifikasi)
            first_row_number: Spreadsheet row number of the first data row

        Returns:
            List of Record objects in sheet order
        """
        if df.empty:
            logger.warning("%s: no data rows", SHEET_NAMES[source])
            return []

        mapping = get_column_mappings()[source]
        key_col = find_column(df.columns, mapping["awb"])
        weight_col = find_column(df.columns, mapping["weight"])
        logger.debug(
            "%s columns found: %s (awb=%r, weight=%r)",
            SHEET_NAMES[source], list(df.columns), key_col, weight_col,
        )

        if key_col is None:
            raise MissingColumnError(source, "AWB", mapping["awb"])

        if weight_col is None:
            self._add_issue(
                source, [], "missing_weight_column",
                f"{SHEET_NAMES[source]}: no weight column found, all weights set to 0",
            )

        records: List[Record] = []
        for offset, (key_value, weight_value) in enumerate(zip(
            df[key_col],
            df[weight_col] if weight_col is not None else [None] * len(df),
        )):
            key = normalize_key(key_value)
            if key is None:
                continue

            row_num = first_row_number + offset
            if weight_col is not None and not has_valid_weight(weight_value):
                if pd.isna(weight_value) or not str(weight_value).strip():
                    issue_type, detail = "missing_weight", "is empty"
                else:
                    issue_type, detail = "invalid_weight", f"{weight_value!r} is not a number"
                self._add_issue(
                    source, [row_num], issue_type,
                    f"{SHEET_NAMES[source]} row {row_num}: weight {detail} for AWB {key}, using 0",
                )

            records.append(Record(key=key, weight=parse_weight(weight_value)))

        logger.info("%s: extracted %d records", SHEET_NAMES[source], len(records))
        return records

    def _add_issue(
        self,
        source: str,
        row_numbers: List[int],
        issue_type: str,
        message: str,
        severity: str = "warning"
    ) -> None:
        self._validation_issues.append(ValidationIssue(
            source=source,
            row_numbers=row_numbers,
            issue_type=issue_type,
            message=message,
            severity=severity,
        ))

    @property
    def data(self) -> SourceData:
        """Get the parsed records."""
        return self._data

    @property
    def validation_issues(self) -> List[ValidationIssue]:
        """Get validation issues."""
        return self._validation_issues

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the parsed records.

        Returns:
            Dictionary with summary statistics
        """
        counts = self._data.counts()
        return {
            'total_records': sum(counts.values()),
            'records_per_source': counts,
            'unique_keys_per_source': {
                source: len({r.key for r in self._data.get(source)})
                for source in SOURCES
            },
            'validation_issues': len(self._validation_issues),
        }

"""
CSV Parser for sources delivered as separate CSV exports.

Handles:
- Encoding fallback (Excel BOM, UTF-8, Windows code pages, UTF-16)
- The same AWB/weight column aliases as the workbook parser
"""
import logging
from typing import List, Optional, Tuple

import pandas as pd

from config import FILE_ENCODINGS, SHEET_NAMES, SOURCES, get_config
from parsers.base_parser import (
    BaseParser,
    Record,
    SourceData,
    UnreadableFileError,
    ValidationIssue,
)

logger = logging.getLogger(__name__)


class CSVSourceParser(BaseParser):
    """
    Parser for a single source held in a CSV file.
    """

    def __init__(self, filepath: str, source: str):
        """
        Initialize the CSV parser.

        Args:
            filepath: Path to the CSV file
            source: Source identifier the file belongs to (jaster, cis, unifikasi)
        """
        if source not in SOURCES:
            raise ValueError(f"Unknown source: {source}")
        super().__init__(filepath)
        self.source = source
        self._encoding: Optional[str] = None

    def parse(self) -> SourceData:
        """
        Parse the CSV file into records for this parser's source.

        Returns:
            SourceData with only this source populated
        """
        logger.info("Parsing %s CSV file: %s", SHEET_NAMES[self.source], self.filepath)

        df = self._read_csv()
        records = self._extract_records(df, self.source)

        self._data = SourceData()
        setattr(self._data, self.source, records)
        return self._data

    @property
    def records(self) -> List[Record]:
        """Records parsed for this parser's source."""
        return self._data.get(self.source)

    def _read_csv(self) -> pd.DataFrame:
        """
        Read the CSV file with encoding fallback.

        Returns:
            DataFrame with the header row as columns

        Raises:
            UnreadableFileError: If no encoding can decode the file
        """
        encodings = get_config().get("supported_encodings", FILE_ENCODINGS)
        last_error: Optional[Exception] = None

        for encoding in encodings:
            try:
                df = pd.read_csv(self.filepath, dtype=str, encoding=encoding)
            except pd.errors.EmptyDataError:
                logger.warning("CSV file is empty: %s", self.filepath)
                return pd.DataFrame()
            except (UnicodeError, pd.errors.ParserError) as e:
                last_error = e
                continue
            except OSError as e:
                raise UnreadableFileError(f"Could not open {self.filepath}: {e}") from e

            self._encoding = encoding
            logger.debug("Successfully read CSV with encoding: %s", encoding)
            return df

        raise UnreadableFileError(
            f"Could not decode {self.filepath} with any of {', '.join(encodings)}: {last_error}"
        )

    @property
    def encoding(self) -> Optional[str]:
        """Encoding that successfully decoded the file."""
        return self._encoding


def load_sources(
    jaster: str,
    cis: str,
    unifikasi: str
) -> Tuple[SourceData, List[ValidationIssue]]:
    """
    Load all three sources from separate CSV files.

    Args:
        jaster: Path to the JASTER CSV
        cis: Path to the CIS CSV
        unifikasi: Path to the UNIFIKASI CSV

    Returns:
        Tuple of (SourceData combining the three files, validation issues)
    """
    data = SourceData()
    issues: List[ValidationIssue] = []
    for source, path in zip(SOURCES, (jaster, cis, unifikasi)):
        parser = CSVSourceParser(path, source)
        parser.parse()
        setattr(data, source, parser.records)
        issues.extend(parser.validate())
    return data, issues

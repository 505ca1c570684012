"""
XLSX Parser for the three-sheet comparison workbook.
"""
import logging
import zipfile
from typing import List

import pandas as pd

from config import SHEET_NAMES, SOURCES
from parsers.base_parser import (
    BaseParser,
    MissingSheetsError,
    SourceData,
    UnreadableFileError,
)

logger = logging.getLogger(__name__)


class WorkbookParser(BaseParser):
    """
    Parser for a workbook holding one sheet per source.

    The workbook must contain the sheets JASTER, CIS and UNIFIKASI. Each
    sheet uses its first row as the header; the AWB and weight columns are
    located through the aliases in ``config.COLUMN_MAPPINGS``.
    """

    def __init__(self, filepath: str):
        """
        Initialize the workbook parser.

        Args:
            filepath: Path to the Excel file
        """
        super().__init__(filepath)
        self._sheet_names: List[str] = []

    def parse(self) -> SourceData:
        """
        Parse every source sheet in the workbook.

        Returns:
            SourceData with JASTER, CIS and UNIFIKASI records

        Raises:
            UnreadableFileError: If the file cannot be opened as a workbook
            MissingSheetsError: If any required sheet is absent
            MissingColumnError: If a sheet has rows but no AWB column
        """
        logger.info("Parsing workbook: %s", self.filepath)

        try:
            with pd.ExcelFile(self.filepath) as xl:
                self._sheet_names = list(xl.sheet_names)

                missing = [
                    SHEET_NAMES[source] for source in SOURCES
                    if SHEET_NAMES[source] not in self._sheet_names
                ]
                if missing:
                    raise MissingSheetsError(missing)

                data = SourceData()
                for source in SOURCES:
                    df = self._read_sheet(xl, SHEET_NAMES[source])
                    setattr(data, source, self._extract_records(df, source))
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            raise UnreadableFileError(f"Could not read workbook {self.filepath}: {e}") from e

        self._data = data
        logger.info("Parsed data summary: %s", data.counts())
        return self._data

    def _read_sheet(self, xl: pd.ExcelFile, sheet_name: str) -> pd.DataFrame:
        """Read one sheet, keeping cell values as they were stored."""
        return pd.read_excel(xl, sheet_name=sheet_name, header=0, dtype=object)

    def get_available_sheets(self) -> List[str]:
        """
        Get list of available sheet names in the Excel file.

        Returns:
            List of sheet names
        """
        if self._sheet_names:
            return self._sheet_names
        try:
            with pd.ExcelFile(self.filepath) as xl:
                return list(xl.sheet_names)
        except (OSError, ValueError) as e:
            logger.error("Error reading sheet names: %s", e)
            return []

"""
Parsers module for reading the three AWB sources.
"""
from .base_parser import BaseParser, ParserError, Record, SourceData
from .xlsx_parser import WorkbookParser
from .csv_parser import CSVSourceParser, load_sources

__all__ = [
    'BaseParser', 'ParserError', 'Record', 'SourceData',
    'WorkbookParser', 'CSVSourceParser', 'load_sources',
]

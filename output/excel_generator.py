"""
Excel report generator for AWB comparison results.

Creates a formatted Excel workbook with three sheets:
1. Summary
2. Detailed Comparison
3. Issues Only
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from config import APP_NAME, EXPORT_FILE_PREFIX
from reconciler.comparison_engine import ComparisonResult, ComparisonRow

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
ISSUE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
ALT_ROW_FILL = PatternFill(start_color="F2F2F2", end_color="F2F2F2", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)
WEIGHT_FORMAT = '#,##0.00'
PERCENT_FORMAT = '0.0%'

# Placeholder for a weight absent from a source
ABSENT = "—"

DETAIL_HEADERS = [
    "AWB Number", "JASTER Weight", "CIS Weight", "UNIFIKASI Weight",
    "In JASTER", "In CIS", "In UNIFIKASI", "Weight Match", "Duplicates", "Issues",
]
ISSUE_HEADERS = [
    "AWB Number", "JASTER Weight", "CIS Weight", "UNIFIKASI Weight", "Issues",
]


def build_report_filename(now: Optional[datetime] = None) -> str:
    """
    Build a timestamped report filename.

    Args:
        now: Timestamp to embed (defaults to the current time)

    Returns:
        e.g. "awb-comparison-report-2025-01-15T09-30-00.xlsx"
    """
    now = now or datetime.now()
    return f"{EXPORT_FILE_PREFIX}-{now.strftime('%Y-%m-%dT%H-%M-%S')}.xlsx"


def generate_comparison_excel(result: ComparisonResult, output_path: str) -> str:
    """
    Generate an Excel workbook from a comparison result.

    Args:
        result: Output of the comparison engine
        output_path: Path to save the Excel file

    Returns:
        Path to the generated file
    """
    logger.info("Generating Excel report: %s", output_path)

    wb = Workbook()

    # Remove default sheet
    if 'Sheet' in wb.sheetnames:
        del wb['Sheet']

    _create_summary_sheet(wb, result)
    _create_detailed_sheet(wb, result.rows)
    _create_issues_sheet(wb, result.rows_with_issues())

    wb.save(output_path)
    logger.info("Excel file saved: %s", output_path)

    return output_path


def _write_header(ws: Worksheet, headers: List[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal='center')


def _write_weight(ws: Worksheet, row: int, column: int, weight: Optional[float]) -> None:
    if weight is None:
        ws.cell(row=row, column=column, value=ABSENT).alignment = Alignment(horizontal='center')
    else:
        ws.cell(row=row, column=column, value=weight).number_format = WEIGHT_FORMAT


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _issues_text(row: ComparisonRow) -> str:
    return ", ".join(row.discrepancies) or "None"


def _duplicates_text(row: ComparisonRow) -> str:
    """Sheet names of the sources holding conflicting duplicates."""
    info = row.duplicate_info
    if info is None:
        return ""
    flagged = [
        name for name, is_dup in
        (("JASTER", info.jaster), ("CIS", info.cis), ("UNIFIKASI", info.unifikasi))
        if is_dup
    ]
    return ", ".join(flagged)


def _finish_table(ws: Worksheet, headers: List[str], row_count: int, widths: List[int]) -> None:
    for col, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}{row_count + 1}"
    ws.freeze_panes = "A2"


def _create_summary_sheet(wb: Workbook, result: ComparisonResult) -> None:
    """Create the Summary sheet."""
    ws = wb.create_sheet("Summary")
    stats = result.stats

    summary = [
        ("AWB Comparison Report", None),
        ("Generated", result.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()),
        ("", None),
        ("Summary Statistics", None),
        ("Total Unique AWBs", stats.total_unique_awbs),
        ("Perfect Matches", stats.perfect_matches),
        ("Weight Mismatches", stats.weight_mismatches),
        ("In All Three Sheets", stats.in_all_three),
        ("", None),
        ("Distribution", None),
        ("JASTER Only", stats.in_jaster_only),
        ("CIS Only", stats.in_cis_only),
        ("UNIFIKASI Only", stats.in_unifikasi_only),
        ("JASTER & CIS", stats.in_jaster_and_cis),
        ("JASTER & UNIFIKASI", stats.in_jaster_and_unifikasi),
        ("CIS & UNIFIKASI", stats.in_cis_and_unifikasi),
        ("", None),
        ("Rates", None),
    ]
    rates = [
        ("Perfect Match Rate", stats.perfect_match_rate),
        ("Weight Mismatch Rate", stats.mismatch_rate),
        ("Single Source Rate", stats.single_source_rate),
    ]

    row_idx = 1
    for label, value in summary:
        cell = ws.cell(row=row_idx, column=1, value=label)
        if label and value is None:
            cell.font = Font(bold=True, size=14 if row_idx == 1 else 12)
        elif value is not None:
            ws.cell(row=row_idx, column=2, value=value)
        row_idx += 1

    for label, rate in rates:
        ws.cell(row=row_idx, column=1, value=label)
        # Rates are 0-100; the cell format expects a fraction
        ws.cell(row=row_idx, column=2, value=rate / 100).number_format = PERCENT_FORMAT
        row_idx += 1

    row_idx += 1
    ws.cell(row=row_idx, column=1, value=f"Generated by {APP_NAME}").font = Font(italic=True)

    ws.column_dimensions['A'].width = 30
    ws.column_dimensions['B'].width = 25


def _create_detailed_sheet(wb: Workbook, rows: Sequence[ComparisonRow]) -> None:
    """Create the Detailed Comparison sheet (one row per AWB)."""
    ws = wb.create_sheet("Detailed Comparison")
    _write_header(ws, DETAIL_HEADERS)

    for row_idx, row in enumerate(rows, 2):
        ws.cell(row=row_idx, column=1, value=row.key)
        _write_weight(ws, row_idx, 2, row.jaster_weight)
        _write_weight(ws, row_idx, 3, row.cis_weight)
        _write_weight(ws, row_idx, 4, row.unifikasi_weight)
        ws.cell(row=row_idx, column=5, value=_yes_no(row.presence.in_jaster))
        ws.cell(row=row_idx, column=6, value=_yes_no(row.presence.in_cis))
        ws.cell(row=row_idx, column=7, value=_yes_no(row.presence.in_unifikasi))
        ws.cell(row=row_idx, column=8, value=_yes_no(row.weights_match))
        ws.cell(row=row_idx, column=9, value=_duplicates_text(row))
        ws.cell(row=row_idx, column=10, value=_issues_text(row))

        # Highlight rows with issues, alternate the rest
        if row.discrepancies:
            fill = ISSUE_FILL
        elif row_idx % 2 == 0:
            fill = ALT_ROW_FILL
        else:
            fill = None
        if fill is not None:
            for col in range(1, len(DETAIL_HEADERS) + 1):
                ws.cell(row=row_idx, column=col).fill = fill

    _finish_table(ws, DETAIL_HEADERS, len(rows), [20, 15, 15, 18, 11, 9, 14, 14, 22, 60])


def _create_issues_sheet(wb: Workbook, rows: Sequence[ComparisonRow]) -> None:
    """Create the Issues Only sheet."""
    ws = wb.create_sheet("Issues Only")
    _write_header(ws, ISSUE_HEADERS)

    for row_idx, row in enumerate(rows, 2):
        ws.cell(row=row_idx, column=1, value=row.key)
        _write_weight(ws, row_idx, 2, row.jaster_weight)
        _write_weight(ws, row_idx, 3, row.cis_weight)
        _write_weight(ws, row_idx, 4, row.unifikasi_weight)
        ws.cell(row=row_idx, column=5, value=", ".join(row.discrepancies))

    _finish_table(ws, ISSUE_HEADERS, len(rows), [20, 15, 15, 18, 60])

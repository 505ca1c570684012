#!/usr/bin/env python3
"""
AWB Weight Reconciler - Main Entry Point

Compares shipment weights recorded in the JASTER, CIS and UNIFIKASI sources,
prints a summary of missing records and weight mismatches, and optionally
writes an Excel report.

Usage:
    python main.py --input <workbook.xlsx> [--output <report.xlsx>] [options]
    python main.py --jaster j.csv --cis c.csv --unifikasi u.csv [options]

Examples:
    python main.py --input weights.xlsx --output report.xlsx
    python main.py --input weights.xlsx --tolerance 0.05 --show-issues 20
"""
import argparse
import logging
import os
import sys
from typing import List, Optional, Tuple

from config import APP_NAME, SHEET_NAMES, get_weight_tolerance
from parsers.base_parser import ParserError, SourceData, ValidationIssue
from parsers.csv_parser import load_sources
from parsers.xlsx_parser import WorkbookParser
from reconciler.comparison_engine import ComparisonEngine, ComparisonResult, check_tolerance
from reconciler.filters import SortField, sort_rows
from output.excel_generator import generate_comparison_excel


def tolerance_arg(value: str) -> float:
    """argparse type for --tolerance."""
    try:
        return check_tolerance(float(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"must be a positive number, got '{value}'")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Reconcile AWB weights across JASTER, CIS and UNIFIKASI.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --input weights.xlsx --output report.xlsx
  python main.py --jaster jaster.csv --cis cis.csv --unifikasi unifikasi.csv

Environment Variables:
  WEIGHT_TOLERANCE - Default weight match tolerance (default: 0.01)
        """
    )

    # Input: one workbook or three CSV files
    parser.add_argument(
        '--input', '-i',
        default=None,
        help='Path to the workbook with JASTER, CIS and UNIFIKASI sheets'
    )
    parser.add_argument('--jaster', default=None, help='JASTER CSV export')
    parser.add_argument('--cis', default=None, help='CIS CSV export')
    parser.add_argument('--unifikasi', default=None, help='UNIFIKASI CSV export')

    parser.add_argument(
        '--output', '-o',
        default=None,
        help='Path for the Excel report (skipped if not given)'
    )
    parser.add_argument(
        '--tolerance',
        type=tolerance_arg,
        default=None,
        help='Weight match tolerance (default: WEIGHT_TOLERANCE or 0.01)'
    )
    parser.add_argument(
        '--show-issues',
        type=int,
        default=10,
        metavar='N',
        help='Number of AWBs with issues to list (default: 10, 0 to hide)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args(argv)

    csv_inputs = [args.jaster, args.cis, args.unifikasi]
    if args.input and any(csv_inputs):
        parser.error("use either --input or --jaster/--cis/--unifikasi, not both")
    if not args.input and not all(csv_inputs):
        parser.error("provide --input, or all of --jaster, --cis and --unifikasi")

    return args


def load_input(args: argparse.Namespace) -> Tuple[SourceData, List[ValidationIssue]]:
    """
    Load the three sources from a workbook or from three CSV files.

    Raises:
        FileNotFoundError: If an input path does not exist
        ParserError: If a file cannot be parsed
    """
    paths = [args.input] if args.input else [args.jaster, args.cis, args.unifikasi]
    for path in paths:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Input file not found: {path}")

    if args.input:
        parser = WorkbookParser(args.input)
        data = parser.parse()
        return data, parser.validate()

    return load_sources(args.jaster, args.cis, args.unifikasi)


def print_summary(result: ComparisonResult) -> None:
    """Print the comparison statistics."""
    stats = result.stats
    print("\n--- Comparison Summary ---")
    print(f"Total unique AWBs:   {stats.total_unique_awbs}")
    print(f"In all three:        {stats.in_all_three}")
    print(f"Perfect matches:     {stats.perfect_matches} ({stats.perfect_match_rate:.1f}%)")
    print(f"Weight mismatches:   {stats.weight_mismatches} ({stats.mismatch_rate:.1f}%)")
    print(f"Single source only:  {stats.single_source_count} ({stats.single_source_rate:.1f}%)")
    print("\n--- Distribution ---")
    print(f"JASTER only:         {stats.in_jaster_only}")
    print(f"CIS only:            {stats.in_cis_only}")
    print(f"UNIFIKASI only:      {stats.in_unifikasi_only}")
    print(f"JASTER & CIS:        {stats.in_jaster_and_cis}")
    print(f"JASTER & UNIFIKASI:  {stats.in_jaster_and_unifikasi}")
    print(f"CIS & UNIFIKASI:     {stats.in_cis_and_unifikasi}")


def print_issues(result: ComparisonResult, limit: int) -> None:
    """Print the first ``limit`` AWBs that carry discrepancies."""
    issues = sort_rows(result.rows_with_issues(), SortField.AWB)
    if not issues or limit <= 0:
        return

    print(f"\n--- AWBs with issues ({len(issues)}) ---")
    for row in issues[:limit]:
        weights = " | ".join(
            f"{name}={'-' if w is None else f'{w:g}'}"
            for name, w in (
                ("JASTER", row.jaster_weight),
                ("CIS", row.cis_weight),
                ("UNIFIKASI", row.unifikasi_weight),
            )
        )
        print(f"  {row.key}: {weights} -> {', '.join(row.discrepancies)}")
    if len(issues) > limit:
        print(f"  ... and {len(issues) - limit} more")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    tolerance = args.tolerance if args.tolerance is not None else get_weight_tolerance()
    try:
        engine = ComparisonEngine(tolerance=tolerance)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print(f"\n{'='*60}")
    print(APP_NAME)
    print(f"{'='*60}")
    if args.input:
        print(f"Input workbook: {args.input}")
    else:
        print(f"Input files: {args.jaster}, {args.cis}, {args.unifikasi}")
    print(f"Weight tolerance: {tolerance}")
    print(f"{'='*60}")

    try:
        data, issues = load_input(args)
    except (FileNotFoundError, ParserError) as e:
        print(f"Error: {e}")
        return 1

    print("\n--- Records Loaded ---")
    for source, count in data.counts().items():
        print(f"{SHEET_NAMES[source]:<12} {count}")

    if issues:
        print(f"\nValidation warnings ({len(issues)}):")
        for issue in issues[:10]:
            print(f"  - {issue.message}")
        if len(issues) > 10:
            print(f"  ... and {len(issues) - 10} more")

    result = engine.compare(data.jaster, data.cis, data.unifikasi)

    print_summary(result)
    print_issues(result, args.show_issues)

    if args.output:
        generate_comparison_excel(result, args.output)
        print(f"\nReport saved to: {args.output}")

    print(f"\n{'='*60}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())

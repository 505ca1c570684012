#!/usr/bin/env python3
"""
AWB Weight Reconciler - Web Interface

A Flask-based web API for uploading a JASTER/CIS/UNIFIKASI workbook,
comparing the three sources and downloading the Excel report.
"""
import atexit
import logging
import os
import shutil
import tempfile
import uuid
from datetime import datetime
from threading import Lock, Thread
from time import sleep
from typing import Any, Dict, NamedTuple, Tuple

from flask import Flask, jsonify, request, send_file

from config import (
    ACCEPTED_FILE_TYPES, APP_NAME, APP_VERSION, DEFAULT_PAGE_SIZE, PAGE_SIZE_OPTIONS,
    get_config, get_weight_tolerance,
)
from parsers.base_parser import ParserError
from parsers.xlsx_parser import WorkbookParser
from reconciler.comparison_engine import ComparisonEngine, ComparisonResult
from reconciler.filters import (
    FilterType, SortDirection, SortField, filter_rows, paginate, sort_rows,
)
from output.excel_generator import build_report_filename, generate_comparison_excel


# =============================================================================
# Application Configuration
# =============================================================================

app = Flask(__name__)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# File storage configuration
UPLOAD_FOLDER = tempfile.mkdtemp(prefix='awb_upload_')
OUTPUT_FOLDER = tempfile.mkdtemp(prefix='awb_output_')
MAX_CONTENT_LENGTH = get_config().get("max_file_size")
RESULT_TTL_MINUTES = 60

app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

# Comparison results and report files by id (guarded by _results_lock)
results: Dict[str, Tuple[ComparisonResult, datetime]] = {}
_results_lock = Lock()


# =============================================================================
# Cleanup Functions
# =============================================================================

def _report_path(result_id: str) -> str:
    return os.path.join(OUTPUT_FOLDER, f"report_{result_id}.xlsx")


def expire_results(now: datetime) -> int:
    """
    Drop results and report files older than RESULT_TTL_MINUTES.

    Returns:
        Number of results removed
    """
    with _results_lock:
        expired = [
            result_id for result_id, (_, created_at) in results.items()
            if (now - created_at).total_seconds() / 60 > RESULT_TTL_MINUTES
        ]
        for result_id in expired:
            results.pop(result_id, None)

    for result_id in expired:
        filepath = _report_path(result_id)
        try:
            if os.path.exists(filepath):
                os.unlink(filepath)
                logger.info(f"Cleaned up old report: {filepath}")
        except OSError as e:
            logger.error(f"Error cleaning up {filepath}: {e}")

    return len(expired)


def cleanup_old_files():
    """Background task to clean up old results (older than 1 hour)."""
    while True:
        sleep(300)  # Run every 5 minutes
        try:
            expire_results(datetime.now())
        except Exception as e:
            logger.error(f"Error in cleanup task: {e}")


def cleanup_on_exit():
    """Clean up temporary directories on application exit."""
    shutil.rmtree(UPLOAD_FOLDER, ignore_errors=True)
    shutil.rmtree(OUTPUT_FOLDER, ignore_errors=True)
    logger.info("Cleaned up temporary directories")


atexit.register(cleanup_on_exit)

if not os.environ.get('FLASK_DEBUG'):
    cleanup_thread = Thread(target=cleanup_old_files, daemon=True)
    cleanup_thread.start()


# =============================================================================
# Helpers
# =============================================================================

class InvalidParameter(ValueError):
    """Invalid query or form parameter."""


def _enum_arg(enum_cls, name: str, default):
    value = request.args.get(name, default.value)
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise InvalidParameter(f"Invalid {name} '{value}'. Choose one of: {choices}")


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name, str(default))
    try:
        return int(value)
    except ValueError:
        raise InvalidParameter(f"Invalid {name} '{value}'. Expected an integer")


class RowView(NamedTuple):
    """Row view options taken from the query string."""
    filter_type: FilterType
    search: str
    sort_field: SortField
    direction: SortDirection
    page: int
    page_size: int


def _row_view() -> RowView:
    """
    Read and validate the row view options.

    Raises:
        InvalidParameter: If any option has an unusable value
    """
    page_size = _int_arg('page_size', get_config().get("default_page_size", DEFAULT_PAGE_SIZE))
    if page_size not in PAGE_SIZE_OPTIONS:
        raise InvalidParameter(
            f"Invalid page size {page_size}; choose one of {PAGE_SIZE_OPTIONS}"
        )

    return RowView(
        filter_type=_enum_arg(FilterType, 'filter', FilterType.ALL),
        search=request.args.get('search', ''),
        sort_field=_enum_arg(SortField, 'sort', SortField.AWB),
        direction=_enum_arg(SortDirection, 'direction', SortDirection.ASC),
        page=_int_arg('page', 1),
        page_size=page_size,
    )


def _rows_payload(result: ComparisonResult, view: RowView) -> Dict[str, Any]:
    """Filter, sort and paginate rows for one view."""
    rows = filter_rows(result.rows, view.filter_type, view.search)
    rows = sort_rows(rows, view.sort_field, view.direction)
    page = paginate(rows, view.page, view.page_size)

    return {
        'rows': [row.to_dict() for row in page.rows],
        'page': page.page,
        'page_size': page.page_size,
        'total_rows': page.total_rows,
        'total_pages': page.total_pages,
    }


def _stats_payload(result: ComparisonResult) -> Dict[str, Any]:
    stats = result.stats
    return {
        **stats.to_dict(),
        'perfect_match_rate': round(stats.perfect_match_rate, 1),
        'mismatch_rate': round(stats.mismatch_rate, 1),
        'single_source_rate': round(stats.single_source_rate, 1),
    }


# =============================================================================
# Routes
# =============================================================================

@app.route('/')
def index():
    """Describe the service."""
    return jsonify({
        'app': APP_NAME,
        'version': APP_VERSION,
        'accepted_file_types': ACCEPTED_FILE_TYPES,
        'endpoints': ['/compare', '/results/<id>/rows', '/download/<id>', '/health'],
    })


@app.route('/compare', methods=['POST'])
def compare_workbook():
    """Handle workbook upload and comparison."""
    if 'file' not in request.files:
        return jsonify({'error': 'No file uploaded'}), 400

    file = request.files['file']
    if file.filename == '':
        return jsonify({'error': 'No file selected'}), 400

    file_ext = os.path.splitext(file.filename)[1].lower()
    if file_ext not in ACCEPTED_FILE_TYPES:
        return jsonify({
            'error': f"Unsupported file format. Please upload {' or '.join(ACCEPTED_FILE_TYPES)} files."
        }), 400

    # Everything the client controls is checked before anything is stored
    try:
        view = _row_view()
    except InvalidParameter as e:
        return jsonify({'error': str(e)}), 400

    try:
        engine = ComparisonEngine(
            tolerance=float(request.form.get('tolerance', get_weight_tolerance()))
        )
    except ValueError as e:
        return jsonify({'error': f'Invalid tolerance: {e}'}), 400

    result_id = uuid.uuid4().hex[:12]
    input_path = os.path.join(UPLOAD_FOLDER, f"input_{result_id}{file_ext}")

    try:
        file.save(input_path)
        logger.info(f"File uploaded: {file.filename} -> {input_path}")

        parser = WorkbookParser(input_path)
        data = parser.parse()
        issues = parser.validate()

        result = engine.compare(data.jaster, data.cis, data.unifikasi)

        generate_comparison_excel(result, _report_path(result_id))
        with _results_lock:
            results[result_id] = (result, datetime.now())

        logger.info(
            f"Compared {result.stats.total_unique_awbs} AWBs for {file.filename}"
        )

        return jsonify({
            'success': True,
            'result_id': result_id,
            'generated_at': result.generated_at.isoformat(),
            'records': data.counts(),
            'statistics': _stats_payload(result),
            'validation_issues': [issue.message for issue in issues[:50]],
            'total_validation_issues': len(issues),
            **_rows_payload(result, view),
        })

    except ParserError as e:
        logger.warning(f"Could not parse {file.filename}: {e}")
        return jsonify({'error': str(e)}), 400

    finally:
        try:
            if os.path.exists(input_path):
                os.unlink(input_path)
        except OSError as e:
            logger.error(f"Error cleaning up input file: {e}")


@app.route('/results/<result_id>/rows')
def result_rows(result_id):
    """Return a filtered, sorted page of a stored comparison."""
    with _results_lock:
        entry = results.get(result_id)
    if entry is None:
        return jsonify({'error': 'Result not found or expired. Please upload the file again.'}), 404

    try:
        view = _row_view()
    except InvalidParameter as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(_rows_payload(entry[0], view))


@app.route('/download/<result_id>')
def download_report(result_id):
    """Download the Excel report for a comparison."""
    if not result_id.isalnum():
        return jsonify({'error': 'Invalid report id'}), 400

    file_path = _report_path(result_id)
    if not os.path.exists(file_path):
        return jsonify({'error': 'Report not found or expired. Please upload the file again.'}), 404

    logger.info(f"Report downloaded: {result_id}")

    return send_file(
        file_path,
        as_attachment=True,
        download_name=build_report_filename(),
    )


@app.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'app': APP_NAME,
        'version': APP_VERSION,
        'timestamp': datetime.now().isoformat()
    })


@app.errorhandler(413)
def file_too_large(e):
    """Handle file too large error."""
    return jsonify({
        'error': f'File too large. Maximum size is {MAX_CONTENT_LENGTH // (1024 * 1024)} MB.'
    }), 413


@app.errorhandler(500)
def internal_error(e):
    """Handle internal server error."""
    logger.error(f"Internal server error: {e}")
    return jsonify({
        'error': 'An internal error occurred. Please try again.'
    }), 500


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'

    logger.info(f"Starting {APP_NAME} v{APP_VERSION} on port {port}")

    app.run(host='0.0.0.0', port=port, debug=debug)

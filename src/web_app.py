import base64
import json
import logging
import os
import shutil
import tempfile

from flask import Flask, jsonify, request
from werkzeug.utils import secure_filename

# Import engine logic
from coercion import format_cell
from config import ToolkitConfig
from dictionary import parse_dictionary
from errors import MalformedInputError
from exporter import Exporter, build_merged_report, build_validation_report
from models import ReconRequest, ValidationRun
from recon_engine import ReconEngine
from validation_engine import validate
from workbook_loader import load_workbook

logger = logging.getLogger(__name__)

toolkit_config = ToolkitConfig.from_env()

app = Flask(__name__)
app.secret_key = toolkit_config.secret_key
app.config['UPLOAD_FOLDER'] = toolkit_config.upload_folder
app.config['MAX_CONTENT_LENGTH'] = toolkit_config.max_content_length
app.config['OUTPUT_COLUMN'] = toolkit_config.output_column
app.config['MERGED_SHEET_NAME'] = toolkit_config.merged_sheet_name
app.config['REPORT_SHEET_NAME'] = toolkit_config.report_sheet_name


def error_response(message: str, status: int):
    return jsonify({'success': False, 'message': message}), status


def make_request_dir() -> str:
    """Create a private directory for one request's uploads."""
    upload_root = app.config['UPLOAD_FOLDER']
    os.makedirs(upload_root, exist_ok=True)
    return tempfile.mkdtemp(dir=upload_root)


def read_dictionary_field(raw: str):
    """Parse the 'dictionary' form field: {"name": ..., "rules": [...]}."""
    if not raw:
        raise MalformedInputError('No data dictionary provided.')
    try:
        payload = json.loads(raw)
    except ValueError:
        raise MalformedInputError('Data dictionary must be valid JSON.') from None
    if not isinstance(payload, dict):
        raise MalformedInputError('Data dictionary must be a JSON object.')
    return parse_dictionary(
        payload.get('name'),
        payload.get('rules'),
        organization=payload.get('organization'),
    )


def issue_to_dict(issue) -> dict:
    return {
        'sheet': issue.sheet,
        'row': issue.row_index,
        'column': issue.column_name,
        'rule': issue.rule_kind.value,
        'value': format_cell(issue.value),
        'message': issue.message,
    }


def run_summary(run: ValidationRun) -> dict:
    return {
        'totalChecks': run.total_checked,
        'passedChecks': run.total_checked - run.total_failed,
        'failedChecks': run.total_failed,
        'totalIssues': run.total_issues,
    }


@app.route('/api/health')
def health():
    return jsonify({'status': 'ok'})


@app.route('/api/validate-excel', methods=['POST'])
def validate_excel():
    excel_file = request.files.get('excelFile')
    if excel_file is None or excel_file.filename == '':
        return error_response('No Excel file uploaded.', 400)

    filename = secure_filename(excel_file.filename) or 'upload.xlsx'
    request_dir = make_request_dir()
    try:
        dictionary = read_dictionary_field(request.form.get('dictionary', ''))

        path = os.path.join(request_dir, filename)
        excel_file.save(path)
        workbook = load_workbook(path)

        run = validate(dictionary, workbook)
        report = build_validation_report(
            run, app.config['REPORT_SHEET_NAME'], include_summary=True
        )
        report_data = Exporter().to_xlsx_bytes(report)

        logger.info(
            "Validated %s against '%s': %d issue(s)",
            filename, dictionary.name, run.total_issues
        )
        return jsonify({
            'success': True,
            'message': 'Validation complete!',
            'summary': run_summary(run),
            'sheets': {
                name: {'checked': s.checked, 'passed': s.passed, 'failed': s.failed}
                for name, s in run.sheet_summaries.items()
            },
            'issues': [issue_to_dict(issue) for issue in run.issues],
            'validationReportBase64': base64.b64encode(report_data).decode('ascii'),
            'fileName': f"validation_report_{os.path.splitext(filename)[0]}.xlsx",
        })

    except MalformedInputError as e:
        logger.info("Rejected validation request: %s", e)
        return error_response(str(e), 400)
    except Exception as e:
        logger.exception("Error in validate-excel")
        return error_response(f'Error processing validation: {e}', 500)
    finally:
        shutil.rmtree(request_dir, ignore_errors=True)


@app.route('/api/merge-reports', methods=['POST'])
def merge_reports():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return error_response('Request body must be a JSON object.', 400)

    claims_report = body.get('claimsReport')
    lag_report = body.get('lagReport')
    claim_header = body.get('claimNumberHeader')
    check_header = body.get('checkNumberHeader')
    output_column = body.get('outputColumnName') or app.config['OUTPUT_COLUMN']

    if not claims_report or not lag_report or not claim_header or not check_header:
        return error_response('Missing one or more required fields (reports or headers).', 400)
    if not all(isinstance(report, list) and all(isinstance(row, list) for row in report)
               for report in (claims_report, lag_report)):
        return error_response('Invalid report data format. Expected arrays.', 400)

    try:
        engine = ReconEngine(
            source_name='Claims & Check Numbers Report',
            target_name='Lag Report',
        )
        table = engine.reconcile(ReconRequest(
            source_rows=claims_report,
            target_rows=lag_report,
            key_column=claim_header,
            value_column=check_header,
            output_column=output_column,
        ))
        report = build_merged_report(table, app.config['MERGED_SHEET_NAME'])
        file_data = Exporter().to_xlsx_bytes(report)

        summary = table.summary
        logger.info(
            "Merged reports: %d row(s), %d matched", summary.total_rows, summary.matched_rows
        )
        return jsonify({
            'success': True,
            'message': 'Reports merged successfully.',
            'fileData': base64.b64encode(file_data).decode('ascii'),
            'filename': Exporter.REPORT_FILE_NAMES['merged'],
            'summary': {
                'totalRows': summary.total_rows,
                'matchedRows': summary.matched_rows,
                'unmatchedRows': summary.unmatched_rows,
                'blankKeyRows': summary.blank_key_rows,
                'duplicateKeys': summary.duplicate_keys,
            },
        })

    except MalformedInputError as e:
        logger.info("Rejected merge request: %s", e)
        return error_response(str(e), 400)
    except Exception as e:
        logger.exception("Error in merge-reports")
        return error_response(f'Internal Server Error: {e}', 500)

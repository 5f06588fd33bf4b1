from flask import Flask, request, session, send_file, jsonify
import io
from collections import OrderedDict
import os
import threading
import uuid

from reconciler import (
    AnalysisInProgressError,
    AttendanceError,
    AttendanceSession,
    AttendanceStatus,
    CapabilityUnavailableError,
    MatchSensitivity,
)
from reconciler.config import load_settings, setup_logging
from reconciler.export import CSV_MIMETYPE, XLSX_MIMETYPE, export_filename, to_csv_bytes, to_xlsx_bytes
from reconciler.fuzzy_matcher import FuzzyNameMatcher
from reconciler.review import ReportState

SETTINGS = load_settings()
logger = setup_logging(SETTINGS.log_level, SETTINGS.log_file).getChild('app')

app = Flask(__name__)
app.secret_key = SETTINGS.secret_key or os.urandom(24)
app.config['MAX_CONTENT_LENGTH'] = SETTINGS.max_upload_mb * 1024 * 1024
app.config['EXTRACTION_WORKERS'] = SETTINGS.extraction_workers
app.config['MAX_SESSIONS'] = SETTINGS.max_sessions
# Callers may place their own NameExtractor / NameMatcher objects here
app.config.setdefault('NAME_EXTRACTOR', None)
app.config.setdefault('NAME_MATCHER', None)

# Least recently used first
_SESSIONS = OrderedDict()
_SESSIONS_LOCK = threading.Lock()


def init_session():
    """Return the AttendanceSession bound to this browser session"""
    if 'sid' not in session:
        session['sid'] = uuid.uuid4().hex
    sid = session['sid']
    with _SESSIONS_LOCK:
        attendance = _SESSIONS.get(sid)
        if attendance is None:
            attendance = _SESSIONS[sid] = AttendanceSession()
        _SESSIONS.move_to_end(sid)
        while len(_SESSIONS) > app.config['MAX_SESSIONS']:
            old_sid, old = _SESSIONS.popitem(last=False)
            old.cancel()
            logger.info(f"Evicted idle attendance session {old_sid[:8]}")
        return attendance


def drop_session():
    """Forget the current browser session's AttendanceSession"""
    sid = session.pop('sid', None)
    if sid is not None:
        with _SESSIONS_LOCK:
            _SESSIONS.pop(sid, None)


def json_body():
    """Request JSON as a dict ({} when absent); None when it is not an object"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def bad_request(message):
    return jsonify({'success': False, 'error': message}), 400


def get_extractor():
    extractor = app.config.get('NAME_EXTRACTOR')
    if extractor is None:
        from reconciler.gemini_service import GeminiNameExtractor
        extractor = GeminiNameExtractor(api_key=SETTINGS.gemini_api_key, model_name=SETTINGS.gemini_model)
        app.config['NAME_EXTRACTOR'] = extractor
    return extractor


def get_matcher():
    matcher = app.config.get('NAME_MATCHER')
    if matcher is None:
        if SETTINGS.name_matcher == 'fuzzy':
            matcher = FuzzyNameMatcher()
        else:
            from reconciler.gemini_service import GeminiNameMatcher
            matcher = GeminiNameMatcher(api_key=SETTINGS.gemini_api_key, model_name=SETTINGS.gemini_model)
        app.config['NAME_MATCHER'] = matcher
    return matcher


def error_response(exc):
    """JSON error body; 4xx for known pipeline errors, 500 otherwise"""
    if isinstance(exc, AnalysisInProgressError):
        status = 409
    elif isinstance(exc, CapabilityUnavailableError):
        status = 503
    elif isinstance(exc, (AttendanceError, ValueError)):
        status = 400
    else:
        logger.exception("Unhandled error")
        return jsonify({'success': False, 'error': AttendanceError.default_message}), 500
    return jsonify({'success': False, 'error': str(exc)}), status


def report_payload(attendance):
    search = request.args.get('search', '')
    descending = request.args.get('order', 'asc').lower() == 'desc'
    buckets = attendance.review.display(search=search, descending=descending)
    result = attendance.review.current()
    payload = {
        'success': True,
        'state': attendance.review.state.value,
        'report': None,
        'counts': None,
        'attendance_rate': None,
        'selected': sorted(attendance.review.selected),
    }
    if buckets is not None:
        payload['report'] = {k: [a.to_dict() for a in v] for k, v in buckets.items()}
        payload['counts'] = result.counts()
        payload['attendance_rate'] = round(result.attendance_rate(), 4)
    return payload


@app.route('/api/health')
def health():
    return jsonify({'ok': True})


@app.route('/api/session', methods=['GET'])
def api_session():
    """Uploads, progress log and report state of the current session"""
    attendance = init_session()
    return jsonify({'success': True, **attendance.summary()})


@app.route('/api/official/excel', methods=['POST'])
def api_upload_official_excel():
    """Upload the official roster spreadsheet"""
    attendance = init_session()
    if 'file' not in request.files or not request.files['file'].filename:
        return jsonify({'success': False, 'error': 'No file selected'}), 400

    file = request.files['file']
    try:
        count = attendance.set_official_file(file.read(), file.filename)
    except Exception as e:
        return error_response(e)
    return jsonify({'success': True, 'name_count': count, 'filename': file.filename})


@app.route('/api/official/image', methods=['POST'])
def api_upload_official_image():
    """Upload a photo of the printed official roster"""
    attendance = init_session()
    if 'file' not in request.files or not request.files['file'].filename:
        return jsonify({'success': False, 'error': 'No file selected'}), 400

    attendance.set_official_image(request.files['file'].read())
    return jsonify({'success': True, 'source_mode': attendance.source_mode})


@app.route('/api/screenshots', methods=['POST'])
def api_upload_screenshots():
    """Add Zoom participant screenshots (multipart 'files' or JSON 'images' data URIs)"""
    attendance = init_session()
    images = [f.read() for f in request.files.getlist('files') if f.filename]
    data = json_body()
    if data is None or not isinstance(data.get('images', []), list):
        return bad_request("'images' must be a list of data URIs")
    images.extend(i for i in data.get('images', []) if isinstance(i, str) and i)
    if not images:
        return jsonify({'success': False, 'error': 'No screenshots provided'}), 400

    count = attendance.add_screenshots(images)
    return jsonify({'success': True, 'screenshot_count': count})


@app.route('/api/screenshots', methods=['DELETE'])
def api_clear_screenshots():
    attendance = init_session()
    attendance.clear_screenshots()
    return jsonify({'success': True, 'screenshot_count': 0})


@app.route('/api/analyze', methods=['POST'])
def api_analyze():
    """Run extraction and matching; on success the session holds a draft report"""
    attendance = init_session()
    data = json_body()
    if data is None:
        return bad_request('Request body must be a JSON object')
    data = data or request.form
    try:
        sensitivity = MatchSensitivity.parse(data.get('sensitivity'), default=attendance.sensitivity)
        attendance.run_analysis(get_extractor(), get_matcher(), sensitivity,
                                workers=app.config['EXTRACTION_WORKERS'])
    except Exception as e:
        response, status = error_response(e)
        body = response.get_json()
        body['progress_log'] = attendance.progress_log
        return jsonify(body), status

    payload = report_payload(attendance)
    payload['progress_log'] = attendance.progress_log
    return jsonify(payload)


@app.route('/api/analyze/cancel', methods=['POST'])
def api_cancel_analysis():
    attendance = init_session()
    return jsonify({'success': True, 'cancelled': attendance.cancel()})


@app.route('/api/review/reject', methods=['POST'])
def api_reject_match():
    """Turn a wrong match into one absent and one unexpected attendee"""
    attendance = init_session()
    data = json_body()
    if data is None or not isinstance(data.get('name', ''), str):
        return bad_request("Expected {'name': <string>}")
    name = data.get('name', '')
    if attendance.review.state != ReportState.DRAFT:
        return jsonify({'success': False, 'error': 'No draft report to review'}), 400

    changed = attendance.review.reject(name)
    payload = report_payload(attendance)
    payload['changed'] = changed
    return jsonify(payload)


@app.route('/api/review/discard', methods=['POST'])
def api_discard_draft():
    attendance = init_session()
    attendance.review.discard_draft()
    return jsonify(report_payload(attendance))


@app.route('/api/review/finalize', methods=['POST'])
def api_finalize_report():
    attendance = init_session()
    changed = attendance.review.finalize()
    payload = report_payload(attendance)
    payload['changed'] = changed
    return jsonify(payload)


@app.route('/api/report', methods=['GET'])
def api_report():
    """Current report, optionally filtered (?search=) and ordered (?order=asc|desc)"""
    attendance = init_session()
    return jsonify(report_payload(attendance))


@app.route('/api/report/selection', methods=['POST'])
def api_select_names():
    """Toggle one name ({'name': ...}) or add several ({'names': [...]}) to the selection"""
    attendance = init_session()
    if attendance.review.state != ReportState.FINAL:
        return jsonify({'success': False, 'error': 'Finalize the report before selecting names'}), 400

    data = json_body()
    if data is None:
        return bad_request('Request body must be a JSON object')
    if 'names' in data:
        if not isinstance(data['names'], list):
            return bad_request("'names' must be a list")
        attendance.review.select(n for n in data['names'] if isinstance(n, str))
    else:
        name = data.get('name', '')
        if not isinstance(name, str):
            return bad_request("'name' must be a string")
        attendance.review.toggle_selection(name)
    return jsonify({'success': True, 'selected': sorted(attendance.review.selected)})


@app.route('/api/report/selection', methods=['DELETE'])
def api_clear_selection():
    attendance = init_session()
    attendance.review.clear_selection()
    return jsonify({'success': True, 'selected': []})


@app.route('/api/report/bulk', methods=['POST'])
def api_bulk_status_change():
    """Move the selected names to a new status. Requires {'confirm': true}."""
    attendance = init_session()
    data = json_body()
    if data is None:
        return bad_request('Request body must be a JSON object')
    try:
        target = AttendanceStatus(str(data.get('status', '')).upper())
    except ValueError:
        return jsonify({'success': False, 'error': f"Unknown status: {data.get('status')}"}), 400
    if attendance.review.state != ReportState.FINAL:
        return jsonify({'success': False, 'error': 'Finalize the report before changing statuses'}), 400

    confirmed = data.get('confirm') is True
    moved = attendance.review.bulk_reclassify(target, lambda names, status: confirmed)
    payload = report_payload(attendance)
    payload['moved'] = moved
    payload['confirmed'] = confirmed
    return jsonify(payload)


@app.route('/api/report/export', methods=['GET'])
def api_export_report():
    """Download the final report as .xlsx (default) or .csv"""
    attendance = init_session()
    if attendance.review.state != ReportState.FINAL:
        return jsonify({'success': False, 'error': 'No final report available'}), 400

    fmt = request.args.get('format', 'xlsx').lower()
    if fmt == 'csv':
        data, mimetype = to_csv_bytes(attendance.review.report), CSV_MIMETYPE
    elif fmt == 'xlsx':
        data, mimetype = to_xlsx_bytes(attendance.review.report), XLSX_MIMETYPE
    else:
        return jsonify({'success': False, 'error': f'Unsupported export format: {fmt}'}), 400

    return send_file(io.BytesIO(data),
                     mimetype=mimetype,
                     as_attachment=True,
                     download_name=export_filename(fmt))


@app.route('/api/reset', methods=['POST'])
def api_reset():
    """Start over: drop uploads, progress and reports"""
    attendance = init_session()
    attendance.reset()
    drop_session()
    return jsonify({'success': True, **attendance.summary()})


# Enable CORS for the browser frontend
@app.after_request
def after_request(response):
    response.headers.add('Access-Control-Allow-Origin', SETTINGS.frontend_origin)
    response.headers.add('Access-Control-Allow-Headers', 'Content-Type,Authorization')
    response.headers.add('Access-Control-Allow-Methods', 'GET,POST,DELETE,OPTIONS')
    response.headers.add('Access-Control-Allow-Credentials', 'true')
    return response


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5001)

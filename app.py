"""
Thynk ROI Modeler: Flask API Server
Holds the live scenario; every edit builds a new scenario, recalculates, and
only then replaces the stored scenario and results. A failed pass leaves the
previous valid results in place.
"""
import io
import logging
import os
import traceback

from flask import Flask, jsonify, request, send_file

from engines.allocation import recalculate
from engines.catalog import catalog_view, has_module
from engines.data_loader import load_initial_scenario, load_parameters
from engines.errors import CalculationFault
from engines.export import CSV_FILENAME, XLSX_FILENAME, export_csv, export_xlsx
from engines.scenario import (distribute_cts, range_issues, reset_scenario, set_module_enabled,
                              update_module, update_params)
from engines.scenario_codec import encode_scenario, load_scenario

app = Flask(__name__)

STATE = {
    'scenario': None, 'results': None,
    'loaded': False, '_load_error': None,
}


def _run_all():
    """Load starting assumptions and run the first pass."""
    scenario = load_initial_scenario()
    STATE['results'] = recalculate(scenario)
    STATE['scenario'] = scenario
    STATE['loaded'] = True
    return True


def _commit(scenario):
    """Recalculate a candidate scenario; store it only if the pass completes."""
    results = recalculate(scenario)
    STATE['scenario'] = scenario
    STATE['results'] = results
    return results


def _payload(extra=None, issues=None):
    """Current state plus any inputs that were clamped on the way in."""
    if issues is None:
        issues = range_issues(STATE['scenario'])
    body = {
        'status': 'ok',
        'scenario': STATE['scenario'],
        'results': STATE['results'],
        'adjustments': [e.to_dict() for e in issues],
    }
    if extra:
        body.update(extra)
    return body


def _fault_response(e):
    traceback.print_exc()
    return jsonify({
        'status': 'error',
        'message': 'A calculation error occurred; showing the last valid results. Check your inputs.',
        'detail': str(e),
        'scenario': STATE['scenario'],
        'results': STATE['results'],
    }), 500


@app.before_request
def _ensure_loaded():
    if not STATE['loaded'] and not STATE.get('_load_error'):
        try:
            _run_all()
            logging.info("Thynk engines loaded successfully")
        except Exception as e:
            err_msg = f"{type(e).__name__}: {e}"
            STATE['_load_error'] = err_msg
            print(f"\n{'=' * 60}")
            print(f"[!] ENGINE LOAD FAILED")
            print(f"[!] Error: {err_msg}")
            print(f"[!] Check data/config/parameters.xlsx, then restart python app.py")
            print(f"{'=' * 60}\n")
            traceback.print_exc()


def _not_loaded():
    return jsonify({
        'error': 'Model not loaded',
        'reason': STATE.get('_load_error') or 'Unknown, check terminal',
    }), 503


# ══════════════════════════════════════════════════════════════
#  ROUTES
# ══════════════════════════════════════════════════════════════

@app.route('/api/health')
def api_health():
    return jsonify({'status': 'ok' if STATE['loaded'] else 'error',
                    'loaded': STATE['loaded'], 'error': STATE.get('_load_error')})


@app.route('/api/catalog')
def api_catalog():
    return jsonify({'modules': catalog_view()})


@app.route('/api/scenario')
def api_scenario():
    if not STATE['loaded']: return _not_loaded()
    return jsonify(_payload())


@app.route('/api/recalculate', methods=['POST'])
def api_recalculate():
    """Re-run the pass, optionally applying a batch of global param updates."""
    if not STATE['loaded']: return _not_loaded()
    body = request.get_json(silent=True) or {}
    issues = []
    try:
        scenario = STATE['scenario']
        if body.get('params'):
            scenario = update_params(scenario, body['params'], issues)
        _commit(scenario)
    except CalculationFault as e:
        return _fault_response(e)
    return jsonify(_payload(issues=issues))


@app.route('/api/params', methods=['POST'])
def api_params():
    """Single {key, value} edit, or nested {prices: {...}} / {services: {...}}."""
    if not STATE['loaded']: return _not_loaded()
    body = request.get_json(silent=True) or {}
    if 'key' in body:
        updates = {body['key']: body.get('value')}
    else:
        updates = {k: v for k, v in body.items() if k in ('prices', 'services')}
    if not updates:
        return jsonify({'error': 'key/value or prices/services required'}), 400
    issues = []
    try:
        _commit(update_params(STATE['scenario'], updates, issues))
    except CalculationFault as e:
        return _fault_response(e)
    return jsonify(_payload(issues=issues))


@app.route('/api/module/toggle', methods=['POST'])
def api_toggle_module():
    if not STATE['loaded']: return _not_loaded()
    body = request.get_json(silent=True) or {}
    module_id = body.get('id'); enabled = body.get('enabled')
    if not module_id or enabled is None:
        return jsonify({'error': 'id and enabled required'}), 400
    if not has_module(module_id):
        return jsonify({'error': f'unknown module {module_id}'}), 404
    try:
        _commit(set_module_enabled(STATE['scenario'], module_id, enabled))
    except CalculationFault as e:
        return _fault_response(e)
    return jsonify(_payload())


@app.route('/api/module/update', methods=['POST'])
def api_update_module():
    """Coefficient edits for one module; blank override fields mean 'use global'."""
    if not STATE['loaded']: return _not_loaded()
    body = request.get_json(silent=True) or {}
    module_id = body.get('id')
    fields = body.get('fields', {})
    if not module_id or not isinstance(fields, dict):
        return jsonify({'error': 'id and fields required'}), 400
    if not has_module(module_id):
        return jsonify({'error': f'unknown module {module_id}'}), 404
    issues = []
    try:
        _commit(update_module(STATE['scenario'], module_id, fields, issues))
    except CalculationFault as e:
        return _fault_response(e)
    return jsonify(_payload({'message': f'Module {module_id} updated with {len(fields)} field(s)'}, issues))


@app.route('/api/reset', methods=['POST'])
def api_reset():
    """Back to workbook/catalog defaults; all edits dropped."""
    if not STATE['loaded']: return _not_loaded()
    try:
        params, _ = load_parameters()
        _commit(reset_scenario(params))
    except CalculationFault as e:
        return _fault_response(e)
    return jsonify(_payload())


@app.route('/api/rehydrate', methods=['POST'])
def api_rehydrate():
    """Redistribute annual CTs to the CT modules by their CT share."""
    if not STATE['loaded']: return _not_loaded()
    try:
        _commit(distribute_cts(STATE['scenario']))
    except CalculationFault as e:
        return _fault_response(e)
    return jsonify(_payload())


@app.route('/api/scenario/save', methods=['POST'])
def api_save_scenario():
    if not STATE['loaded']: return _not_loaded()
    token = encode_scenario(STATE['scenario'])
    return jsonify({'status': 'ok', 'token': token, 'hash': f'#s={token}'})


@app.route('/api/scenario/load', methods=['POST'])
def api_load_scenario():
    """Restore from a token. A bad token keeps the current scenario (warning, 200)."""
    if not STATE['loaded']: return _not_loaded()
    body = request.get_json(silent=True) or {}
    scenario, warning = load_scenario(body.get('token'), STATE['scenario'])
    if warning:
        return jsonify(_payload({'status': 'warning', 'warning': warning}))
    try:
        _commit(scenario)
    except CalculationFault as e:
        return _fault_response(e)
    return jsonify(_payload())


@app.route('/api/export/csv')
def api_export_csv():
    if not STATE['loaded']: return _not_loaded()
    csv_text = export_csv(STATE['results']['summary'])
    return send_file(io.BytesIO(csv_text.encode('utf-8')), mimetype='text/csv',
                     as_attachment=True, download_name=CSV_FILENAME)


@app.route('/api/export')
def api_export():
    """Export scenario + results to Excel."""
    if not STATE['loaded']: return _not_loaded()
    try:
        data = export_xlsx(STATE['scenario'], STATE['results'])
    except Exception as e:
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500
    return send_file(io.BytesIO(data), as_attachment=True, download_name=XLSX_FILENAME,
                     mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')


if __name__ == '__main__':
    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO'))
    app.run(debug=False, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))

"""
Thynk ROI Modeler: Data Loader
Reads health-system assumptions from config/parameters.xlsx (optional).

Sheets:
  Parameters: Parameter | Value            : global volumes, mix, devices, prices, services
  Modules:    Module ID | Field | Value    : per-module coefficient overrides, 'enabled'

Anything missing falls back to the catalog defaults. Labels are matched
case-insensitively so a consultant-edited workbook still loads.
"""
import logging
import os

import openpyxl

from engines.catalog import PAYERS, PRICE_TYPES, SERVICES, has_module
from engines.scenario import MODULE_FIELDS, build_scenario

DATA_DIR = os.environ.get('THYNK_DATA_DIR') or os.path.join(os.path.dirname(os.path.dirname(__file__)), 'data')

PARAM_MAP = {
    'annual cts': 'annualCts',
    'monthly lcs': 'monthlyLcs',
    'annual prostate mrs': 'annualProstateMrs',
    'commercial %': 'commercialPct',
    'retained revenue %': 'retainedPct',
    'ion count': 'ionCount',
    'ion capacity': 'ionCapacity',
    'da vinci count': 'dvCount',
    'da vinci capacity': 'dvCapacity',
}

PRICE_LABELS = {'clinic': 'clinic', 'imaging': 'imaging', 'procedure': 'proc', 'robotic': 'rob'}

TRUE_STRINGS = ('yes', 'y', 'true', '1', 'available', 'on')


def parameters_path():
    return os.path.join(DATA_DIR, 'config', 'parameters.xlsx')


def read_xlsx_sheet(filepath, sheet_name=None):
    wb = openpyxl.load_workbook(filepath, read_only=True, data_only=True)
    try:
        if sheet_name and sheet_name not in wb.sheetnames:
            return []
        ws = wb[sheet_name] if sheet_name else wb.active
        rows = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()
    if len(rows) < 2:
        return []
    headers = [str(h).strip() if h else f'col_{i}' for i, h in enumerate(rows[0])]
    return [dict(zip(headers, row)) for row in rows[1:]]


def _as_bool(val):
    if isinstance(val, bool):
        return val
    if isinstance(val, (int, float)):
        return val != 0
    return str(val).strip().lower() in TRUE_STRINGS


def _as_number(val):
    if isinstance(val, (int, float)) and not isinstance(val, bool):
        return val
    try:
        return float(str(val).replace(',', '').replace('$', '').replace('%', '').strip())
    except ValueError:
        return None


def _price_key(label):
    """'Clinic Price (Medicare)' -> ('clinic', 'medicare')."""
    parts = label.replace('(', ' ').replace(')', ' ').split()
    ptype = next((PRICE_LABELS[p] for p in parts if p in PRICE_LABELS), None)
    payer = next((p for p in parts if p in PAYERS), None)
    if ptype in PRICE_TYPES and payer:
        return ptype, payer
    return None


def parse_parameter_rows(rows):
    """Parameters sheet rows -> partial params dict."""
    params = {'prices': {}, 'services': {}}
    service_by_label = {v.lower(): k for k, v in SERVICES.items()}
    for row in rows:
        label = str(row.get('Parameter') or '').strip().lower()
        val = row.get('Value')
        if not label or val is None or val == '':
            continue
        if label in PARAM_MAP:
            num = _as_number(val)
            if num is None:
                logging.warning(f"parameters.xlsx: non-numeric value {val!r} for '{label}' ignored")
                continue
            params[PARAM_MAP[label]] = num
        elif label.startswith('service:'):
            name = label.split(':', 1)[1].strip()
            key = service_by_label.get(name) or next((k for k in SERVICES if k.lower() == name), None)
            if key:
                params['services'][key] = _as_bool(val)
            else:
                logging.warning(f"parameters.xlsx: unknown service '{name}' ignored")
        elif 'price' in label:
            pk = _price_key(label)
            num = _as_number(val)
            if pk and num is not None:
                params['prices'].setdefault(pk[0], {})[pk[1]] = num
            else:
                logging.warning(f"parameters.xlsx: unrecognised price row '{label}' ignored")
        else:
            logging.info(f"parameters.xlsx: unmapped parameter '{label}' ignored")
    return params


def parse_module_rows(rows):
    """Modules sheet rows -> {module_id: {'enabled', 'values'}}."""
    overrides = {}
    for row in rows:
        mid = str(row.get('Module ID') or '').strip()
        field = str(row.get('Field') or '').strip()
        val = row.get('Value')
        if not mid or not field:
            continue
        if not has_module(mid):
            logging.warning(f"parameters.xlsx: unknown module '{mid}' ignored")
            continue
        entry = overrides.setdefault(mid, {'values': {}})
        if field == 'enabled':
            entry['enabled'] = _as_bool(val)
        elif field in MODULE_FIELDS:
            entry['values'][field] = val
        else:
            logging.warning(f"parameters.xlsx: unknown field '{mid}.{field}' ignored")
    return overrides


def load_parameters(path=None):
    """(params, module_overrides) from the workbook; empty when it does not exist."""
    path = path or parameters_path()
    if not os.path.exists(path):
        return {}, {}
    params = parse_parameter_rows(read_xlsx_sheet(path, 'Parameters'))
    overrides = parse_module_rows(read_xlsx_sheet(path, 'Modules'))
    logging.info(f"Loaded assumptions from {path} ({len(overrides)} module override(s))")
    return params, overrides


def load_initial_scenario(path=None):
    """Starting scenario: catalog defaults overlaid with workbook assumptions."""
    params, overrides = load_parameters(path)
    return build_scenario(params, overrides)

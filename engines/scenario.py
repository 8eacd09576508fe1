"""
Thynk ROI Modeler: Scenario Configuration
Global settings + per-module state layered on catalog defaults.

A scenario is a plain dict:
    {'params': {...global settings...},
     'modules': [{'id', 'enabled', 'values'}, ...]}   # catalog order

Every edit helper returns a NEW scenario; the input scenario is never mutated.
Out-of-range numbers are clamped (live-editing tool: a transient bad keystroke
must not break the model). range_issues() reports what would be clamped.
"""
import copy
import logging
import math

from engines.catalog import (DEFAULT_PARAMS, MODULE_CATALOG, OVERRIDE_FIELD, PAYERS, PRICE_TYPES,
                             SERVICES, default_params, default_values, get_module, has_module)
from engines.errors import ConfigurationRangeError

# ── Field domains ──
PCT_PARAMS = ('commercialPct', 'retainedPct')
NONNEG_PARAMS = ('annualCts', 'monthlyLcs', 'annualProstateMrs',
                 'ionCount', 'ionCapacity', 'dvCount', 'dvCapacity')

PCT_FIELDS = ('actionablePct', 'detectionPct', 'captureThynk', 'captureBaseline',
              'conversionToProcedure', 'ionShareOfProcedures', 'roboticShareOfProcedures')
NONNEG_FIELDS = ('followupsPerProcedure', 'capacityPerSpecialist')
INT_FIELDS = ('specialists',)
OVERRIDE_FIELDS = ('lcsMonthlyOverride', 'ctsPerYear', 'annualMrOverride')
FRACTION_FIELDS = ('shareOfCts',)

MODULE_FIELDS = PCT_FIELDS + NONNEG_FIELDS + INT_FIELDS + OVERRIDE_FIELDS + FRACTION_FIELDS


def clamp(v, lo, hi=None):
    """Clamp to [lo, hi]; non-numeric / NaN input becomes lo.
    +inf goes to hi when there is one, any other infinity to lo."""
    try:
        num = float(v)
    except OverflowError:
        num = math.inf if v > 0 else -math.inf
    except (TypeError, ValueError):
        return lo
    if math.isnan(num):
        return lo
    if math.isinf(num):
        return hi if num > 0 and hi is not None else lo
    if hi is None:
        return max(lo, num)
    return max(lo, min(hi, num))


def _to_number(v):
    """Return v as int/float, or None when v is not a finite number."""
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        try:
            float(v)
        except OverflowError:
            return None
        return v
    if isinstance(v, float):
        return v if math.isfinite(v) else None
    try:
        num = float(str(v).strip())
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def _domain(field):
    if field in PCT_FIELDS or field in PCT_PARAMS:
        return 0, 100
    if field in FRACTION_FIELDS:
        return 0, 1
    return 0, None


def _clamp_field(field, value, module_id=None, issues=None):
    lo, hi = _domain(field)
    num = _to_number(value)
    clamped = clamp(value, lo, hi)
    if field in INT_FIELDS:
        clamped = int(round(clamped))
    if num is None or num != clamped:
        if issues is not None:
            issues.append(ConfigurationRangeError(field, value, clamped, module_id))
        logging.debug(f"clamp {module_id or 'params'}.{field}: {value!r} -> {clamped}")
    if num is not None and num == clamped:
        return num if field not in INT_FIELDS else int(clamped)
    return clamped


# ══════════════════════════════════════════════════════════════
#  SANITIZE
# ══════════════════════════════════════════════════════════════

def sanitize_params(params, issues=None):
    """Return a fully-specified, clamped copy of the global params.
    Missing keys fall back to DEFAULT_PARAMS; unknown keys are dropped."""
    src = params or {}
    out = default_params()
    for key in PCT_PARAMS + NONNEG_PARAMS:
        if key in src:
            out[key] = _clamp_field(key, src[key], issues=issues)

    prices = src.get('prices') if isinstance(src.get('prices'), dict) else {}
    for ptype in PRICE_TYPES:
        row = prices.get(ptype) if isinstance(prices.get(ptype), dict) else {}
        for payer in PAYERS:
            if payer in row:
                out['prices'][ptype][payer] = _clamp_field(f'prices.{ptype}.{payer}', row[payer], issues=issues)

    services = src.get('services') if isinstance(src.get('services'), dict) else {}
    for key in SERVICES:
        if key in services:
            out['services'][key] = bool(services[key])
    return out


def sanitize_values(module_id, values, issues=None):
    """Catalog defaults overlaid with the given coefficient values, clamped.
    Blank / None overrides mean 'use the global volume'."""
    out = default_values(module_id)
    for field, raw in (values or {}).items():
        if field not in MODULE_FIELDS:
            continue
        if field in OVERRIDE_FIELDS:
            if raw is None or (isinstance(raw, str) and raw.strip() == ''):
                out[field] = None
                continue
        out[field] = _clamp_field(field, raw, module_id, issues)
    return out


def range_issues(scenario):
    """ConfigurationRangeError for every input that sanitizing would clamp."""
    issues = []
    sanitize_params(scenario.get('params'), issues)
    for state in scenario.get('modules', []):
        if has_module(state.get('id')):
            sanitize_values(state['id'], state.get('values'), issues)
    return issues


# ══════════════════════════════════════════════════════════════
#  BUILD / EDIT (copy-on-write)
# ══════════════════════════════════════════════════════════════

def default_module_states():
    return [{'id': m['id'], 'enabled': True, 'values': default_values(m['id'])} for m in MODULE_CATALOG]


def default_scenario():
    return {'params': default_params(), 'modules': default_module_states()}


def build_scenario(params=None, module_overrides=None):
    """Scenario from partial params and {module_id: {'enabled', 'values'}} overrides.
    Modules always come out in catalog order; unknown ids are ignored."""
    overrides = module_overrides or {}
    modules = []
    for m in MODULE_CATALOG:
        ov = overrides.get(m['id'], {})
        modules.append({
            'id': m['id'],
            'enabled': bool(ov.get('enabled', True)),
            'values': sanitize_values(m['id'], ov.get('values')),
        })
    for mid in overrides:
        if not has_module(mid):
            logging.warning(f"build_scenario: unknown module '{mid}' ignored")
    return {'params': sanitize_params(params), 'modules': modules}


def merge_params(params, updates):
    """Deep copy of params with updates applied; prices and services merge per entry."""
    params = copy.deepcopy(params)
    for key, value in (updates or {}).items():
        if key in ('prices', 'services') and isinstance(value, dict):
            for sub, subval in value.items():
                if isinstance(subval, dict) and isinstance(params[key].get(sub), dict):
                    params[key][sub].update(subval)
                else:
                    params[key][sub] = subval
        elif key in DEFAULT_PARAMS:
            params[key] = value
        else:
            logging.warning(f"merge_params: unknown parameter '{key}' ignored")
    return params


def update_params(scenario, updates, issues=None):
    """New scenario with global params updated (nested prices/services merge).
    Clamped inputs are appended to `issues` when a list is given."""
    params = merge_params(scenario['params'], updates)
    new = {'params': sanitize_params(params, issues), 'modules': copy.deepcopy(scenario['modules'])}
    if 'annualCts' in (updates or {}):
        new = distribute_cts(new)
    return new


def _find_state(modules, module_id):
    for state in modules:
        if state['id'] == module_id:
            return state
    raise KeyError(module_id)


def set_module_enabled(scenario, module_id, enabled):
    modules = copy.deepcopy(scenario['modules'])
    _find_state(modules, module_id)['enabled'] = bool(enabled)
    return {'params': copy.deepcopy(scenario['params']), 'modules': modules}


def update_module(scenario, module_id, fields, issues=None):
    """New scenario with one module's coefficient fields edited.
    'enabled' may be passed among the fields like any other."""
    modules = copy.deepcopy(scenario['modules'])
    state = _find_state(modules, module_id)
    fields = dict(fields or {})
    if 'enabled' in fields:
        state['enabled'] = bool(fields.pop('enabled'))
    merged = dict(state['values'])
    merged.update(fields)
    state['values'] = sanitize_values(module_id, merged, issues)
    return {'params': copy.deepcopy(scenario['params']), 'modules': modules}


def reset_scenario(params=None):
    """Everything back to catalog defaults (optionally on top of loaded params)."""
    return {'params': sanitize_params(params), 'modules': default_module_states()}


def distribute_cts(scenario):
    """Hydrate ctsPerYear for every CT module from annualCts × shareOfCts."""
    annual = scenario['params']['annualCts']
    modules = copy.deepcopy(scenario['modules'])
    for state in modules:
        if get_module(state['id'])['kind'] != 'ct':
            continue
        share = state['values'].get('shareOfCts')
        if share is None:
            share = get_module(state['id'])['defaults'].get('shareOfCts') or 0
        state['values']['ctsPerYear'] = round(annual * share)
    return {'params': copy.deepcopy(scenario['params']), 'modules': modules}


# ══════════════════════════════════════════════════════════════
#  RESOLUTION
# ══════════════════════════════════════════════════════════════

def resolve_exams(kind, values, params):
    """Annual exam exposure for one module. None override = use the global volume."""
    override = values.get(OVERRIDE_FIELD[kind])
    if kind == 'lcs':
        monthly = override if override is not None else params['monthlyLcs']
        return monthly * 12
    if kind == 'mr':
        return override if override is not None else params['annualProstateMrs']
    if override is not None:
        return override
    return round(params['annualCts'] * (values.get('shareOfCts') or 0))

"""
Thynk ROI Modeler: Allocation Engine
Per-module funnel + shared device allocation + baseline-vs-Thynk deltas.

Flow per module (catalog order):
  1. Disabled → all-zero result, ledger untouched
  2. Exposure: exams/year from override or global volume
  3. Actionable = exams × actionable/detection %
  4. Capture: Thynk arm and baseline arm over the same actionable pool
  5. Service coverage gate: 1.0 if every required service line exists, else 0.4
  6. Procedures = clinics × conversion × gate
  7. Staffing cap: specialists × cases per specialist, per arm
  8. Thynk arm draws ION / da Vinci from the shared ledger (baseline never draws)
  9. Follow-up imaging = procedures × follow-ups per procedure
 10. Revenue with blended prices; procedure revenue × retained share
 11. Leakage avoided = max(0, Δprocedures × retained)
 12. Capacity status flag
"""
import logging

from engines.capacity import build_ledger, draw, ledger_snapshot
from engines.catalog import COVERAGE_GAP_FACTOR, RATE_FIELD, get_module
from engines.errors import CalculationFault
from engines.pricing import blended_prices
from engines.scenario import resolve_exams, sanitize_params, sanitize_values
from engines.summary import build_summary, chart_series, headline

STATUS_LABELS = {
    'off': 'Off',
    'ok': 'OK',
    'ion_capped': 'ION capped',
    'robotic_capped': 'da Vinci capped',
    'both_capped': 'da Vinci & ION capped',
}


def coverage_factor(required_services, services):
    """Conversion multiplier for service-line coverage. Gaps degrade, never zero."""
    if not required_services:
        return 1.0
    for key in required_services:
        if not services.get(key):
            return COVERAGE_GAP_FACTOR
    return 1.0


def capacity_status(ion_capped, robotic_capped):
    if ion_capped and robotic_capped:
        return 'both_capped'
    if robotic_capped:
        return 'robotic_capped'
    if ion_capped:
        return 'ion_capped'
    return 'ok'


def zero_result(module):
    return {
        'id': module['id'], 'label': module['name'], 'group': module['group'],
        'enabled': False, 'status': 'off', 'statusLabel': STATUS_LABELS['off'],
        'gateFactor': 0, 'exams': 0, 'actionable': 0,
        'clinics': 0, 'procedures': 0, 'ion': 0, 'robotic': 0, 'followups': 0,
        'revenue': 0, 'leakage': 0,
        'baselineClinics': 0, 'baselineProcedures': 0, 'baselineFollowups': 0,
        'ionRequested': 0, 'roboticRequested': 0,
        'specialistCap': 0,
        'deltas': {'clinics': 0, 'fups': 0, 'procs': 0, 'rob': 0, 'ion': 0, 'revenue': 0},
    }


def compute_module(state, params, ledger, prices):
    """
    Run one module through the funnel.

    Args:
        state: {'id', 'enabled', 'values'}
        params: sanitized global params
        ledger: capacity ledger for this pass (drawn down in place)
        prices: blended unit prices for this pass

    Returns:
        ModuleResult dict (intervention figures, baseline figures, deltas)
    """
    module = get_module(state['id'])
    if not state.get('enabled', True):
        return zero_result(module)

    # Overrides resolved once, up front
    v = sanitize_values(module['id'], state.get('values'))
    kind = module['kind']
    retained = params['retainedPct'] / 100

    # ── Exposure & detection ──
    exams = resolve_exams(kind, v, params)
    actionable = exams * (v[RATE_FIELD[kind]] / 100)

    # ── Capture: two scenarios over the same pool ──
    clinics_th = actionable * (v['captureThynk'] / 100)
    clinics_bl = actionable * (v['captureBaseline'] / 100)

    # ── Conversion with service coverage gate ──
    gate = coverage_factor(module['requiredServices'], params['services'])
    conv = (v['conversionToProcedure'] / 100) * gate

    # ── Staffing cap (local to module) ──
    specialist_cap = v['specialists'] * v['capacityPerSpecialist']
    proc_th = min(clinics_th * conv, specialist_cap)
    proc_bl = min(clinics_bl * conv, specialist_cap)

    # ── Shared device draws: Thynk arm only ──
    ion_draw = draw(ledger, 'ion', proc_th * (v['ionShareOfProcedures'] / 100))
    rob_draw = draw(ledger, 'davinci', proc_th * (v['roboticShareOfProcedures'] / 100))
    ion_th = ion_draw['granted']
    rob_th = rob_draw['granted']

    # Baseline is never routed through the ledger; reuse the Thynk grant as its ceiling
    rob_bl = min(proc_bl, rob_th)
    ion_bl = min(proc_bl, ion_th)

    # ── Follow-up imaging ──
    fpp = v['followupsPerProcedure']
    fups_th = proc_th * fpp
    fups_bl = proc_bl * fpp

    # ── Revenue ──
    non_rob_th = max(proc_th - rob_th, 0)
    non_rob_bl = max(proc_bl - rob_bl, 0)
    revenue_th = (clinics_th * prices['clinic']
                  + fups_th * prices['imaging']
                  + retained * (non_rob_th * prices['proc'] + rob_th * prices['rob']))
    revenue_bl = (clinics_bl * prices['clinic']
                  + fups_bl * prices['imaging']
                  + retained * (non_rob_bl * prices['proc'] + rob_bl * prices['rob']))
    revenue_delta = revenue_th - revenue_bl

    leakage = max((proc_th - proc_bl) * retained, 0)
    status = capacity_status(ion_draw['capped'], rob_draw['capped'])

    return {
        'id': module['id'], 'label': module['name'], 'group': module['group'],
        'enabled': True, 'status': status, 'statusLabel': STATUS_LABELS[status],
        'gateFactor': gate, 'exams': exams, 'actionable': actionable,
        'clinics': clinics_th, 'procedures': proc_th, 'ion': ion_th, 'robotic': rob_th,
        'followups': fups_th, 'revenue': revenue_delta, 'leakage': leakage,
        'baselineClinics': clinics_bl, 'baselineProcedures': proc_bl, 'baselineFollowups': fups_bl,
        'ionRequested': ion_draw['requested'], 'roboticRequested': rob_draw['requested'],
        'specialistCap': specialist_cap,
        'deltas': {
            'clinics': clinics_th - clinics_bl,
            'fups': fups_th - fups_bl,
            'procs': proc_th - proc_bl,
            'rob': rob_th - rob_bl,
            'ion': ion_th - ion_bl,
            'revenue': revenue_delta,
        },
    }


def run_allocation(params, modules):
    """One full pass: fresh ledger, prices computed once, modules in the given order."""
    params = sanitize_params(params)
    ledger = build_ledger(params)
    prices = blended_prices(params)

    results = [compute_module(state, params, ledger, prices) for state in modules]

    return {
        'modules': results,
        'ledger': ledger_snapshot(ledger),
        'prices': prices,
    }


def recalculate(scenario):
    """
    Full recalculation: allocation → summary → chart series.

    Any unexpected failure aborts the whole pass and is raised as
    CalculationFault; nothing partial is returned.
    """
    try:
        allocation = run_allocation(scenario['params'], scenario['modules'])
        summary = build_summary(allocation['modules'])
        result = {
            'modules': allocation['modules'],
            'summary': summary,
            'chartSeries': chart_series(summary['rows']),
            'headline': headline(allocation['modules'], summary),
            'ledger': allocation['ledger'],
            'prices': allocation['prices'],
        }
    except Exception as e:
        logging.warning(f"recalculate: pass aborted ({type(e).__name__}: {e})")
        raise CalculationFault(f"{type(e).__name__}: {e}") from e

    capped = [r['id'] for r in result['modules'] if r['status'].endswith('capped')]
    if capped:
        logging.info(f"recalculate: device capacity capped for {', '.join(capped)}")
    return result

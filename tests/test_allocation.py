"""
Tests for the allocation engine: funnel, gates, caps, ledger draws, revenue.
"""
import copy

import pytest

from engines.allocation import compute_module, coverage_factor, recalculate, run_allocation
from engines.capacity import build_ledger
from engines.catalog import module_ids
from engines.errors import CalculationFault
from engines.pricing import blended_prices
from engines.scenario import default_module_states


def _run_one(state, params):
    ledger = build_ledger(params)
    return compute_module(state, params, ledger, blended_prices(params)), ledger


class TestFunnel:
    """Hand-worked prostate example (500 MRs, defaults, alone in the pass)."""

    def test_prostate_volumes(self, params, make_state):
        r, _ = _run_one(make_state('prostate'), params)
        assert r['exams'] == 500
        assert r['actionable'] == pytest.approx(100)
        assert r['clinics'] == pytest.approx(70)
        assert r['baselineClinics'] == pytest.approx(30)
        assert r['procedures'] == pytest.approx(38.5)
        assert r['baselineProcedures'] == pytest.approx(16.5)
        assert r['robotic'] == pytest.approx(23.1)
        assert r['ion'] == 0
        assert r['followups'] == pytest.approx(38.5)
        assert r['status'] == 'ok'

    def test_prostate_revenue(self, params, make_state):
        # prices @10% commercial: clinic 163, imaging 277, proc 5600, rob 7250; retained 75%
        r, _ = _run_one(make_state('prostate'), params)
        thynk = 70 * 163 + 38.5 * 277 + 0.75 * (15.4 * 5600 + 23.1 * 7250)
        base = 30 * 163 + 16.5 * 277 + 0.75 * (16.5 * 7250)
        assert r['revenue'] == pytest.approx(thynk - base)
        assert r['deltas']['revenue'] == pytest.approx(113181.5)

    def test_prostate_deltas(self, params, make_state):
        r, _ = _run_one(make_state('prostate'), params)
        assert r['deltas']['clinics'] == pytest.approx(40)
        assert r['deltas']['procs'] == pytest.approx(22)
        assert r['deltas']['fups'] == pytest.approx(22)
        assert r['deltas']['rob'] == pytest.approx(23.1 - 16.5)
        assert r['leakage'] == pytest.approx(22 * 0.75)

    def test_lcs_uses_monthly_volume_and_actionable_rate(self, params, make_state):
        r, _ = _run_one(make_state('lcs'), params)
        assert r['exams'] == 250 * 12
        assert r['actionable'] == pytest.approx(3000 * 0.12)

    def test_override_beats_global(self, params, make_state):
        r, _ = _run_one(make_state('lcs', lcsMonthlyOverride=100), params)
        assert r['exams'] == 1200
        r, _ = _run_one(make_state('prostate', annualMrOverride=0), params)
        assert r['exams'] == 0
        assert r['procedures'] == 0

    def test_ct_volume_from_share_when_no_override(self, params, make_state):
        r, _ = _run_one(make_state('renal'), params)
        assert r['exams'] == round(100000 * 0.17)

    def test_out_of_range_coefficients_are_clamped(self, params, make_state):
        r, _ = _run_one(make_state('prostate', detectionPct=250, captureThynk=-5), params)
        assert r['actionable'] == pytest.approx(500)
        assert r['clinics'] == 0


class TestStaffingCap:

    def test_procedures_never_exceed_specialist_capacity(self, params, make_state):
        r, _ = _run_one(make_state('prostate', specialists=1, capacityPerSpecialist=10), params)
        assert r['procedures'] == 10
        assert r['baselineProcedures'] == 10
        assert r['deltas']['procs'] == 0

    def test_zero_specialists_zero_procedures(self, params, make_state):
        r, ledger = _run_one(make_state('renal', specialists=0), params)
        assert r['procedures'] == 0
        assert ledger['davinci']['remaining'] == 825

    def test_cap_holds_for_every_default_module(self, scenario):
        results = run_allocation(scenario['params'], scenario['modules'])['modules']
        for state, r in zip(scenario['modules'], results):
            cap = state['values']['specialists'] * state['values']['capacityPerSpecialist']
            assert r['procedures'] <= cap

    @pytest.mark.parametrize('capacity', [float('inf'), 'inf', 1e400])
    def test_infinite_capacity_clamps_to_zero(self, params, make_state, capacity):
        r, _ = _run_one(make_state('renal', specialists=0, capacityPerSpecialist=capacity), params)
        assert r['specialistCap'] == 0
        assert r['procedures'] == 0

    @pytest.mark.parametrize('specialists', [float('inf'), 'inf', 10 ** 400])
    def test_infinite_specialists_clamp_to_zero(self, params, make_state, specialists):
        r, _ = _run_one(make_state('renal', specialists=specialists), params)
        assert r['specialistCap'] == 0
        assert r['procedures'] == 0


class TestCoverageGate:

    def test_factor(self):
        services = {'ip': True, 'ctSurg': False}
        assert coverage_factor(['ip'], services) == 1.0
        assert coverage_factor(['ip', 'ctSurg'], services) == 0.4
        assert coverage_factor([], services) == 1.0

    def test_missing_service_scales_procedures_by_0_4(self, params, make_state):
        state = make_state('renal', specialists=100)
        full, _ = _run_one(state, params)
        params['services']['urology'] = False
        gated, _ = _run_one(state, params)
        assert gated['gateFactor'] == 0.4
        assert gated['procedures'] == pytest.approx(full['procedures'] * 0.4)
        # diagnostics still happen
        assert gated['clinics'] == pytest.approx(full['clinics'])

    def test_unrelated_service_has_no_effect(self, params, make_state):
        params['services']['gyn'] = False
        r, _ = _run_one(make_state('renal'), params)
        assert r['gateFactor'] == 1.0


class TestDisabled:

    def test_disabled_module_is_all_zero_and_leaves_ledger(self, params, make_state):
        r, ledger = _run_one(make_state('lcs', enabled=False), params)
        assert r['status'] == 'off'
        assert all(v == 0 for v in r['deltas'].values())
        assert r['procedures'] == 0 and r['revenue'] == 0 and r['leakage'] == 0
        assert ledger['ion']['remaining'] == 500
        assert ledger['davinci']['remaining'] == 825

    def test_unknown_module_raises(self, params, make_state):
        with pytest.raises(KeyError):
            _run_one(make_state('nope'), params)


class TestSharedAllocation:

    def test_first_come_in_processing_order(self, tight_ion_params, ion_hungry_states):
        x, y = ion_hungry_states
        first = run_allocation(tight_ion_params, [x, y])['modules']
        assert first[0]['ion'] == pytest.approx(80)
        assert first[1]['ion'] == pytest.approx(20)
        assert first[0]['status'] == 'ok'
        assert first[1]['status'] == 'ion_capped'

    def test_swapped_order_swaps_who_is_capped(self, tight_ion_params, ion_hungry_states):
        x, y = ion_hungry_states
        swapped = run_allocation(tight_ion_params, [y, x])['modules']
        assert swapped[0]['id'] == 'ila'
        assert swapped[0]['ion'] == pytest.approx(80)
        assert swapped[1]['ion'] == pytest.approx(20)

    def test_baseline_never_draws(self, tight_ion_params, ion_hungry_states):
        x, _ = ion_hungry_states
        x = copy.deepcopy(x)
        x['values']['captureBaseline'] = 50
        out = run_allocation(tight_ion_params, [x])
        assert out['ledger']['ion']['used'] == pytest.approx(80)

    def test_both_pools_capped(self, params, make_state):
        params['ionCount'] = 0
        params['dvCount'] = 0
        r, _ = _run_one(make_state('lcs'), params)
        assert r['status'] == 'both_capped'
        assert r['statusLabel'] == 'da Vinci & ION capped'
        assert r['ion'] == 0 and r['robotic'] == 0

    def test_robotic_only_capped(self, params, make_state):
        params['dvCount'] = 0
        r, _ = _run_one(make_state('renal'), params)
        assert r['status'] == 'robotic_capped'

    def test_ledger_bounds_after_full_pass(self, scenario):
        ledger = run_allocation(scenario['params'], scenario['modules'])['ledger']
        for pool in ledger.values():
            assert 0 <= pool['remaining'] <= pool['capacity']

    def test_ledger_bounds_when_starved(self, scenario):
        scenario['params']['ionCapacity'] = 5
        scenario['params']['dvCapacity'] = 5
        ledger = run_allocation(scenario['params'], scenario['modules'])['ledger']
        assert ledger['ion']['remaining'] == pytest.approx(0)
        assert ledger['davinci']['remaining'] == pytest.approx(0)
        assert ledger['davinci']['remaining'] >= 0


class TestRecalculate:

    def test_deterministic(self, scenario):
        assert recalculate(scenario) == recalculate(copy.deepcopy(scenario))

    def test_rows_in_catalog_order(self, scenario):
        out = recalculate(scenario)
        assert [r['id'] for r in out['summary']['rows']] == module_ids()

    def test_prices_computed_once(self, scenario):
        out = recalculate(scenario)
        assert out['prices']['clinic'] == pytest.approx(163)

    def test_fault_wraps_unexpected_errors(self, scenario):
        scenario['modules'].append({'id': 'missing', 'enabled': True, 'values': {}})
        with pytest.raises(CalculationFault):
            recalculate(scenario)

    def test_does_not_mutate_scenario(self, scenario):
        before = copy.deepcopy(scenario)
        recalculate(scenario)
        assert scenario == before

    def test_all_disabled_totals_zero(self, scenario):
        for m in scenario['modules']:
            m['enabled'] = False
        out = recalculate(scenario)
        assert all(v == 0 for v in out['summary']['totals'].values())
        assert out['headline']['modulesEnabled'] == 0
        assert out['ledger']['ion']['used'] == 0


def test_default_states_cover_catalog():
    assert [s['id'] for s in default_module_states()] == module_ids()

"""
Tests for the summary aggregator and exports.
"""
import csv
import io

import openpyxl
import pytest

from engines.allocation import recalculate
from engines.export import CSV_HEADER, build_workbook, export_csv, export_xlsx, fmt_money
from engines.summary import DELTA_KEYS, build_summary, chart_series
from engines.scenario import set_module_enabled


class TestBuildSummary:

    def test_totals_are_column_sums(self, scenario):
        summary = recalculate(scenario)['summary']
        for k in DELTA_KEYS:
            assert summary['totals'][k] == sum(r[k] for r in summary['rows'])

    def test_disabled_rows_present_as_zero(self, scenario):
        scenario = set_module_enabled(scenario, 'renal', False)
        summary = recalculate(scenario)['summary']
        renal = next(r for r in summary['rows'] if r['id'] == 'renal')
        assert renal['enabled'] is False
        assert all(renal[k] == 0 for k in DELTA_KEYS)
        assert len(summary['rows']) == len(scenario['modules'])

    def test_empty(self):
        summary = build_summary([])
        assert summary['rows'] == []
        assert all(v == 0 for v in summary['totals'].values())

    def test_chart_series_clips_negatives(self):
        rows = [{'label': 'A', 'procs': -2, 'rob': 3, 'ion': 0, 'revenue': -100},
                {'label': 'B', 'procs': 5, 'rob': 1, 'ion': 2, 'revenue': 50}]
        series = chart_series(rows)
        assert series['labels'] == ['A', 'B']
        assert series['procedures'] == [0, 5]
        assert series['revenue'] == [0, 50]

    def test_headline(self, scenario):
        out = recalculate(scenario)
        assert out['headline']['modulesTotal'] == len(scenario['modules'])
        assert out['headline']['revenueDelta'] == out['summary']['totals']['revenue']
        assert out['headline']['leakageAvoided'] >= 0


class TestCsvExport:

    def test_layout(self, scenario):
        summary = recalculate(scenario)['summary']
        text = export_csv(summary)
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == CSV_HEADER
        assert len(rows) == len(summary['rows']) + 2
        assert rows[-1][0] == 'Total'
        assert rows[1][0] == 'Lung Cancer Screening (LCS)'

    def test_every_cell_quoted(self, scenario):
        text = export_csv(recalculate(scenario)['summary'])
        first = text.splitlines()[0]
        assert first.startswith('"Module","Clinics')

    def test_money_format(self):
        assert fmt_money(1234567.4) == '$1,234,567'
        assert fmt_money(-50) == '-$50'


class TestXlsxExport:

    def test_sheets(self, scenario):
        wb = build_workbook(scenario, recalculate(scenario))
        assert wb.sheetnames == ['Summary', 'Modules', 'Assumptions', 'Capacity']

    def test_summary_sheet_roundtrip(self, scenario):
        results = recalculate(scenario)
        wb = openpyxl.load_workbook(io.BytesIO(export_xlsx(scenario, results)))
        ws = wb['Summary']
        values = list(ws.iter_rows(values_only=True))
        assert list(values[0]) == CSV_HEADER
        assert values[-1][0] == 'Total'
        assert values[-1][6] == round(results['summary']['totals']['revenue'])
        assert ws.max_row == len(scenario['modules']) + 2

    def test_capacity_sheet(self, scenario):
        results = recalculate(scenario)
        ws = build_workbook(scenario, results)['Capacity']
        labels = [row[0] for row in ws.iter_rows(min_row=2, values_only=True)]
        assert labels == ['ION', 'da Vinci']
        assert ws.cell(row=2, column=2).value == pytest.approx(500)

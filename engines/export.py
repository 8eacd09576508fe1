"""
Thynk ROI Modeler: Export
Summary table as CSV, full workbook as XLSX.
"""
import csv
import io

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from engines.catalog import PAYERS, PRICE_TYPES, SERVICES
from engines.summary import COLUMN_LABELS, DELTA_KEYS

CSV_HEADER = ['Module'] + [COLUMN_LABELS[k] for k in DELTA_KEYS]
CSV_FILENAME = 'thynk-roi-summary.csv'
XLSX_FILENAME = 'thynk-roi-model.xlsx'


def fmt_int(n):
    return f"{round(n or 0):,}"


def fmt_money(n):
    v = round(n or 0)
    return f"-${abs(v):,}" if v < 0 else f"${v:,}"


def _csv_cells(label, row):
    return [label] + [fmt_money(row[k]) if k == 'revenue' else fmt_int(row[k]) for k in DELTA_KEYS]


def export_csv(summary):
    """Summary rows + Total row; every cell quoted."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(CSV_HEADER)
    for row in summary['rows']:
        writer.writerow(_csv_cells(row['label'], row))
    writer.writerow(_csv_cells('Total', summary['totals']))
    return buf.getvalue()


def _ws_write(ws, headers, rows):
    hf = Font(bold=True, color='FFFFFF', size=11)
    hfill = PatternFill(start_color='1F2A44', end_color='1F2A44', fill_type='solid')
    tb = Border(left=Side(style='thin'), right=Side(style='thin'),
                top=Side(style='thin'), bottom=Side(style='thin'))
    for c, h in enumerate(headers, 1):
        cell = ws.cell(row=1, column=c, value=h)
        cell.font = hf; cell.fill = hfill; cell.alignment = Alignment(horizontal='center'); cell.border = tb
    for r, row in enumerate(rows, 2):
        for c, val in enumerate(row, 1):
            cell = ws.cell(row=r, column=c, value=val); cell.border = tb
    for col in ws.columns:
        ml = max(len(str(cell.value or '')) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(ml + 2, 48)


def build_workbook(scenario, results):
    """Workbook with Summary, Modules, Assumptions and Capacity sheets."""
    wb = openpyxl.Workbook()
    summary = results['summary']

    # 1. Summary (numeric cells, rounded)
    ws = wb.active
    ws.title = 'Summary'
    rows = [[r['label']] + [round(r[k]) for k in DELTA_KEYS] for r in summary['rows']]
    rows.append(['Total'] + [round(summary['totals'][k]) for k in DELTA_KEYS])
    _ws_write(ws, CSV_HEADER, rows)

    # 2. Modules: Thynk-arm figures and capacity status
    ws2 = wb.create_sheet('Modules')
    _ws_write(ws2, ['ID', 'Module', 'Group', 'Enabled', 'Status', 'Coverage Factor', 'Exams',
                    'Clinics (Thynk)', 'Procedures (Thynk)', 'da Vinci (Thynk)', 'ION (Thynk)',
                    'Revenue Δ', 'Leakage Avoided'], [
        [m['id'], m['label'], m['group'], 'Yes' if m['enabled'] else 'No', m['statusLabel'],
         m['gateFactor'], round(m['exams']), round(m['clinics']), round(m['procedures']),
         round(m['robotic']), round(m['ion']), round(m['revenue']), round(m['leakage'])]
        for m in results['modules']
    ])

    # 3. Assumptions
    params = scenario['params']
    ws3 = wb.create_sheet('Assumptions')
    assumption_rows = [[k, params[k]] for k in (
        'annualCts', 'monthlyLcs', 'annualProstateMrs', 'commercialPct', 'retainedPct',
        'ionCount', 'ionCapacity', 'dvCount', 'dvCapacity')]
    for ptype in PRICE_TYPES:
        for payer in PAYERS:
            assumption_rows.append([f'price.{ptype}.{payer}', params['prices'][ptype][payer]])
    for key, label in SERVICES.items():
        assumption_rows.append([f'service.{label}', 'Yes' if params['services'][key] else 'No'])
    _ws_write(ws3, ['Parameter', 'Value'], assumption_rows)

    # 4. Capacity ledger after the pass
    ws4 = wb.create_sheet('Capacity')
    _ws_write(ws4, ['Pool', 'Capacity', 'Used', 'Remaining', 'Utilization'], [
        [p['label'], p['capacity'], round(p['used']), round(p['remaining']), f"{p['utilization']:.0%}"]
        for p in results['ledger'].values()
    ])
    return wb


def export_xlsx(scenario, results):
    """Workbook bytes, ready to send as an attachment."""
    wb = build_workbook(scenario, results)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()

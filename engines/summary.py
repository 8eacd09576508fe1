"""
Thynk ROI Modeler: Summary Aggregator
Per-module delta rows (catalog order) + totals row + chart series.
"""

DELTA_KEYS = ('clinics', 'fups', 'procs', 'rob', 'ion', 'revenue')

COLUMN_LABELS = {
    'clinics': 'Clinics Δ',
    'fups': 'Follow-ups Δ',
    'procs': 'Procedures Δ',
    'rob': 'da Vinci Δ',
    'ion': 'ION Δ',
    'revenue': 'Revenue Δ',
}


def build_summary(results):
    """One row per module (disabled modules included as zeros) plus totals."""
    rows = []
    totals = {k: 0 for k in DELTA_KEYS}
    for r in results:
        deltas = r.get('deltas', {})
        row = {'id': r['id'], 'label': r['label'], 'enabled': r.get('enabled', False)}
        for k in DELTA_KEYS:
            row[k] = deltas.get(k, 0)
            totals[k] += row[k]
        rows.append(row)
    return {'rows': rows, 'totals': totals}


def chart_series(rows):
    """Series for the volume and revenue bar charts (negatives clipped to zero)."""
    return {
        'labels': [r['label'] for r in rows],
        'procedures': [max(r['procs'], 0) for r in rows],
        'robotic': [max(r['rob'], 0) for r in rows],
        'ion': [max(r['ion'], 0) for r in rows],
        'revenue': [max(r['revenue'], 0) for r in rows],
    }


def headline(results, summary):
    enabled = [r for r in results if r.get('enabled')]
    return {
        'modulesEnabled': len(enabled),
        'modulesTotal': len(results),
        'modulesCapped': sum(1 for r in enabled if r['status'].endswith('capped')),
        'leakageAvoided': sum(r['leakage'] for r in results),
        'revenueDelta': summary['totals']['revenue'],
        'procedureDelta': summary['totals']['procs'],
    }

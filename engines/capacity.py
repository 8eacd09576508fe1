"""
Thynk ROI Modeler: Capacity Ledger
Shared device-hour pools for the ION and da Vinci platforms.

Pools:
  1. ion:     ionCount × ionCapacity procedures/year
  2. davinci: dvCount × dvCapacity procedures/year

The ledger is rebuilt at the start of every recalculation pass and only ever
drawn down during that pass. Modules draw strictly in catalog order
(first-come allocation): an earlier module's grant reduces what later modules
can get. draw() is the only mutator.
"""
from engines.catalog import DEVICE_POOLS


def _pool_capacity(params, pool_key):
    count_key, unit_key, _ = DEVICE_POOLS[pool_key]
    count = max(0, params.get(count_key, 0) or 0)
    per_unit = max(0, params.get(unit_key, 0) or 0)
    return count * per_unit


def build_ledger(params):
    """Fresh ledger with every pool at full capacity."""
    ledger = {}
    for pool_key, (_, _, label) in DEVICE_POOLS.items():
        capacity = _pool_capacity(params, pool_key)
        ledger[pool_key] = {'label': label, 'capacity': capacity, 'remaining': capacity}
    return ledger


def reset_ledger(ledger, params):
    """Refill every pool to count × per-unit capacity (in place)."""
    for pool_key in DEVICE_POOLS:
        capacity = _pool_capacity(params, pool_key)
        pool = ledger.setdefault(pool_key, {'label': DEVICE_POOLS[pool_key][2]})
        pool['capacity'] = capacity
        pool['remaining'] = capacity
    return ledger


def draw(ledger, pool_key, amount):
    """
    Reserve up to `amount` from a pool.

    Args:
        ledger: ledger dict (modified in place)
        pool_key: 'ion' or 'davinci'; anything else raises KeyError
        amount: requested procedures

    Returns:
        dict with granted amount, whether the request was capped, and what is left
    """
    pool = ledger[pool_key]
    requested = max(0, amount or 0)
    available = max(0, pool['remaining'])

    granted = min(requested, available)
    pool['remaining'] = available - granted

    return {
        'requested': requested,
        'granted': granted,
        'capped': requested > available,
        'remaining': pool['remaining'],
    }


def ledger_snapshot(ledger):
    """Per-pool capacity / remaining / used / utilization for display."""
    snapshot = {}
    for pool_key, pool in ledger.items():
        capacity = pool['capacity']
        used = capacity - pool['remaining']
        snapshot[pool_key] = {
            'label': pool['label'],
            'capacity': capacity,
            'remaining': pool['remaining'],
            'used': used,
            'utilization': round(used / capacity, 4) if capacity > 0 else 0,
        }
    return snapshot

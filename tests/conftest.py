"""
Pytest configuration and fixtures for the Thynk ROI model tests.
"""
import copy
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from engines.catalog import default_params  # noqa: E402
from engines.scenario import default_scenario  # noqa: E402


@pytest.fixture
def params():
    """Global defaults (100k CTs, 10% commercial, 75% retained, ION 2×250, da Vinci 3×275)."""
    return default_params()


@pytest.fixture
def scenario():
    return default_scenario()


def _make_state(module_id, enabled=True, **values):
    return {'id': module_id, 'enabled': enabled, 'values': values}


@pytest.fixture
def make_state():
    """Module state builder: only the given coefficient values, rest from catalog."""
    return _make_state


@pytest.fixture
def ion_hungry_states():
    """Two modules each requesting exactly 80 ION procedures, nothing else."""
    common = dict(ctsPerYear=1000, detectionPct=100, captureThynk=100, captureBaseline=0,
                  conversionToProcedure=8, ionShareOfProcedures=100, roboticShareOfProcedures=0,
                  specialists=10, capacityPerSpecialist=1000)
    return _make_state('pulm', **common), _make_state('ila', **common)


@pytest.fixture
def tight_ion_params(params):
    """ION pool of exactly 100."""
    p = copy.deepcopy(params)
    p['ionCount'] = 1
    p['ionCapacity'] = 100
    return p

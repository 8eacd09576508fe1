"""
Thynk ROI Modeler: Scenario Codec
Scenario <-> opaque URL-safe token (base64 of compact JSON).

The token carries the global params and, per module, the enabled flag and the
coefficient values. Loading never raises: a missing or malformed token keeps
the current scenario and returns a warning instead.
"""
import base64
import binascii
import json
import logging

from engines.catalog import has_module
from engines.errors import ScenarioDecodeError
from engines.scenario import build_scenario, merge_params, sanitize_params

TOKEN_PREFIX = 's='


def scenario_payload(scenario):
    return {
        'inputs': scenario['params'],
        'modules': [{'id': m['id'], 'enabled': m['enabled'], 'values': m['values']}
                    for m in scenario['modules']],
    }


def encode_scenario(scenario):
    raw = json.dumps(scenario_payload(scenario), separators=(',', ':'), sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode('utf-8')).decode('ascii').rstrip('=')


def decode_scenario(token):
    """Token -> payload dict. Raises ScenarioDecodeError on anything malformed."""
    if not token or not isinstance(token, str):
        raise ScenarioDecodeError('empty scenario token')
    token = token.strip()
    if token.startswith('#'):
        token = token[1:]
    if token.startswith(TOKEN_PREFIX):
        token = token[len(TOKEN_PREFIX):]
    padded = token + '=' * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode('ascii'))
        payload = json.loads(raw.decode('utf-8'))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise ScenarioDecodeError(f'malformed scenario token: {e}') from e

    if not isinstance(payload, dict):
        raise ScenarioDecodeError('scenario payload is not an object')
    if not isinstance(payload.get('inputs', {}), dict):
        raise ScenarioDecodeError("scenario 'inputs' is not an object")
    if not isinstance(payload.get('modules', []), list):
        raise ScenarioDecodeError("scenario 'modules' is not a list")
    return payload


def scenario_from_payload(payload, current=None):
    """Overlay a decoded payload on the current params and catalog defaults.
    Saved modules with unknown ids are skipped; modules absent from the payload
    keep their current state."""
    base_params = merge_params(sanitize_params(current['params'] if current else None),
                               payload.get('inputs') or {})

    overrides = {}
    if current:
        for m in current['modules']:
            overrides[m['id']] = {'enabled': m['enabled'], 'values': m['values']}
    for saved in payload.get('modules') or []:
        if not isinstance(saved, dict) or not isinstance(saved.get('id'), str) or not has_module(saved['id']):
            logging.warning(f"scenario load: skipping unknown module entry {saved!r:.60}")
            continue
        values = saved.get('values') if isinstance(saved.get('values'), dict) else {}
        overrides[saved['id']] = {'enabled': saved.get('enabled', True), 'values': values}
    return build_scenario(base_params, overrides)


def _restore(payload, current):
    try:
        return scenario_from_payload(payload, current)
    except (TypeError, ValueError, OverflowError, AttributeError) as e:
        raise ScenarioDecodeError(f'unusable scenario payload: {type(e).__name__}: {e}') from e


def load_scenario(token, current):
    """
    Restore a scenario from a token.

    Returns:
        (scenario, warning). warning is None on success; on failure the
        current scenario is returned unchanged with a warning message.
    """
    try:
        payload = decode_scenario(token)
        scenario = _restore(payload, current)
    except ScenarioDecodeError as e:
        logging.warning(f"scenario load failed: {e}")
        return current, f'Failed to load scenario: {e}'
    return scenario, None

"""
Thynk ROI Modeler: Module Catalog
Static clinical-finding pathways, service list, price types and global defaults.

Module kinds (exam source):
  lcs: recurring lung cancer screening, volume = monthly LCS × 12
  ct:  incidental findings on CT, volume = module share of annual CTs
  mr:  dedicated prostate MR, volume = annual prostate MRs

Catalog order is the allocation order: earlier modules get first claim on the
shared ION / da Vinci capacity.
"""
import copy

SERVICES = {
    'radOnc': 'Radiation Oncology',
    'chemo': 'Medical Oncology / Chemo',
    'vascular': 'Vascular Surgery',
    'ip': 'Interventional Pulmonology',
    'gyn': 'Gynecologic Oncology',
    'ctSurg': 'Cardiothoracic Surgery',
    'urology': 'Urology',
    'giOnc': 'GI / Surgical Oncology',
}

EXAM_KINDS = ('lcs', 'ct', 'mr')

# Billable service types × payer classes
PRICE_TYPES = ('clinic', 'imaging', 'proc', 'rob')
PAYERS = ('medicare', 'commercial')

# Shared device pools: pool key -> (count param, per-unit capacity param, label)
DEVICE_POOLS = {
    'ion': ('ionCount', 'ionCapacity', 'ION'),
    'davinci': ('dvCount', 'dvCapacity', 'da Vinci'),
}

# Conversion factor when any required service line is missing
COVERAGE_GAP_FACTOR = 0.4

DEFAULT_PARAMS = {
    'annualCts': 100000,
    'monthlyLcs': 250,
    'annualProstateMrs': 500,
    'commercialPct': 10,
    'retainedPct': 75,
    'ionCount': 2,
    'ionCapacity': 250,
    'dvCount': 3,
    'dvCapacity': 275,
    'prices': {
        'clinic': {'medicare': 150, 'commercial': 280},
        'imaging': {'medicare': 250, 'commercial': 520},
        'proc': {'medicare': 5000, 'commercial': 11000},
        'rob': {'medicare': 6500, 'commercial': 14000},
    },
    'services': {key: True for key in SERVICES},
}

# Per-kind exam volume override field (None = use the global volume)
OVERRIDE_FIELD = {
    'lcs': 'lcsMonthlyOverride',
    'ct': 'ctsPerYear',
    'mr': 'annualMrOverride',
}

# Per-kind actionable/detection rate field
RATE_FIELD = {
    'lcs': 'actionablePct',
    'ct': 'detectionPct',
    'mr': 'detectionPct',
}


def _ct_module(mid, name, group, share, detection, conversion, ion, robotic,
               followups, specialists, capacity, services, guideline, blurb):
    return {
        'id': mid, 'name': name, 'group': group, 'kind': 'ct',
        'defaults': {
            'ctsPerYear': None,
            'shareOfCts': share,
            'detectionPct': detection,
            'captureThynk': 70,
            'captureBaseline': 30,
            'conversionToProcedure': conversion,
            'ionShareOfProcedures': ion,
            'roboticShareOfProcedures': robotic,
            'followupsPerProcedure': followups,
            'specialists': specialists,
            'capacityPerSpecialist': capacity,
        },
        'requiredServices': services,
        'guidelines': [guideline],
        'blurb': blurb,
    }


MODULE_CATALOG = [
    {
        'id': 'lcs', 'name': 'Lung Cancer Screening (LCS)', 'group': 'Pulmonary', 'kind': 'lcs',
        'defaults': {
            'lcsMonthlyOverride': None,
            'actionablePct': 12,
            'captureThynk': 70,
            'captureBaseline': 30,
            'conversionToProcedure': 35,
            'ionShareOfProcedures': 55,
            'roboticShareOfProcedures': 10,
            'followupsPerProcedure': 1.1,
            'specialists': 4,
            'capacityPerSpecialist': 160,
        },
        'requiredServices': ['ip', 'ctSurg'],
        'guidelines': [{'label': 'ACR Lung-RADS v2022',
                        'url': 'https://www.acr.org/-/media/ACR/Files/RADS/Lung-RADS/Lung-RADS-2022.pdf'}],
        'blurb': 'Captures LR3/4 follow-ups, navigational bronch, and surgical resections via structured pathways.',
    },
    _ct_module('pulm', 'Incidental Pulmonary Nodules', 'Pulmonary', 0.18, 4.5, 28, 50, 15, 1.2, 3, 150,
               ['ip', 'ctSurg'],
               {'label': 'Fleischner (2017)', 'url': 'https://pubs.rsna.org/doi/epdf/10.1148/radiol.2017161659'},
               'Automates Fleischner-based recall and escalates 8mm+ nodules to bronch/surgery per clinic protocol.'),
    _ct_module('renal', 'Renal Mass', 'Urology', 0.17, 2.4, 40, 0, 70, 2.1, 4, 135,
               ['urology'],
               {'label': 'ACR Incidental Renal (Bosniak 2019)',
                'url': 'https://www.jacr.org/article/S1546-1440(17)30497-0/pdf'},
               'Tracks Bosniak III/IV and enhancing masses; routes to urology for ablation/partial nephrectomy.'),
    _ct_module('adrenal', 'Adrenal Incidentaloma', 'Endocrine', 0.08, 1.0, 16, 0, 35, 1.1, 2, 120,
               ['urology'],
               {'label': 'ACR/ESE/AAES Adrenal', 'url': 'https://www.jacr.org/article/S1546-1440(17)30551-3/pdf'},
               'Separates benign/managed vs 1-4cm indeterminate vs >4cm/high HU for endocrine/urology pathways.'),
    _ct_module('liver', 'Liver Lesion', 'HPB', 0.10, 1.7, 18, 0, 15, 1.4, 3, 140,
               ['giOnc'],
               {'label': 'ACR LI-RADS / AASLD', 'url': 'https://www.jacr.org/article/S1546-1440(17)30889-X/pdf'},
               'LI-RADS 4/5 prompt HPB consult, multiphasic MR/CT, and tumor board scheduling.'),
    _ct_module('pancreas', 'Pancreatic Cyst/Mass', 'HPB', 0.07, 1.3, 22, 0, 10, 1.8, 3, 130,
               ['giOnc'],
               {'label': 'AGA / Fukuoka Cysts',
                'url': 'https://journals.lww.com/ajg/fulltext/2018/04000/'
                       'acg_clinical_guideline__diagnosis_and_management.8.aspx'},
               'Triages IPMN/MCN per size and worrisome features; EUS/MRCP cadence with HPB oversight.'),
    # ENT/endocrine surgery has no toggle of its own; mapped to surgical oncology coverage
    _ct_module('thyroid', 'Thyroid Nodule (TI-RADS)', 'Endocrine', 0.12, 2.8, 20, 0, 20, 1.9, 3, 150,
               ['giOnc'],
               {'label': 'ACR TI-RADS',
                'url': 'https://www.acr.org/Clinical-Resources/Reporting-and-Data-Systems/TI-RADS'},
               'Coordinates US/FNA for TR4-5; schedules endocrine/ENT surgery for appropriate cases.'),
    _ct_module('vascular', 'Aneurysm (AAA/TAA)', 'Vascular', 0.06, 1.1, 10, 0, 0, 1.0, 2, 140,
               ['vascular'],
               {'label': 'SVS / ACC/AHA', 'url': 'https://vascular.org/'},
               'AAA 3.0-3.9cm annual US; 4.0-5.4cm semi-annual; 5.5cm+ referral for repair evaluation.'),
    _ct_module('ovary', 'Ovarian (O-RADS)', 'Gyn', 0.05, 0.8, 14, 0, 20, 1.2, 2, 130,
               ['gyn'],
               {'label': 'ACR O-RADS / SRU', 'url': 'https://www.jacr.org/article/S1546-1440(18)30839-1/pdf'},
               'US follow-up for simple cysts; O-RADS 4-5 to gynecologic oncology.'),
    _ct_module('lymph', 'Lymph Nodes', 'General', 0.14, 2.2, 12, 0, 0, 1.1, 3, 140,
               ['giOnc'],
               {'label': 'ACR Incidental Lymph Nodes',
                'url': 'https://www.jacr.org/article/S1546-1440(13)00305-0/pdf'},
               'Biopsy planning for >1.5cm/necrotic nodes; 3-month imaging for 1-1.5cm.'),
    {
        'id': 'prostate', 'name': 'Prostate (PI-RADS)', 'group': 'Urology', 'kind': 'mr',
        'defaults': {
            'annualMrOverride': None,
            'detectionPct': 20,
            'captureThynk': 70,
            'captureBaseline': 30,
            'conversionToProcedure': 55,
            'ionShareOfProcedures': 0,
            'roboticShareOfProcedures': 60,
            'followupsPerProcedure': 1.0,
            'specialists': 3,
            'capacityPerSpecialist': 150,
        },
        'requiredServices': ['urology'],
        'guidelines': [{'label': 'AUA / NCCN / PI-RADS', 'url': 'https://www.auanet.org/guidelines'}],
        'blurb': 'Routes PI-RADS 4-5 for targeted biopsy and surgical consultation; da Vinci share adjustable.',
    },
    _ct_module('cac', 'CAC / Valvular', 'Cardio', 0.10, 5.0, 6, 0, 0, 1.0, 4, 180,
               ['vascular'],
               {'label': 'ACC/AHA / SCCT', 'url': 'https://www.jacc.org/'},
               'Risk management plus selective cath/PCI; focus on leakage reduction to in-system cardiology.'),
    _ct_module('ila', 'Interstitial Lung Abnormalities', 'Pulmonary', 0.10, 2.0, 5, 10, 0, 1.0, 3, 150,
               ['ip'],
               {'label': 'ATS/ERS/JRS/ALAT', 'url': 'https://www.thoracic.org/'},
               'Ensures pulmonology follow-up and guideline HRCT cadence; selective advanced interventions.'),
    _ct_module('breast', 'Incidental Breast (BI-RADS)', 'Breast', 0.06, 0.7, 18, 0, 0, 1.0, 3, 140,
               ['giOnc'],
               {'label': 'ACR BI-RADS / SBI',
                'url': 'https://www.acr.org/Clinical-Resources/Reporting-and-Data-Systems/Bi-Rads'},
               'Short-interval diagnostic mammo for BI-RADS 3; core needle biopsy and surgical referrals for 4-5.'),
    _ct_module('hernia', 'Hernia (All Types)', 'General Surgery', 0.10, 3.0, 60, 0, 75, 1.3, 4, 150,
               ['giOnc'],
               {'label': 'AHS / SAGES', 'url': 'https://americasherniasociety.org/'},
               'Routes symptomatic or high-risk hernias (inguinal, ventral, hiatal) for surgical consultation '
               'and da Vinci repair.'),
]

_CATALOG_INDEX = {m['id']: m for m in MODULE_CATALOG}


def get_module(module_id):
    """Catalog entry by id. Raises KeyError for unknown ids."""
    return _CATALOG_INDEX[module_id]


def has_module(module_id):
    return module_id in _CATALOG_INDEX


def module_ids():
    return [m['id'] for m in MODULE_CATALOG]


def default_params():
    return copy.deepcopy(DEFAULT_PARAMS)


def default_values(module_id):
    return dict(get_module(module_id)['defaults'])


def catalog_view():
    """Catalog as served to the frontend (no mutable references)."""
    return [{
        'id': m['id'], 'name': m['name'], 'group': m['group'], 'kind': m['kind'],
        'requiredServices': list(m['requiredServices']),
        'requiredServiceLabels': [SERVICES[s] for s in m['requiredServices']],
        'defaults': dict(m['defaults']),
        'overrideField': OVERRIDE_FIELD[m['kind']],
        'rateField': RATE_FIELD[m['kind']],
        'guidelines': [dict(g) for g in m['guidelines']],
        'blurb': m['blurb'],
    } for m in MODULE_CATALOG]

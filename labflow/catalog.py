"""
Fixed catalogs: restoration types, case statuses, material categories and units.
"""

RESTORATION_GROUPS = {
    'Crowns': [
        'PFM Crown', 'Zirconia Crown', 'E.max Crown',
        'Full-Cast Gold Crown', 'Porcelain Crown', 'Provisional/Temporary Crown',
    ],
    'Bridges': [
        'PFM Bridge', 'Zirconia Bridge', 'E.max Bridge',
        'Maryland Bridge', 'Provisional/Temporary Bridge',
    ],
    'Implants': [
        'Implant Crown', 'Custom Abutment', 'Screw-Retained Crown',
        'Implant Bridge', 'All-on-4 Final', 'All-on-6 Final',
        'Implant Overdenture', 'Hybrid Denture',
    ],
    'Veneers & Inlays/Onlays': [
        'E.max Veneer', 'E.max Veneer Set', 'Zirconia Veneer',
        'Porcelain Inlay', 'Porcelain Onlay', 'Gold Inlay', 'Gold Onlay',
    ],
    'Removables': [
        'Full Denture', 'Partial Denture', 'Immediate Denture',
        'Flipper', 'Overdenture',
    ],
    'Appliances': [
        'Night Guard', 'Occlusal Splint', 'Surgical Guide',
        'Bleaching Tray', 'Orthodontic Retainer', 'Sports Mouthguard',
        'Sleep Apnea Appliance',
    ],
    'Other': [
        'Wax Try-In', 'Diagnostic Wax-Up', 'Post and Core', 'Other',
    ],
}

RESTORATION_TYPES = frozenset(t for group in RESTORATION_GROUPS.values() for t in group)

DEFAULT_RESTORATION_TYPE = 'Zirconia Crown'
DEFAULT_SHADE = 'A2'

# Forward path of a case. Also the status precedence used when sorting lists.
STATUS_FLOW = ['received', 'in_progress', 'quality_check', 'ready', 'shipped']

STATUS_LABELS = {
    'received': 'Received',
    'in_progress': 'In Progress',
    'quality_check': 'QC Check',
    'ready': 'Ready',
    'shipped': 'Shipped',
}

STATUS_CHOICES = [(s, STATUS_LABELS[s]) for s in STATUS_FLOW]

# status -> status reachable by a single backward move
BACKWARD_MOVES = {
    'quality_check': 'in_progress',
    'ready': 'quality_check',
    'shipped': 'ready',
}

MATERIAL_CATEGORIES = ['Zirconia', 'PFM', 'Acrylic', 'E.max', 'Metal', 'Composite', 'Wax', 'Other']
MATERIAL_UNITS = ['pcs', 'ml', 'g', 'kg', 'oz', 'discs', 'blocks', 'sheets']
DEFAULT_MATERIAL_UNIT = 'pcs'


def status_rank(status):
    """1-based position in STATUS_FLOW; unknown statuses sort first."""
    try:
        return STATUS_FLOW.index(status) + 1
    except ValueError:
        return 0

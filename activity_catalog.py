"""
activity_catalog.py — Fixed vocabulary of cultivation activities.

Each activity kind belongs to exactly one category. The catalog is static
reference data shipped with the application; nothing here is persisted or
mutated at runtime.
"""

from collections import OrderedDict, namedtuple

from errors import InvalidActivityError


# Categories, in display order
PLANTING_PREP = 'Planting Prep'
CROP_CARE = 'Crop Care'
HARVEST_CATEGORY = 'Harvest'
RND = 'R&D'

CATEGORIES = (PLANTING_PREP, CROP_CARE, HARVEST_CATEGORY, RND)

# Activity kinds
LAND_PREPARATION = 'Land Preparation'
NURSERY = 'Nursery'
TRANSPLANTING = 'Transplanting'
IRRIGATION_MANAGEMENT = 'Irrigation Management'
FERTILIZATION = 'Fertilization'
WEED_CONTROL = 'Weed Control'
PEST_DISEASE_CONTROL = 'Pest & Disease Control'
HARVEST_FORECASTING = 'Harvest Forecasting'
HARVEST = 'Harvest'
LAND_REHABILITATION = 'Land Rehabilitation'
RESEARCH = 'R&D'

ActivityKind = namedtuple('ActivityKind', ['name', 'local_name', 'category'])

# Local names are the Indonesian labels used by field staff.
CATALOG = (
    ActivityKind(LAND_PREPARATION, 'Pengolahan Tanah', PLANTING_PREP),
    ActivityKind(NURSERY, 'Persemaian', PLANTING_PREP),
    ActivityKind(TRANSPLANTING, 'Penanaman', PLANTING_PREP),
    ActivityKind(IRRIGATION_MANAGEMENT, 'Pengelolaan Air (Irigasi Presisi)', CROP_CARE),
    ActivityKind(FERTILIZATION, 'Pemupukan', CROP_CARE),
    ActivityKind(WEED_CONTROL, 'Pengendalian Gulma', CROP_CARE),
    ActivityKind(PEST_DISEASE_CONTROL, 'Pengendalian Hama Penyakit', CROP_CARE),
    ActivityKind(HARVEST_FORECASTING, 'Forecasting Panen', HARVEST_CATEGORY),
    ActivityKind(HARVEST, 'Panen', HARVEST_CATEGORY),
    ActivityKind(LAND_REHABILITATION, 'Rehabilitasi Lahan', PLANTING_PREP),
    ActivityKind(RESEARCH, 'RnD', RND),
)

_BY_NAME = {kind.name: kind for kind in CATALOG}
_BY_LOCAL_NAME = {kind.local_name: kind for kind in CATALOG}

PRIORITIES = ('low', 'medium', 'high')


def activity_kinds():
    """Return all activity kind names in catalog order."""
    return [kind.name for kind in CATALOG]


def categories():
    """Return all categories in display order."""
    return list(CATEGORIES)


def is_valid_kind(name):
    """True if name is a catalog kind (English name only)."""
    return name in _BY_NAME


def resolve_kind(name):
    """
    Look up a catalog entry by English or local name.

    Raises:
        InvalidActivityError: name is not in the catalog.
    """
    if isinstance(name, str):
        kind = _BY_NAME.get(name.strip()) or _BY_LOCAL_NAME.get(name.strip())
        if kind:
            return kind
    raise InvalidActivityError(f"Unknown activity kind: {name!r}")


def category_for(name):
    """Return the category an activity kind belongs to."""
    return resolve_kind(name).category


def default_priority(category):
    """Preparation and harvest work is high priority, the rest medium."""
    if category in (PLANTING_PREP, HARVEST_CATEGORY):
        return 'high'
    return 'medium'


def options():
    """
    Catalog grouped by category for the planning UI.

    Returns:
        OrderedDict: {category: [{'name', 'local_name'}, ...]}
    """
    grouped = OrderedDict((cat, []) for cat in CATEGORIES)
    for kind in CATALOG:
        grouped[kind.category].append({
            'name': kind.name,
            'local_name': kind.local_name,
        })
    return grouped

"""
template_engine.py — Builds and re-anchors cultivation activity templates.

This module implements:
- The standard rice cultivation plan, built from a static HST schedule
- Recalculation of a template for a new planting date (new disjoint copy)
- Custom activities appended to an in-progress plan
- Saving/loading templates through the template storage collaborator

Algorithm details:
- Activities with an HST range always get
  start_date = planting_date + hst_min and end_date = planting_date + hst_max
- Activities without HST keep their absolute dates on recalculation, unless
  shift_non_hst_by_delta is set: then they move by the planting date delta
- Parent/child links are same-template references. The default plan is
  built in one pass, parents before children, resolving parents by title
"""

import copy
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta

import database
from activity_catalog import (
    PRIORITIES, LAND_PREPARATION, NURSERY, TRANSPLANTING, IRRIGATION_MANAGEMENT,
    FERTILIZATION, WEED_CONTROL, PEST_DISEASE_CONTROL, HARVEST_FORECASTING,
    HARVEST, LAND_REHABILITATION, RESEARCH, default_priority, is_valid_kind, resolve_kind,
)
from errors import InvalidActivityError, TemplateNotFoundError, UnresolvedParentError
from hst import date_from_offset, offset_from_date, parse_date, parse_optional_date
from models import Activity, Template, optional_int, parse_parameters

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_ID = 'default_template'
DEFAULT_TEMPLATE_NAME = 'Standard Rice Cultivation'

# Standard rice cultivation plan.
# (no, title, hst_min, hst_max, activity_kind, parent_title, remark)
# Parents must come before their children.
DEFAULT_SCHEDULE = (
    # Planting Prep: Land Preparation
    (1, 'Land Preparation', -30, -1, LAND_PREPARATION, None, None),
    (2, 'Bund Repair + Drainage Channels', -30, -4, LAND_PREPARATION, 'Land Preparation', None),
    (3, 'Initial Field Irrigation', -19, -17, LAND_PREPARATION, 'Land Preparation', None),
    (4, 'First Ploughing', -15, -13, LAND_PREPARATION, 'Land Preparation', None),
    (5, 'Field Flooding', -14, -12, LAND_PREPARATION, 'Land Preparation', None),
    (6, 'Soil Conditioning', -10, -8, LAND_PREPARATION, 'Land Preparation', None),
    (7, 'Second Ploughing (Leveling)', -6, -4, LAND_PREPARATION, 'Land Preparation', None),
    (8, 'Quality Control Check', -5, -3, LAND_PREPARATION, 'Land Preparation', None),
    (9, 'Water Drawdown', -1, -1, LAND_PREPARATION, 'Land Preparation', None),

    # Planting Prep: Nursery
    (10, 'Nursery', -25, -1, NURSERY, None, None),
    (11, 'Seed Preparation', -25, -23, NURSERY, 'Nursery', None),
    (12, 'Soil + Dapog Tray Preparation', -24, -22, NURSERY, 'Nursery', None),
    (13, 'Seed Sowing', -22, -21, NURSERY, 'Nursery', None),
    (14, 'Nursery Maintenance', -21, -1, NURSERY, 'Nursery', None),
    (15, 'Quality Control Check (Nursery)', -11, -6, NURSERY, 'Nursery', None),
    (16, 'Seedling Transfer to Field', -2, -1, NURSERY, 'Nursery', None),

    # Planting Prep: Transplanting
    (17, 'Transplanting', -2, 5, TRANSPLANTING, None, None),
    (18, 'Transplanter Machine Preparation', -2, -1, TRANSPLANTING, 'Transplanting', None),
    (19, 'Seedling Planting', 0, 0, TRANSPLANTING, 'Transplanting', None),
    (20, 'Quality Control Check (Transplanting)', 1, 5, TRANSPLANTING, 'Transplanting', None),

    # Crop Care: Irrigation Management
    (21, 'Irrigation Management', 1, 100, IRRIGATION_MANAGEMENT, None, None),
    (22, 'Post-Planting Irrigation', 1, 3, IRRIGATION_MANAGEMENT, 'Irrigation Management', None),
    (23, 'Water Availability Monitoring', 7, 90, IRRIGATION_MANAGEMENT, 'Irrigation Management', None),
    (24, 'Field Watering', 14, 90, IRRIGATION_MANAGEMENT, 'Irrigation Management', None),
    (25, 'Pre-Harvest Drainage', 90, 100, IRRIGATION_MANAGEMENT, 'Irrigation Management', None),

    # Crop Care: Fertilization
    (26, 'Fertilization', 0, 70, FERTILIZATION, None, None),
    (27, 'Basal Fertilization', 0, 14, FERTILIZATION, 'Fertilization', None),
    (28, 'Fertilization Result Monitoring', 3, 17, FERTILIZATION, 'Fertilization', 'Every 7 days'),
    (29, 'Top Dressing 1', 21, 25, FERTILIZATION, 'Fertilization', None),
    (30, 'Fertilization Result Monitoring', 24, 28, FERTILIZATION, 'Fertilization', None),
    (31, 'Top Dressing 2', 31, 35, FERTILIZATION, 'Fertilization', 'Every 7 days'),
    (32, 'Fertilization Result Monitoring', 34, 38, FERTILIZATION, 'Fertilization', None),
    (33, 'Supplementary Fertilization (optional)', 50, 70, FERTILIZATION, 'Fertilization', None),

    # Crop Care: Weed Control
    (34, 'Weed Control', -4, 50, WEED_CONTROL, None, None),
    (35, 'Pre-Planting Herbicide Application', -4, -2, WEED_CONTROL, 'Weed Control', None),
    (36, 'Weed Growth Monitoring', 7, 50, WEED_CONTROL, 'Weed Control', None),
    (37, 'Mechanical Weeding', 14, 20, WEED_CONTROL, 'Weed Control', None),
    (38, 'Post-Emergence Herbicide Application', 28, 32, WEED_CONTROL, 'Weed Control', None),

    # Crop Care: Pest & Disease Control
    (39, 'Pest & Disease Control', 7, 100, PEST_DISEASE_CONTROL, None, None),
    (40, 'Crop Pest Monitoring', 7, 90, PEST_DISEASE_CONTROL, 'Pest & Disease Control', None),
    (41, 'Pest Economic Threshold Calculation', 7, 90, PEST_DISEASE_CONTROL, 'Pest & Disease Control', None),
    (42, 'Biological / Mechanical Control', 7, 100, PEST_DISEASE_CONTROL, 'Pest & Disease Control', None),
    (43, 'Pesticide Application', 14, 100, PEST_DISEASE_CONTROL, 'Pest & Disease Control', None),

    # Harvest: Harvest Forecasting
    (44, 'Harvest Forecasting', 86, 97, HARVEST_FORECASTING, None, None),
    (45, 'Crop Cut Sampling', 86, 96, HARVEST_FORECASTING, 'Harvest Forecasting', None),
    (46, 'Yield Estimation', 87, 97, HARVEST_FORECASTING, 'Harvest Forecasting', None),

    # Harvest: Harvest
    (47, 'Harvest', 99, 110, HARVEST, None, None),
    (48, 'Combine Harvester Preparation', 99, 109, HARVEST, 'Harvest', None),
    (49, 'Harvesting', 100, 110, HARVEST, 'Harvest', None),
    (50, 'Harvest Yield Calculation', 100, 110, HARVEST, 'Harvest', None),
    (51, 'Harvest Transfer to Warehouse', 100, 110, HARVEST, 'Harvest', None),

    # Planting Prep: Land Rehabilitation
    (52, 'Land Rehabilitation', 105, 126, LAND_REHABILITATION, None, None),
    (53, 'Soil Sampling', 105, 115, LAND_REHABILITATION, 'Land Rehabilitation', None),
    (54, 'Soil Analysis', 111, 116, LAND_REHABILITATION, 'Land Rehabilitation', None),
    (55, 'Soil Amendment Application', 121, 126, LAND_REHABILITATION, 'Land Rehabilitation', None),

    # R&D
    (57, 'Practice, Variety and Production Evaluation', 110, 120, RESEARCH, None, None),
    (58, 'Next Season Recommendation', 120, 130, RESEARCH, None, None),
)


def _new_activity_id():
    return f"activity_{uuid.uuid4().hex[:12]}"


def _new_template_id():
    return uuid.uuid4().hex


def _now():
    return datetime.now().isoformat(timespec='seconds')


def _store(store):
    return database if store is None else store


# ========================================
# Default plan
# ========================================

def build_activities(planting_date, schedule):
    """
    Build activities from (no, title, hst_min, hst_max, kind, parent_title, remark) rows.

    Top-level rows register their title as a parent; child rows look their
    parent up by title. Rows must be ordered parents-first.

    Raises:
        UnresolvedParentError: a row names a parent not created earlier.
    """
    planting_date = parse_date(planting_date)
    parent_ids = {}  # parent title → activity id
    activities = []

    for no, title, hst_min, hst_max, kind_name, parent_title, remark in schedule:
        kind = resolve_kind(kind_name)
        activity_id = f"activity_{no}"

        parent_id = None
        if parent_title:
            parent_id = parent_ids.get(parent_title)
            if parent_id is None:
                raise UnresolvedParentError(
                    f"Activity '{title}' references parent '{parent_title}' "
                    f"which has not been created yet."
                )
        else:
            parent_ids[title] = activity_id

        activities.append(Activity(
            id=activity_id,
            activity_kind=kind.name,
            title=title,
            hst_min=hst_min,
            hst_max=hst_max,
            start_date=date_from_offset(planting_date, hst_min),
            end_date=date_from_offset(planting_date, hst_max),
            parent_id=parent_id,
            category=kind.category,
            priority=default_priority(kind.category),
            remark=remark,
        ))

    return activities


def build_default_template(planting_date):
    """Standard rice cultivation template anchored on planting_date (HST 0)."""
    planting_date = parse_date(planting_date)
    return Template(
        id=DEFAULT_TEMPLATE_ID,
        name=DEFAULT_TEMPLATE_NAME,
        description='Complete rice cultivation plan with all standard activities',
        planting_date=planting_date,
        activities=build_activities(planting_date, DEFAULT_SCHEDULE),
        created_at=_now(),
    )


# ========================================
# Recalculation
# ========================================

def _reanchor(activity, new_planting_date, delta_days, shift_non_hst_by_delta):
    if activity.has_hst:
        return (date_from_offset(new_planting_date, activity.hst_min),
                date_from_offset(new_planting_date, activity.hst_max))
    if shift_non_hst_by_delta and delta_days:
        shift = timedelta(days=delta_days)
        return (activity.start_date + shift if activity.start_date else None,
                activity.end_date + shift if activity.end_date else None)
    return activity.start_date, activity.end_date


def _planting_delta(template, new_planting_date):
    if template.planting_date is None:
        return 0
    return offset_from_date(template.planting_date, new_planting_date)


def recalculate(template, new_planting_date, shift_non_hst_by_delta=False):
    """
    Produce a copy of template anchored on new_planting_date.

    Every activity gets a fresh id; parent references are rewritten through
    the old → new id table. The stored template is never modified.

    Args:
        template: Source Template.
        new_planting_date: New HST 0 date.
        shift_non_hst_by_delta: Move activities without HST by the same
            number of days as the planting date (default: keep their dates).

    Raises:
        InvalidDateError: new_planting_date does not parse.
        UnresolvedParentError: an activity points at a parent not in the template.
    """
    new_planting_date = parse_date(new_planting_date)
    delta_days = _planting_delta(template, new_planting_date)

    id_map = {a.id: _new_activity_id() for a in template.activities}

    activities = []
    for activity in template.activities:
        parent_id = None
        if activity.parent_id:
            parent_id = id_map.get(activity.parent_id)
            if parent_id is None:
                raise UnresolvedParentError(
                    f"Activity '{activity.title}' references unknown parent '{activity.parent_id}'."
                )
        start_date, end_date = _reanchor(
            activity, new_planting_date, delta_days, shift_non_hst_by_delta
        )
        activities.append(replace(
            activity,
            id=id_map[activity.id],
            parent_id=parent_id,
            start_date=start_date,
            end_date=end_date,
            parameters=copy.deepcopy(activity.parameters),
        ))

    return Template(
        id=_new_template_id(),
        name=template.name,
        description=template.description,
        planting_date=new_planting_date,
        activities=activities,
        created_at=_now(),
        source_template_id=template.id,
    )


def change_planting_date(template, new_planting_date, shift_non_hst_by_delta=False):
    """Re-anchor an in-progress plan in place of a new copy: ids are kept."""
    new_planting_date = parse_date(new_planting_date)
    delta_days = _planting_delta(template, new_planting_date)

    activities = []
    for activity in template.activities:
        start_date, end_date = _reanchor(
            activity, new_planting_date, delta_days, shift_non_hst_by_delta
        )
        activities.append(replace(activity, start_date=start_date, end_date=end_date))
    return replace(template, planting_date=new_planting_date, activities=activities)


# ========================================
# Editing an in-progress plan
# ========================================

def add_custom_activity(template, draft):
    """
    Append a user-authored activity to an in-progress plan.

    The draft either carries both hst_min/hst_max (dates are derived from the
    template's planting date) or explicit start_date/end_date.

    Args:
        template: Template being edited.
        draft: dict (or Activity) with activity_kind, title, dates or HST,
            and optional priority, description, parent_id, parameters, remark.

    Returns:
        A new Template with the activity appended.

    Raises:
        InvalidActivityError: unknown kind, missing dates, start after end,
            unknown parent, duplicate id, bad priority or parameters.
        InvalidDateError: a date does not parse.
    """
    if isinstance(draft, Activity):
        draft = draft.to_dict()

    kind = resolve_kind(draft.get('activity_kind'))
    title = (draft.get('title') or '').strip() or kind.name

    hst_min = optional_int(draft.get('hst_min'), 'hst_min')
    hst_max = optional_int(draft.get('hst_max'), 'hst_max')
    if (hst_min is None) != (hst_max is None):
        raise InvalidActivityError("hst_min and hst_max must be set together.")

    if hst_min is not None:
        if hst_min > hst_max:
            raise InvalidActivityError("hst_min must not be greater than hst_max.")
        if template.planting_date is None:
            raise InvalidActivityError("Set the planting date (HST 0) before adding HST activities.")
        start_date = date_from_offset(template.planting_date, hst_min)
        end_date = date_from_offset(template.planting_date, hst_max)
    else:
        start_date = parse_optional_date(draft.get('start_date'))
        end_date = parse_optional_date(draft.get('end_date'))
        if start_date is None or end_date is None:
            raise InvalidActivityError(
                f"Activity '{title}' needs a start and end date or an HST range."
            )

    if start_date > end_date:
        raise InvalidActivityError(
            f"Start date {start_date.isoformat()} is after end date {end_date.isoformat()}."
        )

    priority = draft.get('priority') or default_priority(kind.category)
    if priority not in PRIORITIES:
        raise InvalidActivityError(f"Invalid priority: {priority!r}")

    existing_ids = {a.id for a in template.activities}
    parent_id = draft.get('parent_id') or None
    if parent_id and parent_id not in existing_ids:
        raise InvalidActivityError(f"Parent activity '{parent_id}' is not in this plan.")

    activity_id = draft.get('id') or _new_activity_id()
    if activity_id in existing_ids:
        raise InvalidActivityError(f"Activity id '{activity_id}' already exists in this plan.")

    activity = Activity(
        id=activity_id,
        activity_kind=kind.name,
        title=title,
        description=draft.get('description'),
        hst_min=hst_min,
        hst_max=hst_max,
        start_date=start_date,
        end_date=end_date,
        parent_id=parent_id,
        category=kind.category,
        priority=priority,
        parameters=parse_parameters(kind.name, draft.get('parameters')),
        remark=draft.get('remark'),
        assignee=draft.get('assignee'),
    )
    return replace(template, activities=list(template.activities) + [activity])


def remove_activity(template, activity_id):
    """Remove an activity and all its descendants from a plan."""
    if template.get_activity(activity_id) is None:
        raise InvalidActivityError(f"Activity '{activity_id}' is not in this plan.")

    removed = {activity_id}
    changed = True
    while changed:
        changed = False
        for activity in template.activities:
            if activity.parent_id in removed and activity.id not in removed:
                removed.add(activity.id)
                changed = True

    remaining = [a for a in template.activities if a.id not in removed]
    return replace(template, activities=remaining)


def validate_activity(activity):
    """
    Check one activity can be stored and re-anchored later.

    Raises:
        InvalidActivityError: unknown kind, only one HST bound set, reversed
            HST range, no dates and no HST, or start after end.
    """
    if not is_valid_kind(activity.activity_kind):
        raise InvalidActivityError(f"Unknown activity kind: {activity.activity_kind!r}")
    if (activity.hst_min is None) != (activity.hst_max is None):
        raise InvalidActivityError(
            f"Activity '{activity.title}': hst_min and hst_max must be set together."
        )
    if activity.has_hst and activity.hst_min > activity.hst_max:
        raise InvalidActivityError(
            f"Activity '{activity.title}': hst_min must not be greater than hst_max."
        )
    if not activity.has_hst and (activity.start_date is None or activity.end_date is None):
        raise InvalidActivityError(
            f"Activity '{activity.title}' needs a start and end date or an HST range."
        )
    if activity.start_date and activity.end_date and activity.start_date > activity.end_date:
        raise InvalidActivityError(
            f"Activity '{activity.title}': start date {activity.start_date.isoformat()} "
            f"is after end date {activity.end_date.isoformat()}."
        )


def validate_hierarchy(activities):
    """
    Check ids are unique and every parent_id resolves within the set.

    Raises:
        UnresolvedParentError: duplicate id, self-parent, or unknown parent.
    """
    ids = set()
    for activity in activities:
        if activity.id in ids:
            raise UnresolvedParentError(f"Duplicate activity id '{activity.id}'.")
        ids.add(activity.id)

    for activity in activities:
        if activity.parent_id is None:
            continue
        if activity.parent_id == activity.id:
            raise UnresolvedParentError(f"Activity '{activity.id}' is its own parent.")
        if activity.parent_id not in ids:
            raise UnresolvedParentError(
                f"Activity '{activity.title}' references unknown parent '{activity.parent_id}'."
            )


def activity_tree(template):
    """
    Group a plan for display: [(parent, [children...]), ...] in plan order.

    Activities whose parent is missing are listed as top-level entries.
    """
    ids = {a.id for a in template.activities}
    children = {}
    for activity in template.activities:
        if activity.parent_id in ids:
            children.setdefault(activity.parent_id, []).append(activity)

    return [
        (activity, children.get(activity.id, []))
        for activity in template.activities
        if activity.parent_id not in ids
    ]


# ========================================
# Template storage
# ========================================

def save_as_template(activities, planting_date, name, description=None, store=None):
    """
    Persist the current plan as a reusable template.

    Raises:
        InvalidActivityError: empty name, no activities, or an activity that
            fails validate_activity.
        UnresolvedParentError: a parent reference does not resolve.
    """
    name = (name or '').strip()
    if not name:
        raise InvalidActivityError("Template name is required.")
    activities = list(activities)
    if not activities:
        raise InvalidActivityError("A template needs at least one activity.")
    for activity in activities:
        validate_activity(activity)
    validate_hierarchy(activities)

    template = Template(
        id=_new_template_id(),
        name=name,
        description=description,
        planting_date=parse_date(planting_date),
        activities=activities,
        created_at=_now(),
    )
    _store(store).save_template(template.id, template.name, template.to_dict())
    logger.info("Saved template %s '%s' with %d activities",
                template.id, template.name, len(activities))
    return template


def get_template(template_id, store=None):
    """Load a stored template as saved (no recalculation)."""
    payload = _store(store).load_template(template_id)
    if payload is None:
        raise TemplateNotFoundError(f"Template '{template_id}' not found.")
    return Template.from_dict(payload)


def _shift_setting(store):
    get_setting = getattr(store, 'get_setting', None)
    if get_setting is None:
        return False
    return get_setting('shift_non_hst_by_delta', '0') == '1'


def load_template(template_id, planting_date, store=None, shift_non_hst_by_delta=None):
    """
    Load a stored template into a new planning session on planting_date.

    Args:
        shift_non_hst_by_delta: None reads the 'shift_non_hst_by_delta' setting.

    Raises:
        TemplateNotFoundError: no template with this id.
    """
    store = _store(store)
    template = get_template(template_id, store)
    if shift_non_hst_by_delta is None:
        shift_non_hst_by_delta = _shift_setting(store)
    logger.info("Loading template %s onto planting date %s", template_id, planting_date)
    return recalculate(template, planting_date, shift_non_hst_by_delta)


def list_templates(store=None):
    """Summaries of stored templates."""
    return _store(store).list_templates()


def delete_template(template_id, store=None):
    """Remove a stored template; plans already loaded from it are unaffected."""
    if not _store(store).delete_template(template_id):
        raise TemplateNotFoundError(f"Template '{template_id}' not found.")
    logger.info("Deleted template %s", template_id)

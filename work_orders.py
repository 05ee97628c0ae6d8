"""
work_orders.py — Turns a finalized activity plan into a season and work orders.

This module implements:
- Materialization: one new CultivationSeason plus one work order per activity
- Batch materialization over several fields
- Assignee resolution (explicit, field owner, then eligible roles)
- Progress/status rules applied when field reports update a work order
- Season completion and guarded deletion

Materialization is all-or-nothing from the caller's point of view:
- Nothing is written when a precondition fails
- When some work orders fail after the season exists, the season and the
  work orders already created are deleted, then PartialMaterializationError
  lists the failed activities

The store is any object exposing the database.py functions used here
(list_seasons, create_season, create_work_order, delete_season, get_field,
get_user, list_users_by_role, ...). delete_season must remove the season's
work orders as well.
"""

import logging
from dataclasses import replace
from datetime import date

import database
from errors import (
    ActiveSeasonConflictError, CultivationError, FieldNotFoundError,
    InvalidActivityError, NoAssigneeError, PartialMaterializationError,
    SeasonInUseError, SeasonNotFoundError, WorkOrderNotFoundError,
)
from hst import parse_date
from models import BatchResult, CultivationSeason, MaterializationResult, WorkOrder

logger = logging.getLogger(__name__)

WORK_ORDER_STATUSES = ('pending', 'in-progress', 'completed', 'overdue', 'cancelled')
DEFAULT_ASSIGNEE_ROLES = 'Level 3,Level 4'


def _store(store):
    return database if store is None else store


def season_name(season_number, year):
    """Season label, e.g. 'MT 2 2025' for the second season planted in 2025."""
    return f"MT {season_number} {year}"


def _assignee_roles(store):
    get_setting = getattr(store, 'get_setting', None)
    value = get_setting('assignee_roles', DEFAULT_ASSIGNEE_ROLES) if get_setting else DEFAULT_ASSIGNEE_ROLES
    return [role.strip() for role in value.split(',') if role.strip()]


def resolve_assignee(field_id, store=None, roles=None):
    """
    Pick the person responsible for a field's work orders.

    Priority:
    1. The user explicitly assigned to the field
    2. The first user holding one of the eligible roles

    Raises:
        FieldNotFoundError: the field does not exist.
        NoAssigneeError: nobody is eligible.
    """
    store = _store(store)
    field = store.get_field(field_id)
    if field is None:
        raise FieldNotFoundError(f"Field {field_id} not found.")

    if field.user_id:
        user = store.get_user(field.user_id)
        if user:
            return user.display_name
        logger.warning("Field %s is assigned to missing user %s", field_id, field.user_id)

    roles = list(roles) if roles else _assignee_roles(store)
    users = store.list_users_by_role(roles)
    if not users:
        raise NoAssigneeError(
            f"No assignee found for field {field.name or field_id} (roles: {', '.join(roles)})."
        )
    logger.info("Field %s has no assigned user, falling back to %s", field_id, users[0].display_name)
    return users[0].display_name


def _check_activities(activities):
    if not activities:
        raise InvalidActivityError("There are no activities to generate work orders from.")
    for activity in activities:
        if activity.start_date is None or activity.end_date is None:
            raise InvalidActivityError(f"Activity '{activity.title}' has no start or end date.")
        if activity.start_date > activity.end_date:
            raise InvalidActivityError(f"Activity '{activity.title}' starts after it ends.")


def _work_order_for(activity, field_id, season, assignee, created_by):
    return WorkOrder(
        field_id=field_id,
        cultivation_season_id=season.id,
        title=activity.title or activity.activity_kind,
        activity_kind=activity.activity_kind,
        category=activity.category,
        status='pending',
        priority=activity.priority or 'medium',
        assignee=activity.assignee or assignee,
        start_date=activity.start_date,
        end_date=activity.end_date,
        progress=0,
        description=activity.description or f"Activity: {activity.activity_kind}",
        created_by=created_by,
    )


def _discard_season(store, season):
    """Compensating cleanup after a partial failure."""
    try:
        store.delete_season(season.id)
    except Exception:
        logger.exception("Could not remove season %s after failed materialization", season.id)
        raise
    logger.info("Removed season %s after failed materialization", season.id)


def materialize(field_id, activities, planting_date, assignee=None, created_by='',
                notes=None, store=None, roles=None):
    """
    Create a new active season for a field and one work order per activity.

    Steps:
    1. Validate the activities (dated, start <= end)
    2. Refuse if the field already has an active season
    3. Resolve the assignee (argument, field owner, eligible roles)
    4. Name the season "MT {prior seasons + 1} {planting year}"
    5. Create the season, then every work order
    6. On any work-order failure remove what was created and report

    Args:
        field_id: Target field.
        activities: Finalized Activity list (dates already computed).
        planting_date: HST 0 of the season.
        assignee: Display name to assign; resolved from the field when None.
        created_by: Recorded on the season and work orders.
        notes: Season notes (defaults to a short summary).
        store: Persistence collaborator (defaults to database).
        roles: Eligible roles for the fallback assignee.

    Returns:
        MaterializationResult with the season and its work orders.

    Raises:
        InvalidActivityError, FieldNotFoundError, ActiveSeasonConflictError,
        NoAssigneeError, PartialMaterializationError.
    """
    store = _store(store)
    planting_date = parse_date(planting_date)
    activities = list(activities)
    _check_activities(activities)

    if store.get_field(field_id) is None:
        raise FieldNotFoundError(f"Field {field_id} not found.")

    seasons = store.list_seasons(field_id)
    active = [s for s in seasons if s.status == 'active']
    if active:
        raise ActiveSeasonConflictError(
            f"Field {field_id} already has an active cultivation season ({active[0].name})."
        )

    if not assignee:
        assignee = resolve_assignee(field_id, store, roles)

    season_number = len(seasons) + 1
    season = store.create_season(CultivationSeason(
        field_id=field_id,
        name=season_name(season_number, planting_date.year),
        season_number=season_number,
        planting_date=planting_date,
        status='active',
        notes=notes or f"Cultivation season with {len(activities)} activities",
        created_by=created_by,
    ))
    logger.info("Created season %s '%s' for field %s", season.id, season.name, field_id)

    created = []
    failures = []
    for activity in activities:
        order = _work_order_for(activity, field_id, season, assignee, created_by)
        try:
            created.append(store.create_work_order(order))
        except Exception as e:
            logger.exception("Work order for activity %s ('%s') failed", activity.id, activity.title)
            failures.append((activity.id, activity.title, str(e)))

    if failures:
        _discard_season(store, season)
        raise PartialMaterializationError(failures)

    logger.info("Created %d work orders for season %s", len(created), season.id)
    return MaterializationResult(season=season, work_orders=created)


def materialize_batch(field_ids, activities, planting_date, created_by='', store=None, roles=None):
    """
    Materialize the same plan onto several fields.

    Each field is handled independently: a field that fails (active season,
    no assignee, ...) is reported in BatchResult.failed and the others go on.
    """
    activities = list(activities)
    result = BatchResult()
    for field_id in field_ids:
        try:
            result.succeeded[field_id] = materialize(
                field_id, activities, planting_date,
                created_by=created_by, store=store, roles=roles,
                notes=f"Cultivation season with {len(activities)} activities (batch generated)",
            )
        except CultivationError as e:
            logger.warning("Batch materialization skipped field %s: %s", field_id, e)
            result.failed[field_id] = str(e)
    return result


# ========================================
# Work order updates
# ========================================

def apply_progress(order, progress, today=None):
    """
    Apply a progress report to a work order.

    Rules:
    - progress is clamped to 0..100
    - 100 marks the order completed and stamps the completion date
    - any positive progress moves a pending order to in-progress

    Returns:
        A new WorkOrder; the input is not modified.
    """
    progress = max(0, min(100, int(progress)))
    today = today or date.today()

    if progress == 100:
        return replace(order, progress=100, status='completed',
                       completed_date=today.isoformat())
    if progress > 0 and order.status == 'pending':
        return replace(order, progress=progress, status='in-progress')
    return replace(order, progress=progress)


def apply_status(order, status, today=None):
    """Set a work order status; completing it also sets progress to 100."""
    if status not in WORK_ORDER_STATUSES:
        raise InvalidActivityError(f"Invalid work order status: {status!r}")
    if status == 'completed':
        return replace(order, status=status, progress=100,
                       completed_date=(today or date.today()).isoformat())
    return replace(order, status=status)


def update_progress(order_id, progress, store=None):
    """Load, apply_progress and persist a work order."""
    store = _store(store)
    order = store.get_work_order(order_id)
    if order is None:
        raise WorkOrderNotFoundError(f"Work order {order_id} not found.")
    return store.update_work_order(apply_progress(order, progress))


# ========================================
# Season lifecycle
# ========================================

def complete_season(season_id, store=None, today=None):
    """Mark a season completed; completing twice is a no-op."""
    store = _store(store)
    season = store.get_season(season_id)
    if season is None:
        raise SeasonNotFoundError(f"Season {season_id} not found.")
    if season.status == 'completed':
        return season

    completed = store.update_season(
        season_id, status='completed',
        completed_date=(today or date.today()).isoformat(),
    )
    logger.info("Season %s '%s' completed", season_id, season.name)
    return completed


def delete_season(season_id, store=None):
    """Delete a season that has no work orders."""
    store = _store(store)
    if store.get_season(season_id) is None:
        raise SeasonNotFoundError(f"Season {season_id} not found.")
    if store.count_work_orders(season_id) > 0:
        raise SeasonInUseError(
            f"Season {season_id} still has work orders and cannot be deleted."
        )
    store.delete_season(season_id)

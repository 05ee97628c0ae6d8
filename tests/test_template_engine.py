"""
tests/test_template_engine.py — Tests for building and re-anchoring templates.

Tests cover:
- Default rice plan dates and parent resolution
- Recalculation (fresh ids, HST invariant, non-HST policy)
- Custom activity validation
- Template storage through an in-memory store
- Activity JSON conversion
"""

from dataclasses import replace
from datetime import date

import pytest

import template_engine
from errors import (
    InvalidActivityError, InvalidDateError, TemplateNotFoundError,
    UnresolvedParentError,
)
from hst import date_from_offset
from models import Activity, FertilizationParameters, HarvestParameters
from template_engine import (
    activity_tree, add_custom_activity, build_activities,
    build_default_template, change_planting_date, recalculate,
    remove_activity, save_as_template, validate_hierarchy,
)

PLANTING = date(2025, 12, 1)


class InMemoryTemplateStore:
    """Template storage stand-in with the database.py function names."""

    def __init__(self, settings=None):
        self.templates = {}
        self.settings = settings or {}

    def save_template(self, template_id, name, payload):
        self.templates[template_id] = payload

    def load_template(self, template_id):
        return self.templates.get(template_id)

    def list_templates(self):
        return [{'id': k, 'name': v['name']} for k, v in self.templates.items()]

    def delete_template(self, template_id):
        return self.templates.pop(template_id, None) is not None

    def get_setting(self, key, default=None):
        return self.settings.get(key, default)


@pytest.fixture
def default_template():
    return build_default_template(PLANTING)


def _custom_draft(**overrides):
    draft = {
        'activity_kind': 'Fertilization',
        'title': 'Foliar Spray',
        'start_date': '2025-12-20',
        'end_date': '2025-12-22',
    }
    draft.update(overrides)
    return draft


# ========================================
# Default plan
# ========================================

class TestDefaultTemplate:

    def test_activity_count(self, default_template):
        assert len(default_template.activities) == 57

    def test_planting_day_activity(self, default_template):
        planting = default_template.get_activity('activity_19')
        assert planting.title == 'Seedling Planting'
        assert planting.start_date == planting.end_date == date(2025, 12, 1)
        assert planting.duration == 0

    def test_land_preparation_range(self, default_template):
        land_prep = default_template.get_activity('activity_1')
        assert (land_prep.hst_min, land_prep.hst_max) == (-30, -1)
        assert land_prep.start_date == date(2025, 11, 1)
        assert land_prep.end_date == date(2025, 11, 30)

    def test_hst_invariant(self, default_template):
        for activity in default_template.activities:
            assert activity.start_date == date_from_offset(PLANTING, activity.hst_min)
            assert activity.end_date == date_from_offset(PLANTING, activity.hst_max)

    def test_every_parent_resolves(self, default_template):
        ids = {a.id for a in default_template.activities}
        children = [a for a in default_template.activities if a.parent_id]
        assert len(children) == 45
        for child in children:
            assert child.parent_id in ids

    def test_children_share_parent_kind(self, default_template):
        for child in default_template.activities:
            if child.parent_id:
                parent = default_template.get_activity(child.parent_id)
                assert parent.activity_kind == child.activity_kind

    def test_categories_and_priorities(self, default_template):
        harvest = default_template.get_activity('activity_47')
        assert harvest.category == 'Harvest'
        assert harvest.priority == 'high'
        irrigation = default_template.get_activity('activity_21')
        assert irrigation.category == 'Crop Care'
        assert irrigation.priority == 'medium'

    def test_remarks(self, default_template):
        assert default_template.get_activity('activity_28').remark == 'Every 7 days'

    def test_invalid_planting_date(self):
        with pytest.raises(InvalidDateError):
            build_default_template('tomorrow')

    def test_child_before_parent_is_rejected(self):
        schedule = (
            (2, 'Seed Preparation', -25, -23, 'Nursery', 'Nursery', None),
            (1, 'Nursery', -25, -1, 'Nursery', None, None),
        )
        with pytest.raises(UnresolvedParentError):
            build_activities(PLANTING, schedule)


# ========================================
# Recalculation
# ========================================

class TestRecalculate:

    def test_hst_invariant_after_recalculation(self, default_template):
        new_date = date(2026, 3, 15)
        copy = recalculate(default_template, new_date)
        assert copy.planting_date == new_date
        for activity in copy.activities:
            assert activity.start_date == date_from_offset(new_date, activity.hst_min)
            assert activity.end_date == date_from_offset(new_date, activity.hst_max)

    def test_fresh_ids_and_consistent_parents(self, default_template):
        copy = recalculate(default_template, '2026-01-10')
        old_ids = {a.id for a in default_template.activities}
        new_ids = {a.id for a in copy.activities}
        assert len(new_ids) == 57
        assert not old_ids & new_ids
        assert copy.id != default_template.id
        assert copy.source_template_id == default_template.id

        for old, new in zip(default_template.activities, copy.activities):
            assert old.title == new.title
            if old.parent_id:
                assert copy.get_activity(new.parent_id).title == \
                    default_template.get_activity(old.parent_id).title
            else:
                assert new.parent_id is None

    def test_source_template_unchanged(self, default_template):
        recalculate(default_template, '2026-01-10')
        assert default_template.planting_date == PLANTING
        assert default_template.get_activity('activity_19').start_date == PLANTING

    def test_non_hst_activity_keeps_dates_by_default(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft(id='custom_1'))
        copy = recalculate(plan, date(2025, 12, 11))
        custom = [a for a in copy.activities if a.title == 'Foliar Spray'][0]
        assert custom.start_date == date(2025, 12, 20)
        assert custom.end_date == date(2025, 12, 22)

    def test_non_hst_activity_shifts_when_requested(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft(id='custom_1'))
        copy = recalculate(plan, date(2025, 12, 11), shift_non_hst_by_delta=True)
        custom = [a for a in copy.activities if a.title == 'Foliar Spray'][0]
        assert custom.start_date == date(2025, 12, 30)
        assert custom.end_date == date(2026, 1, 1)

    def test_parameters_are_copied(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft(
            parameters={'fertilizer_type': 'Urea', 'amount': 100}))
        copy = recalculate(plan, '2026-01-10')
        assert copy.activities[-1].parameters == plan.activities[-1].parameters
        copy.activities[-1].parameters.amount = 50
        assert plan.activities[-1].parameters.amount == 100

    def test_dangling_parent(self, default_template):
        orphan = replace(default_template.activities[1], parent_id='missing')
        broken = replace(default_template, activities=[default_template.activities[0], orphan])
        with pytest.raises(UnresolvedParentError):
            recalculate(broken, '2026-01-01')

    def test_change_planting_date_keeps_ids(self, default_template):
        moved = change_planting_date(default_template, date(2025, 12, 2))
        assert [a.id for a in moved.activities] == [a.id for a in default_template.activities]
        assert moved.get_activity('activity_19').start_date == date(2025, 12, 2)


# ========================================
# Custom activities
# ========================================

class TestAddCustomActivity:

    def test_explicit_dates(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft())
        assert len(plan.activities) == 58
        assert len(default_template.activities) == 57
        added = plan.activities[-1]
        assert added.category == 'Crop Care'
        assert added.priority == 'medium'
        assert not added.has_hst
        assert added.duration == 2

    def test_hst_range_derives_dates(self, default_template):
        plan = add_custom_activity(default_template, {
            'activity_kind': 'Panen', 'title': 'Second Harvest Pass',
            'hst_min': 111, 'hst_max': 111,
        })
        added = plan.activities[-1]
        assert added.activity_kind == 'Harvest'
        assert added.start_date == added.end_date == date_from_offset(PLANTING, 111)
        assert added.priority == 'high'

    def test_title_defaults_to_kind(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft(title=''))
        assert plan.activities[-1].title == 'Fertilization'

    def test_parameters(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft(
            parameters={'fertilizer_type': 'Urea', 'amount': 100}))
        assert plan.activities[-1].parameters == FertilizationParameters('Urea', 100)

    def test_parent(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft(parent_id='activity_26'))
        assert plan.activities[-1].parent_id == 'activity_26'

    @pytest.mark.parametrize('overrides', [
        {'activity_kind': 'Irrigation'},
        {'start_date': '2025-12-23'},
        {'start_date': None},
        {'end_date': ''},
        {'start_date': None, 'end_date': None},
        {'hst_min': 3},
        {'hst_min': 5, 'hst_max': 2},
        {'hst_min': 'x', 'hst_max': 2},
        {'priority': 'urgent'},
        {'parent_id': 'activity_999'},
        {'id': 'activity_1'},
        {'parameters': {'quantity': 5}},
        {'activity_kind': 'Weed Control', 'parameters': {'area_ha': 1}},
    ])
    def test_rejected(self, default_template, overrides):
        with pytest.raises(InvalidActivityError):
            add_custom_activity(default_template, _custom_draft(**overrides))

    def test_unparseable_date(self, default_template):
        with pytest.raises(InvalidDateError):
            add_custom_activity(default_template, _custom_draft(start_date='soon'))


# ========================================
# Hierarchy helpers
# ========================================

class TestHierarchy:

    def test_remove_cascades(self, default_template):
        plan = remove_activity(default_template, 'activity_1')
        assert len(plan.activities) == 48
        assert all(a.parent_id != 'activity_1' for a in plan.activities)

    def test_remove_unknown(self, default_template):
        with pytest.raises(InvalidActivityError):
            remove_activity(default_template, 'nope')

    def test_activity_tree(self, default_template):
        tree = activity_tree(default_template)
        assert len(tree) == 12
        parent, children = tree[0]
        assert parent.id == 'activity_1'
        assert [c.id for c in children] == [f'activity_{n}' for n in range(2, 10)]

    def test_validate_hierarchy_duplicates(self, default_template):
        activities = default_template.activities + [default_template.activities[0]]
        with pytest.raises(UnresolvedParentError):
            validate_hierarchy(activities)


# ========================================
# Storage
# ========================================

class TestTemplateStorage:

    def test_save_and_load(self, default_template):
        store = InMemoryTemplateStore()
        saved = save_as_template(default_template.activities, PLANTING, 'Wet Season',
                                 description='Blok A', store=store)
        assert saved.id in store.templates
        assert template_engine.list_templates(store) == [{'id': saved.id, 'name': 'Wet Season'}]

        loaded = template_engine.load_template(saved.id, '2026-06-01', store=store)
        assert loaded.planting_date == date(2026, 6, 1)
        assert loaded.source_template_id == saved.id
        assert len(loaded.activities) == 57
        assert loaded.activities[18].start_date == date(2026, 6, 1)

    def test_stored_template_is_unchanged_by_load(self, default_template):
        store = InMemoryTemplateStore()
        saved = save_as_template(default_template.activities, PLANTING, 'Wet Season', store=store)
        template_engine.load_template(saved.id, '2026-06-01', store=store)
        stored = template_engine.get_template(saved.id, store)
        assert stored.planting_date == PLANTING
        assert [a.id for a in stored.activities] == [a.id for a in default_template.activities]

    def test_parameters_survive_storage(self, default_template):
        store = InMemoryTemplateStore()
        plan = add_custom_activity(default_template, {
            'activity_kind': 'Harvest', 'title': 'Yield Record',
            'start_date': '2026-03-20', 'end_date': '2026-03-20',
            'parameters': {'quantity': 6.5, 'quality': 'A'},
        })
        saved = save_as_template(plan.activities, PLANTING, 'With Yield', store=store)
        stored = template_engine.get_template(saved.id, store)
        assert stored.activities[-1].parameters == HarvestParameters(6.5, 'A')

    def test_shift_policy_from_setting(self, default_template):
        plan = add_custom_activity(default_template, _custom_draft())
        store = InMemoryTemplateStore(settings={'shift_non_hst_by_delta': '1'})
        saved = save_as_template(plan.activities, PLANTING, 'Shifted', store=store)
        loaded = template_engine.load_template(saved.id, date(2025, 12, 11), store=store)
        assert loaded.activities[-1].start_date == date(2025, 12, 30)

        kept = template_engine.load_template(saved.id, date(2025, 12, 11), store=store,
                                             shift_non_hst_by_delta=False)
        assert kept.activities[-1].start_date == date(2025, 12, 20)

    @pytest.mark.parametrize('name', ['', '   ', None])
    def test_name_required(self, default_template, name):
        with pytest.raises(InvalidActivityError):
            save_as_template(default_template.activities, PLANTING, name,
                             store=InMemoryTemplateStore())

    def test_empty_activities(self):
        with pytest.raises(InvalidActivityError):
            save_as_template([], PLANTING, 'Empty', store=InMemoryTemplateStore())

    def test_unknown_template(self):
        with pytest.raises(TemplateNotFoundError):
            template_engine.load_template('missing', PLANTING, store=InMemoryTemplateStore())

    def test_delete_template(self, default_template):
        store = InMemoryTemplateStore()
        saved = save_as_template(default_template.activities, PLANTING, 'Old', store=store)
        template_engine.delete_template(saved.id, store)
        assert store.templates == {}
        with pytest.raises(TemplateNotFoundError):
            template_engine.delete_template(saved.id, store)

    @pytest.mark.parametrize('overrides', [
        {'activity_kind': 'Planting'},
        {'hst_max': None},
        {'hst_min': None},
        {'hst_min': 10, 'hst_max': 5},
        {'hst_min': None, 'hst_max': None, 'start_date': None},
        {'hst_min': None, 'hst_max': None,
         'start_date': date(2025, 12, 5), 'end_date': date(2025, 12, 1)},
    ])
    def test_invalid_activity_not_saved(self, default_template, overrides):
        store = InMemoryTemplateStore()
        activity = replace(default_template.activities[0], **overrides)
        with pytest.raises(InvalidActivityError):
            save_as_template([activity], PLANTING, 'Broken', store=store)
        assert store.templates == {}

    def test_undated_hst_activity_saved(self, default_template):
        store = InMemoryTemplateStore()
        activity = replace(default_template.activities[0], start_date=None, end_date=None)
        saved = save_as_template([activity], PLANTING, 'HST Only', store=store)
        loaded = template_engine.load_template(saved.id, PLANTING, store=store)
        assert loaded.activities[0].start_date == date(2025, 11, 1)


# ========================================
# Activity JSON
# ========================================

class TestActivityFromDict:

    def test_hst_strings_converted(self, default_template):
        data = default_template.activities[0].to_dict()
        data.update(hst_min='-30', hst_max='-1')
        activity = Activity.from_dict(data)
        assert (activity.hst_min, activity.hst_max) == (-30, -1)

    @pytest.mark.parametrize('value', ['abc', '1.5', True, [3]])
    def test_non_integer_hst_rejected(self, default_template, value):
        data = default_template.activities[0].to_dict()
        data['hst_min'] = value
        with pytest.raises(InvalidActivityError):
            Activity.from_dict(data)

"""
routes/planning.py — Activity catalog and template planning routes.

Provides:
- GET    /api/activity-kinds                  — JSON: catalog grouped by category
- GET    /api/templates/default?planting_date= — JSON: standard rice plan
                                              (falls back to default_planting_date)
- GET    /api/templates                       — JSON: stored template summaries
- POST   /api/templates                       — Save the current plan as a template
- GET    /api/templates/<id>?planting_date=&shift_non_hst=
                                              — Load a template onto a planting date
- DELETE /api/templates/<id>                  — Delete a stored template
- POST   /api/templates/recalculate           — Re-anchor a plan to a new planting date
- POST   /api/templates/activities            — Append a custom activity to a plan

Plans travel as Template JSON (see models.Template.to_dict); the server keeps
no planning session state.
"""

from flask import Blueprint, jsonify, request

import template_engine
from activity_catalog import options
from database import get_setting
from models import Activity, Template
from utils.validators import parse_flag, require_json, require_keys

planning_bp = Blueprint('planning', __name__, url_prefix='/api')


@planning_bp.route('/activity-kinds')
def activity_kinds():
    """Activity kinds grouped by category, for the planning selectors."""
    return jsonify([
        {'category': category, 'kinds': kinds}
        for category, kinds in options().items()
    ])


@planning_bp.route('/templates/default')
def default_template():
    """Standard plan for ?planting_date=, else the default_planting_date setting."""
    planting_date = request.args.get('planting_date') or get_setting('default_planting_date')
    require_keys({'planting_date': planting_date}, 'planting_date')
    template = template_engine.build_default_template(planting_date)
    return jsonify(template.to_dict())


@planning_bp.route('/templates')
def list_templates():
    return jsonify(template_engine.list_templates())


@planning_bp.route('/templates', methods=['POST'])
def save_template():
    """Body: {name, description?, planting_date, activities: [...]}"""
    data = require_json(request.get_json(silent=True))
    require_keys(data, 'name', 'planting_date')
    activities = [Activity.from_dict(a) for a in data.get('activities') or []]
    template = template_engine.save_as_template(
        activities, data['planting_date'], data['name'], data.get('description')
    )
    return jsonify(template.to_dict()), 201


@planning_bp.route('/templates/<template_id>')
def load_template(template_id):
    """Without ?planting_date= the template is returned as stored."""
    planting_date = request.args.get('planting_date')
    if not planting_date:
        return jsonify(template_engine.get_template(template_id).to_dict())
    template = template_engine.load_template(
        template_id, planting_date,
        shift_non_hst_by_delta=parse_flag(request.args.get('shift_non_hst')),
    )
    return jsonify(template.to_dict())


@planning_bp.route('/templates/<template_id>', methods=['DELETE'])
def delete_template(template_id):
    template_engine.delete_template(template_id)
    return jsonify({'deleted': template_id})


@planning_bp.route('/templates/recalculate', methods=['POST'])
def recalculate():
    """Body: {template: {...}, planting_date, shift_non_hst_by_delta?}"""
    data = require_json(request.get_json(silent=True))
    require_keys(data, 'template', 'planting_date')
    template = Template.from_dict(require_json(data['template']))
    recalculated = template_engine.recalculate(
        template, data['planting_date'],
        shift_non_hst_by_delta=bool(data.get('shift_non_hst_by_delta', False)),
    )
    return jsonify(recalculated.to_dict())


@planning_bp.route('/templates/activities', methods=['POST'])
def add_activity():
    """Body: {template: {...}, activity: {...draft}}"""
    data = require_json(request.get_json(silent=True))
    require_keys(data, 'template', 'activity')
    template = Template.from_dict(require_json(data['template']))
    updated = template_engine.add_custom_activity(template, require_json(data['activity']))
    return jsonify(updated.to_dict()), 201

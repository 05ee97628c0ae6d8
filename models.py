"""
models.py — Python dataclasses for the cultivation scheduling engine.

Maps to the SQLite tables created in database.py. Dates are datetime.date in
memory and ISO "YYYY-MM-DD" strings in to_dict() output.
"""

from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Optional, List

from activity_catalog import (
    HARVEST, HARVEST_FORECASTING, FERTILIZATION, LAND_PREPARATION,
    LAND_REHABILITATION,
)
from errors import InvalidActivityError
from hst import format_hst, parse_optional_date


def _iso(value):
    return value.isoformat() if isinstance(value, date) else value


def optional_int(value, name):
    """None or '' map to None; anything else must be a whole number."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise InvalidActivityError(f"{name} must be an integer, got {value!r}.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidActivityError(f"{name} must be an integer, got {value!r}.") from None


# ========================================
# Activity parameters (tagged by activity kind)
# ========================================

@dataclass
class HarvestParameters:
    """Harvest and harvest forecasting: quantity in tons, quality grade."""
    quantity: Optional[float] = None
    quality: Optional[str] = None


@dataclass
class FertilizationParameters:
    """Fertilizer product and dose in kg/ha."""
    fertilizer_type: Optional[str] = None
    amount: Optional[float] = None


@dataclass
class LandPreparationParameters:
    """Worked area in hectares."""
    area_ha: Optional[float] = None


PARAMETER_TYPES = {
    HARVEST: HarvestParameters,
    HARVEST_FORECASTING: HarvestParameters,
    FERTILIZATION: FertilizationParameters,
    LAND_PREPARATION: LandPreparationParameters,
    LAND_REHABILITATION: LandPreparationParameters,
}


def parse_parameters(activity_kind, data):
    """
    Build the parameter block for an activity kind.

    Args:
        activity_kind: Catalog kind name.
        data: None, a dict, or an already-built parameter dataclass.

    Returns:
        The matching parameter dataclass, or None when data is empty.

    Raises:
        InvalidActivityError: the kind takes no parameters, the block is of
            the wrong type, or it carries unknown keys.
    """
    if data is None or data == {}:
        return None

    param_type = PARAMETER_TYPES.get(activity_kind)
    if param_type is None:
        raise InvalidActivityError(f"'{activity_kind}' activities take no parameters.")

    if isinstance(data, param_type):
        return data
    if not isinstance(data, dict):
        raise InvalidActivityError(
            f"Parameters for '{activity_kind}' must be {param_type.__name__}."
        )

    allowed = set(param_type.__dataclass_fields__)
    unknown = set(data) - allowed
    if unknown:
        raise InvalidActivityError(
            f"Unknown parameters for '{activity_kind}': {', '.join(sorted(unknown))}"
        )
    return param_type(**data)


# ========================================
# Planning
# ========================================

@dataclass
class Activity:
    """One entry of a cultivation template."""
    id: str = ""
    activity_kind: str = ""
    title: str = ""
    description: Optional[str] = None
    hst_min: Optional[int] = None
    hst_max: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    parent_id: Optional[str] = None
    category: str = ""
    priority: str = "medium"
    parameters: Optional[object] = None
    remark: Optional[str] = None
    assignee: Optional[str] = None

    @property
    def has_hst(self) -> bool:
        return self.hst_min is not None and self.hst_max is not None

    @property
    def duration(self) -> Optional[int]:
        """Length in days: HST span if defined, else the date span."""
        if self.has_hst:
            return self.hst_max - self.hst_min
        if self.start_date and self.end_date:
            return (self.end_date - self.start_date).days
        return None

    def to_dict(self):
        data = asdict(self)
        data['start_date'] = _iso(self.start_date)
        data['end_date'] = _iso(self.end_date)
        data['duration'] = self.duration
        data['hst_label'] = (f"{format_hst(self.hst_min)} to {format_hst(self.hst_max)}"
                             if self.has_hst else None)
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get('id', ''),
            activity_kind=data.get('activity_kind', ''),
            title=data.get('title', ''),
            description=data.get('description'),
            hst_min=optional_int(data.get('hst_min'), 'hst_min'),
            hst_max=optional_int(data.get('hst_max'), 'hst_max'),
            start_date=parse_optional_date(data.get('start_date')),
            end_date=parse_optional_date(data.get('end_date')),
            parent_id=data.get('parent_id'),
            category=data.get('category', ''),
            priority=data.get('priority') or 'medium',
            parameters=parse_parameters(data.get('activity_kind'), data.get('parameters')),
            remark=data.get('remark'),
            assignee=data.get('assignee'),
        )


@dataclass
class Template:
    """Named, reusable set of activities anchored to a planting date."""
    id: str = ""
    name: str = ""
    description: Optional[str] = None
    planting_date: Optional[date] = None
    activities: List[Activity] = field(default_factory=list)
    created_at: Optional[str] = None
    source_template_id: Optional[str] = None

    def get_activity(self, activity_id):
        for activity in self.activities:
            if activity.id == activity_id:
                return activity
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'planting_date': _iso(self.planting_date),
            'activities': [a.to_dict() for a in self.activities],
            'created_at': self.created_at,
            'source_template_id': self.source_template_id,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            description=data.get('description'),
            planting_date=parse_optional_date(data.get('planting_date')),
            activities=[Activity.from_dict(a) for a in data.get('activities', [])],
            created_at=data.get('created_at'),
            source_template_id=data.get('source_template_id'),
        )


# ========================================
# Persisted records
# ========================================

@dataclass
class Field:
    """Cultivated field (read-only for the scheduling engine)."""
    id: Optional[int] = None
    name: str = ""
    user_id: Optional[int] = None


@dataclass
class User:
    """Staff member who can be assigned work orders."""
    id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    role: str = ""
    email: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class CultivationSeason:
    """One planting-to-harvest cycle of a field."""
    id: Optional[int] = None
    field_id: int = 0
    name: str = ""
    season_number: int = 0
    planting_date: Optional[date] = None
    status: str = "active"
    completed_date: Optional[str] = None
    notes: Optional[str] = None
    created_by: str = ""
    created_at: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        data['planting_date'] = _iso(self.planting_date)
        return data


@dataclass
class WorkOrder:
    """Assignable task materialized from one template activity."""
    id: Optional[int] = None
    field_id: Optional[int] = None
    cultivation_season_id: Optional[int] = None
    title: str = ""
    activity_kind: str = ""
    category: str = ""
    status: str = "pending"
    priority: str = "medium"
    assignee: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: int = 0
    description: Optional[str] = None
    created_by: str = ""
    completed_date: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        data['start_date'] = _iso(self.start_date)
        data['end_date'] = _iso(self.end_date)
        return data


@dataclass
class MaterializationResult:
    """Season and work orders created for one field."""
    season: CultivationSeason
    work_orders: List[WorkOrder] = field(default_factory=list)

    def to_dict(self):
        return {
            'season': self.season.to_dict(),
            'work_orders': [wo.to_dict() for wo in self.work_orders],
        }


@dataclass
class BatchResult:
    """Outcome of materializing one activity set onto several fields."""
    succeeded: dict = field(default_factory=dict)  # field_id -> MaterializationResult
    failed: dict = field(default_factory=dict)     # field_id -> error message

    def to_dict(self):
        return {
            'succeeded': {str(k): v.to_dict() for k, v in self.succeeded.items()},
            'failed': {str(k): v for k, v in self.failed.items()},
        }


# ========================================
# Calendar views
# ========================================

@dataclass
class DayBucket:
    """Work orders active on one calendar day, in input order."""
    day: date
    work_orders: List[WorkOrder] = field(default_factory=list)
    label: str = ""
    is_past: bool = False

    def to_dict(self):
        return {
            'day': self.day.isoformat(),
            'label': self.label,
            'is_past': self.is_past,
            'work_orders': [wo.to_dict() for wo in self.work_orders],
        }


@dataclass
class CalendarView:
    """Day buckets split into expired and upcoming sections."""
    past: List[DayBucket] = field(default_factory=list)
    upcoming: List[DayBucket] = field(default_factory=list)
    default_expanded: Optional[date] = None

    def to_dict(self):
        return {
            'past': [b.to_dict() for b in self.past],
            'upcoming': [b.to_dict() for b in self.upcoming],
            'default_expanded': _iso(self.default_expanded),
        }

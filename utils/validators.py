"""
utils/validators.py — Request payload validation helpers.

Validates:
- Required JSON bodies and keys
- Work order progress values (integers, clamped later by the materializer)
- Boolean query flags ('1', 'true', 'yes')
- Lists of integer field IDs for batch materialization
"""

from errors import InvalidActivityError


def require_json(payload):
    """Return the JSON object body or raise InvalidActivityError."""
    if not isinstance(payload, dict):
        raise InvalidActivityError("A JSON object body is required.")
    return payload


def require_keys(payload, *keys):
    missing = [key for key in keys if payload.get(key) in (None, '')]
    if missing:
        raise InvalidActivityError(f"Missing required field(s): {', '.join(missing)}")


def parse_progress(value):
    """Progress must be a whole number; range clamping happens on update."""
    if isinstance(value, bool):
        raise InvalidActivityError(f"Invalid progress: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidActivityError(f"Invalid progress: {value!r}") from None


def parse_flag(value):
    """Query string flag: None stays None, otherwise true for '1'/'true'/'yes'/'on'."""
    if value is None:
        return None
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_id_list(values):
    """A non-empty list of integer IDs."""
    if not isinstance(values, list) or not values:
        raise InvalidActivityError("field_ids must be a non-empty list.")
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError):
        raise InvalidActivityError(f"Invalid field ID list: {values!r}") from None

"""
errors.py — Error kinds raised by the cultivation scheduling engine.

Every error derives from CultivationError so the HTTP layer can register a
single handler. `status_code` is the HTTP status the API answers with.
"""


class CultivationError(Exception):
    """Base class for all scheduling engine errors."""
    status_code = 400


class InvalidDateError(CultivationError):
    """Raised when a value does not parse as a calendar date."""
    pass


class UnresolvedParentError(CultivationError):
    """Raised when a child activity names a parent not created yet."""
    pass


class InvalidActivityError(CultivationError):
    """Raised when an activity draft is missing fields or is inconsistent."""
    pass


class TemplateNotFoundError(CultivationError):
    """Raised when a stored template id does not exist."""
    status_code = 404


class SeasonNotFoundError(CultivationError):
    """Raised when a cultivation season id does not exist."""
    status_code = 404


class FieldNotFoundError(CultivationError):
    """Raised when a field id does not exist."""
    status_code = 404


class WorkOrderNotFoundError(CultivationError):
    """Raised when a work order id does not exist."""
    status_code = 404


class ActiveSeasonConflictError(CultivationError):
    """Raised when a field already has an active cultivation season."""
    status_code = 409


class SeasonInUseError(CultivationError):
    """Raised when deleting a season that still owns work orders."""
    status_code = 409


class NoAssigneeError(CultivationError):
    """Raised when no eligible user can be assigned to the work orders."""
    status_code = 409


class PartialMaterializationError(CultivationError):
    """
    Raised when some work orders failed to persist after season creation.

    The season and any work orders created before the failure have already
    been removed when this is raised.

    Attributes:
        failures: list of (activity_id, title, reason) tuples.
    """
    status_code = 409

    def __init__(self, failures):
        self.failures = list(failures)
        titles = ', '.join(title for _, title, _ in self.failures)
        super().__init__(
            f"{len(self.failures)} work order(s) could not be created: {titles}"
        )


class SeasonNumberConflictError(CultivationError):
    """Raised when a field already has a season with the same number."""
    status_code = 409

"""Error taxonomy shared by the solver service and the HTTP layer."""


class TimetablerError(Exception):
    """Base class for all errors raised by the timetabler package."""

    status_code = 500


class NotFoundError(TimetablerError):
    """Unknown term or collaborator record."""

    status_code = 404

    def __init__(self, entity_type: str, entity_id: object):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConflictError(TimetablerError):
    """Duplicate start, or apply while the solver is still running."""

    status_code = 409


class InvalidInputError(TimetablerError, ValueError):
    status_code = 400


class NotAvailableError(TimetablerError):
    """No solution cached for the term (never produced, applied or expired)."""

    status_code = 400


class OptimizerFailure(TimetablerError):
    """Unexpected exception inside a background solver worker."""

    status_code = 500

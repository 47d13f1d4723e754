"""Domain error taxonomy."""


class MealLedgerError(Exception):
    """Base class for errors raised by meal ledger services."""

    code = "meal_ledger_error"

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(MealLedgerError):
    """Input has the wrong shape or is out of range."""

    code = "validation_error"


class PermissionDeniedError(MealLedgerError):
    """Role, permission or ownership check failed."""

    code = "permission_denied"


class NotFoundError(MealLedgerError):
    """Referenced entity does not exist."""

    code = "not_found"


class ConflictError(MealLedgerError):
    """Write collided with another write or an existing unique key."""

    code = "conflict"


class StateError(MealLedgerError):
    """Entity state blocks the requested action.

    ``state`` names the blocking state so callers can render a remedy.
    """

    code = "state_error"
    state = "invalid_state"


class MonthFinalizedError(StateError):
    """Month is finalized and read-only for the caller."""

    state = "finalized"


class BalanceFrozenError(StateError):
    """Balance is frozen and the caller cannot post to it."""

    state = "frozen"


class CutoffPassedError(StateError):
    """Toggle cutoff for the date and meal has passed."""

    state = "cutoff"


class OverrideGovernedError(StateError):
    """An active rule override controls the meal cell."""

    state = "override"


class NoActiveRateError(StateError):
    """No month settings cover the date."""

    state = "no_active_rate"


class AlreadyProcessedError(StateError):
    """Action was already applied to the entity."""

    state = "already_processed"

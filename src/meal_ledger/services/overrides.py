"""Rule override store."""

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime
from typing import Protocol
from uuid import UUID, uuid4

from meal_ledger.domain.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from meal_ledger.domain.models import MealType, UserRecord
from meal_ledger.domain.overrides import (
    ROLE_PRIORITY,
    DateType,
    OverrideDraft,
    RecurringPattern,
    RuleOverride,
    TargetType,
    matching_overrides,
)
from meal_ledger.services.authorization import Authorizer, Permission

_WEEKDAYS = range(7)
_MONTH_DAYS = range(1, 32)


class OverrideRepository(Protocol):
    """Persistence interface for rule overrides."""

    def get_override(self, override_id: UUID) -> RuleOverride | None:
        """Return an override by id."""

    def list_overrides(self, active_only: bool) -> list[RuleOverride]:
        """Return overrides, newest first."""

    def list_candidates(self, user_id: UUID, meal_type: MealType) -> list[RuleOverride]:
        """Return active overrides that target the user and cover the meal."""

    def create_override(self, override: RuleOverride) -> None:
        """Insert an override."""

    def update_override(self, override: RuleOverride) -> None:
        """Replace a stored override."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class OverrideService:
    """Service for prioritized force-on/force-off rules."""

    repository: OverrideRepository
    authorizer: Authorizer
    clock: Callable[[], datetime] = _utc_now

    def find_matching_overrides(
        self, user_id: UUID, day: date, meal_type: MealType
    ) -> list[RuleOverride]:
        """Return the overrides that govern a cell, winner first."""
        return matching_overrides(
            self.repository.list_candidates(user_id, meal_type),
            user_id,
            day,
            meal_type,
            self.clock(),
        )

    def candidates_for(self, user_id: UUID, meal_type: MealType) -> list[RuleOverride]:
        """Return the unfiltered candidate overrides for a user and meal."""
        return self.repository.list_candidates(user_id, meal_type)

    def list_overrides(
        self, actor: UserRecord, active_only: bool = True
    ) -> list[RuleOverride]:
        """Return stored overrides."""
        self.authorizer.require(actor, Permission.MANAGE_OVERRIDES)
        return self.repository.list_overrides(active_only)

    def create_override(self, draft: OverrideDraft, actor: UserRecord) -> RuleOverride:
        """Create an override with the creator role's priority."""
        self._require_target_permission(actor, draft.target_type)
        self._validate(draft)
        override = RuleOverride(
            id=uuid4(),
            priority=ROLE_PRIORITY[actor.role],
            created_at=self.clock(),
            created_by=actor.id,
            created_by_role=actor.role,
            **self._draft_fields(draft),
        )
        self.repository.create_override(override)
        return override

    def update_override(
        self, override_id: UUID, draft: OverrideDraft, actor: UserRecord
    ) -> RuleOverride:
        """Replace the rule fields of an existing override."""
        existing = self._get(override_id)
        self._require_modify(actor, existing)
        self._require_target_permission(actor, draft.target_type)
        self._validate(draft)
        updated = replace(existing, **self._draft_fields(draft))
        self.repository.update_override(updated)
        return updated

    def remove_override(self, override_id: UUID, actor: UserRecord) -> RuleOverride:
        """Deactivate an override, letting the cell revert."""
        return self.set_active(override_id, False, actor)

    def set_active(
        self, override_id: UUID, is_active: bool, actor: UserRecord
    ) -> RuleOverride:
        """Switch an override on or off."""
        existing = self._get(override_id)
        self._require_modify(actor, existing)
        updated = replace(existing, is_active=is_active)
        self.repository.update_override(updated)
        return updated

    def _get(self, override_id: UUID) -> RuleOverride:
        override = self.repository.get_override(override_id)
        if override is None:
            raise NotFoundError("Override not found", {"override_id": str(override_id)})
        return override

    def _require_target_permission(
        self, actor: UserRecord, target_type: TargetType
    ) -> None:
        if target_type == TargetType.USER:
            self.authorizer.require(actor, Permission.MANAGE_OVERRIDES)
        else:
            self.authorizer.require(actor, Permission.MANAGE_GLOBAL_OVERRIDES)

    def _require_modify(self, actor: UserRecord, override: RuleOverride) -> None:
        if self.authorizer.check(actor, Permission.MANAGE_GLOBAL_OVERRIDES):
            return
        self.authorizer.require(actor, Permission.MANAGE_OVERRIDES)
        if override.created_by != actor.id:
            raise PermissionDeniedError(
                "Only the creator or an admin may modify this override",
                {"override_id": str(override.id)},
            )

    def _validate(self, draft: OverrideDraft) -> None:
        if draft.target_type == TargetType.USER and draft.target_user_id is None:
            raise ValidationError("A target user is required for user overrides")
        if draft.date_type == DateType.RANGE:
            if draft.end_date is None or draft.end_date < draft.start_date:
                raise ValidationError(
                    "Range overrides need an end date after the start"
                )
        if draft.date_type == DateType.RECURRING:
            self._validate_recurrence(draft)
        elif draft.end_date is not None and draft.end_date < draft.start_date:
            raise ValidationError("End date cannot precede start date")
        if draft.expires_at is not None and draft.expires_at <= self.clock():
            raise ValidationError("Expiry must be in the future")

    @staticmethod
    def _validate_recurrence(draft: OverrideDraft) -> None:
        if draft.recurring_pattern is None:
            raise ValidationError("Recurring overrides need a pattern")
        if draft.end_date is not None and draft.end_date < draft.start_date:
            raise ValidationError("End date cannot precede start date")
        if draft.recurring_pattern == RecurringPattern.DAILY:
            return
        allowed = (
            _WEEKDAYS
            if draft.recurring_pattern == RecurringPattern.WEEKLY
            else _MONTH_DAYS
        )
        if not draft.recurring_days or any(
            day not in allowed for day in draft.recurring_days
        ):
            raise ValidationError(
                "Invalid recurring days",
                {
                    "pattern": draft.recurring_pattern.value,
                    "recurring_days": list(draft.recurring_days),
                },
            )

    @staticmethod
    def _draft_fields(draft: OverrideDraft) -> dict[str, object]:
        return {
            "target_type": draft.target_type,
            "target_user_id": (
                draft.target_user_id if draft.target_type == TargetType.USER else None
            ),
            "date_type": draft.date_type,
            "start_date": draft.start_date,
            "end_date": None if draft.date_type == DateType.SINGLE else draft.end_date,
            "recurring_pattern": (
                draft.recurring_pattern
                if draft.date_type == DateType.RECURRING
                else None
            ),
            "recurring_days": (
                tuple(sorted(set(draft.recurring_days)))
                if draft.date_type == DateType.RECURRING
                else ()
            ),
            "meal_type": draft.meal_type,
            "action": draft.action,
            "reason": draft.reason,
            "expires_at": draft.expires_at,
        }

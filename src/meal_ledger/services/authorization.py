"""Role and permission checks."""

from dataclasses import dataclass
from enum import StrEnum

from meal_ledger.domain.errors import PermissionDeniedError
from meal_ledger.domain.models import Role, UserRecord


class Permission(StrEnum):
    """Fine-grained actions gated by the authorizer."""

    VIEW_OWN_MEALS = "meals:view_own"
    TOGGLE_OWN_MEALS = "meals:toggle_own"
    VIEW_ALL_MEALS = "meals:view_all"
    MANAGE_ALL_MEALS = "meals:manage_all"
    OVERRIDE_FINALIZED = "meals:override_finalized"
    VIEW_BREAKFAST = "breakfast:view"
    MANAGE_BREAKFAST = "breakfast:manage"
    VIEW_OWN_BALANCE = "balance:view_own"
    VIEW_ALL_BALANCES = "balance:view_all"
    UPDATE_BALANCES = "balance:update"
    FREEZE_BALANCE = "balance:freeze"
    OVERRIDE_FROZEN_BALANCE = "balance:override_freeze"
    REVERSE_TRANSACTIONS = "transactions:reverse"
    VIEW_MONTH_SETTINGS = "month:view"
    MANAGE_MONTH_SETTINGS = "month:manage"
    FINALIZE_MONTH = "month:finalize"
    RUN_CHARGES = "charges:run"
    VIEW_HOLIDAYS = "holidays:view"
    MANAGE_HOLIDAYS = "holidays:manage"
    SYNC_HOLIDAYS = "holidays:sync"
    MANAGE_OVERRIDES = "overrides:manage"
    MANAGE_GLOBAL_OVERRIDES = "overrides:manage_global"
    MANAGE_SETTINGS = "settings:manage"
    FORCE_CORRECTIONS = "corrections:force"


_USER_PERMISSIONS = frozenset(
    {
        Permission.VIEW_OWN_MEALS,
        Permission.TOGGLE_OWN_MEALS,
        Permission.VIEW_OWN_BALANCE,
        Permission.VIEW_MONTH_SETTINGS,
        Permission.VIEW_HOLIDAYS,
    }
)
_MANAGER_PERMISSIONS = _USER_PERMISSIONS | {
    Permission.VIEW_ALL_MEALS,
    Permission.MANAGE_ALL_MEALS,
    Permission.VIEW_BREAKFAST,
    Permission.MANAGE_BREAKFAST,
    Permission.VIEW_ALL_BALANCES,
    Permission.UPDATE_BALANCES,
    Permission.FREEZE_BALANCE,
    Permission.REVERSE_TRANSACTIONS,
    Permission.MANAGE_MONTH_SETTINGS,
    Permission.FINALIZE_MONTH,
    Permission.RUN_CHARGES,
    Permission.MANAGE_OVERRIDES,
}
_ADMIN_PERMISSIONS = _MANAGER_PERMISSIONS | {
    Permission.OVERRIDE_FINALIZED,
    Permission.OVERRIDE_FROZEN_BALANCE,
    Permission.MANAGE_HOLIDAYS,
    Permission.SYNC_HOLIDAYS,
    Permission.MANAGE_GLOBAL_OVERRIDES,
    Permission.MANAGE_SETTINGS,
}
_SUPERADMIN_PERMISSIONS = _ADMIN_PERMISSIONS | {Permission.FORCE_CORRECTIONS}

ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.USER: frozenset(_USER_PERMISSIONS),
    Role.MANAGER: frozenset(_MANAGER_PERMISSIONS),
    Role.ADMIN: frozenset(_ADMIN_PERMISSIONS),
    Role.SUPERADMIN: frozenset(_SUPERADMIN_PERMISSIONS),
}


@dataclass(frozen=True)
class Authorizer:
    """Single entry point for authorization decisions.

    A user's effective permissions are the role defaults plus any
    permissions granted to the user directly.
    """

    role_permissions: dict[Role, frozenset[str]]

    @classmethod
    def default(cls) -> "Authorizer":
        """Create an authorizer with the built-in role matrix."""
        return cls(role_permissions=ROLE_PERMISSIONS)

    def permissions_for(self, user: UserRecord) -> frozenset[str]:
        """Return the effective permission set of a user."""
        if not user.is_active:
            return frozenset()
        return self.role_permissions.get(user.role, frozenset()) | user.permissions

    def check(self, user: UserRecord, permission: Permission) -> bool:
        """Return True if ``user`` holds ``permission``."""
        return permission.value in self.permissions_for(user)

    def require(self, user: UserRecord, permission: Permission) -> None:
        """Raise if ``user`` lacks ``permission``."""
        if not self.check(user, permission):
            raise PermissionDeniedError(
                f"Missing permission {permission.value}",
                {"user_id": str(user.id), "permission": permission.value},
            )

"""
Role Assignment Service

Replaces a user's whole role set in one step and keeps the forum from
losing its last admin.

RULES:
1. Role labels must be known Role values. Duplicates collapse, first
   occurrence wins, so the first label is always the primary role.
2. An admin removing admin from THEMSELVES is refused while they are the
   only admin. Removal by a different admin is not checked.
3. The store swaps the role set atomically. Nobody observes a user with
   half a role set.
4. Granting reviewer creates a reviewer profile if none exists. This is
   a second step after the role swap: if it fails the failure is logged
   and the new roles stay.
"""

from typing import TYPE_CHECKING, Iterable, Optional, Union

from ..observability import get_logger, get_metrics
from ..schemas import Role, RoleSet
from .errors import (
    ForumError,
    InvariantViolation,
    NotFound,
    PersistenceUnavailable,
    ValidationError,
)

if TYPE_CHECKING:
    from ..db.store import UserRoleProvider

logger = get_logger(__name__)


def parse_roles(labels: Iterable[Union[Role, str]]) -> list[Role]:
    """
    Turn role labels into Role values, dropping repeats.

    Raises:
        ValidationError: on a label that is not a known role
    """
    if labels is None or isinstance(labels, str):
        raise ValidationError("Roles must be given as a list of labels")

    roles: list[Role] = []
    for label in labels:
        if isinstance(label, Role):
            role = label
        else:
            try:
                role = Role(str(label).strip().lower())
            except ValueError:
                known = ", ".join(r.value for r in Role)
                raise ValidationError(
                    f"Unknown role '{label}'. Known roles: {known}"
                ) from None
        if role not in roles:
            roles.append(role)
    return roles


class RoleAssignmentService:
    """
    Assigns roles and guards the at-least-one-admin invariant.

    Usage:
        service = RoleAssignmentService(store)
        role_set = service.assign_roles("alice", ["instructor", "reviewer"], "admin1")
    """

    def __init__(self, store: "UserRoleProvider"):
        self._store = store

    def assign_roles(
        self,
        user_id: str,
        new_roles: Iterable[Union[Role, str]],
        acting_admin_id: str,
    ) -> RoleSet:
        """
        Replace a user's roles.

        Args:
            user_id: User whose roles change
            new_roles: Full new role set, primary role first
            acting_admin_id: Admin performing the change

        Returns:
            The user's new RoleSet

        Raises:
            ValidationError: unknown role label or blank id
            NotFound: user does not exist
            InvariantViolation: the sole admin tried to drop their own admin role
            PersistenceUnavailable: store failure (nothing changed)
        """
        if not user_id or not user_id.strip():
            raise ValidationError("User ID is required")
        if not acting_admin_id or not acting_admin_id.strip():
            raise ValidationError("Acting admin ID is required")
        user_id = user_id.strip()
        acting_admin_id = acting_admin_id.strip()
        roles = parse_roles(new_roles)

        try:
            stored = self._replace_checked(user_id, roles, acting_admin_id)
        except PersistenceUnavailable:
            logger.exception(
                "Role change failed",
                user_id=user_id,
                acting_admin_id=acting_admin_id,
                roles=[r.value for r in roles],
            )
            raise
        get_metrics().role_changes += 1
        logger.info(
            "Roles replaced",
            user_id=user_id,
            acting_admin_id=acting_admin_id,
            roles=[r.value for r in stored],
        )

        if Role.REVIEWER in stored:
            self._ensure_reviewer_profile(user_id)

        return RoleSet(user_id=user_id, roles=stored)

    def _replace_checked(
        self, user_id: str, roles: list[Role], acting_admin_id: str
    ) -> list[Role]:
        if self._store.get_user(user_id) is None:
            raise NotFound(f"User {user_id} does not exist")

        if user_id == acting_admin_id and Role.ADMIN not in roles:
            admin_count = self._store.current_role_count(Role.ADMIN)
            if admin_count <= 1:
                get_metrics().role_changes_rejected += 1
                logger.warning(
                    "Refused to remove the last admin",
                    user_id=user_id,
                    admin_count=admin_count,
                )
                raise InvariantViolation(
                    f"{user_id} is the only admin and cannot remove their own admin role"
                )

        return self._store.replace_roles(user_id, roles)

    def _ensure_reviewer_profile(self, user_id: str) -> None:
        try:
            if self._store.has_reviewer_profile(user_id):
                return
            self._store.create_reviewer_profile(user_id)
            logger.info("Created reviewer profile", user_id=user_id)
        except (ForumError, OSError) as e:
            logger.exception(
                "Reviewer profile creation failed; roles were kept",
                user_id=user_id,
                error=str(e),
            )

    def grant_role(self, user_id: str, role: Union[Role, str], acting_id: str) -> RoleSet:
        """
        Add one role to a user's set. A no-op if the role is already held.
        """
        granted = parse_roles([role])[0]
        current = self._store.get_roles(user_id)
        if granted in current:
            logger.debug("Role already held", user_id=user_id, role=granted.value)
            return RoleSet(user_id=user_id, roles=current)
        return self.assign_roles(user_id, current + [granted], acting_id)

    def get_role_set(self, user_id: str, active_role: Optional[Union[Role, str]] = None) -> RoleSet:
        """The user's roles, with the active role defaulting to the primary role."""
        roles = self._store.get_roles(user_id)
        role_set = RoleSet(user_id=user_id, roles=roles)
        if active_role is not None:
            role_set = self.select_active_role(role_set, active_role)
        return role_set

    @staticmethod
    def select_active_role(role_set: RoleSet, role: Union[Role, str]) -> RoleSet:
        """
        Pick the session role for a multi-role user.

        Raises:
            ValidationError: if the user does not hold the role
        """
        chosen = parse_roles([role])[0]
        if not role_set.holds(chosen):
            raise ValidationError(
                f"{role_set.user_id} does not hold role '{chosen.value}'"
            )
        return role_set.model_copy(update={"active_role": chosen})

"""
Role sets for authorization checks.

WHY: Protected actions declare the roles they accept as a set of UserRole
values, so an authorization decision is a plain membership test. Callers
that still send the pipe-delimited form ("admin|project_manager") get the
same set back.
"""

from typing import FrozenSet, Iterable, Union

from taskhub.core.exceptions import ValidationError
from taskhub.models.user import UserRole


RoleSet = FrozenSet[UserRole]

ADMIN_ONLY: RoleSet = frozenset({UserRole.ADMIN})
MANAGERS: RoleSet = frozenset({UserRole.ADMIN, UserRole.PROJECT_MANAGER})
ANY_ROLE: RoleSet = frozenset(UserRole)


def parse_roles(value: Union[str, Iterable[Union[str, UserRole]]]) -> RoleSet:
    """
    Normalize accepted roles (list or "a|b" string) into a role set.

    Args:
        value: "admin|project_manager" or an iterable of role names / UserRole

    Returns:
        Frozen set of UserRole

    Raises:
        ValidationError: If the set is empty or names an unknown role
    """
    names = value.split("|") if isinstance(value, str) else list(value)
    roles = set()
    for name in names:
        if isinstance(name, UserRole):
            roles.add(name)
            continue
        name = name.strip()
        if not name:
            continue
        try:
            roles.add(UserRole(name))
        except ValueError:
            raise ValidationError(message=f"Unknown role '{name}'", role=name)

    if not roles:
        raise ValidationError(message="At least one role is required")
    return frozenset(roles)


def role_allowed(role: UserRole, accepted: RoleSet) -> bool:
    return role in accepted


def format_roles(roles: RoleSet) -> str:
    """Pipe-delimited form, in enum declaration order."""
    return "|".join(role.value for role in UserRole if role in roles)

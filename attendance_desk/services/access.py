from __future__ import annotations

from attendance_desk.models import (
    AccessDecision,
    Denied,
    PermissionSet,
    Role,
    SingleDepartment,
    SingleEmployee,
    Unrestricted,
    UserContext,
)

ROLE_ALIASES: dict[str, Role] = {
    "admin": Role.ADMIN,
    "cto": Role.ADMIN,
    "hr": Role.HR,
    "manager": Role.MANAGER,
    "employee": Role.EMPLOYEE,
}

MANAGER_WITHOUT_DEPARTMENT_MESSAGE = "Access restricted: No department assigned to your manager account."
EMPLOYEE_WITHOUT_IDENTITY_MESSAGE = "Access restricted: No employee record linked to your account."
UNKNOWN_ROLE_MESSAGE = "You do not have permission to view attendance data."

MANAGER_PERMISSIONS = PermissionSet(
    search=True,
    export=True,
    filter_by_status=True,
    filter_by_date=True,
)
EMPLOYEE_PERMISSIONS = PermissionSet(
    export=True,
    filter_by_status=True,
    filter_by_date=True,
)


def resolve_role(role_name: str | None) -> Role:
    if not role_name:
        return Role.UNKNOWN
    return ROLE_ALIASES.get(role_name.strip().lower(), Role.UNKNOWN)


def _denied(role: Role, reason: str) -> AccessDecision:
    return AccessDecision(role=role, permissions=PermissionSet.none_granted(), scope=Denied(reason=reason))


def resolve_access(user: UserContext | None) -> AccessDecision:
    """Map an authenticated identity to its permission set and data scope.

    Pure and total: ambiguous identities resolve to the all-false permission
    set with a ``Denied`` scope instead of raising.
    """
    if user is None:
        return _denied(Role.UNKNOWN, UNKNOWN_ROLE_MESSAGE)

    role = resolve_role(user.role_name)
    if role in (Role.ADMIN, Role.HR):
        return AccessDecision(role=role, permissions=PermissionSet.all_granted(), scope=Unrestricted())

    if role == Role.MANAGER:
        department_id = (user.manager_department_id or "").strip()
        if not department_id:
            return _denied(role, MANAGER_WITHOUT_DEPARTMENT_MESSAGE)
        return AccessDecision(
            role=role,
            permissions=MANAGER_PERMISSIONS,
            scope=SingleDepartment(department_id=department_id),
        )

    if role == Role.EMPLOYEE:
        employee_id = (user.employee_id or "").strip() or (user.user_id or "").strip()
        if not employee_id:
            return _denied(role, EMPLOYEE_WITHOUT_IDENTITY_MESSAGE)
        return AccessDecision(
            role=role,
            permissions=EMPLOYEE_PERMISSIONS,
            scope=SingleEmployee(employee_id=employee_id),
        )

    return _denied(role, UNKNOWN_ROLE_MESSAGE)

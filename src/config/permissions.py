# ============================================
# ROLE / PERMISSION TABLE
# ============================================

"""
Static mapping from role to hierarchy rank, permission grants and the
approval levels each role may act on
"""

from typing import Dict, List, Union

from src.models.approval import ApprovalLevel
from src.models.user import UserRole

DISBURSE = "DISBURSE"

# Higher rank = more authority
ROLE_HIERARCHY: Dict[UserRole, int] = {
    UserRole.ADMIN: 100,
    UserRole.MD: 90,
    UserRole.DIRECTOR: 80,
    UserRole.FINANCE_CONTROLLER: 70,
    UserRole.FINANCE_TEAM: 60,
    UserRole.EMPLOYEE: 10,
}

ROLE_PERMISSIONS: Dict[UserRole, List[str]] = {
    UserRole.EMPLOYEE: [
        "request:create",
        "request:view:own",
        "request:edit:own:draft",
        "request:delete:own:draft",
        "request:respond:sendback",
    ],
    UserRole.FINANCE_TEAM: [
        "request:view:all",
        "request:edit:financial",
        "approval:finance:vetting",
        "disbursement:process",
        "dashboard:finance",
        "reports:all",
    ],
    UserRole.FINANCE_CONTROLLER: [
        "request:view:all",
        "approval:finance:controller",
        "dashboard:all",
        "reports:all",
    ],
    UserRole.DIRECTOR: [
        "request:view:all",
        "approval:director",
        "dashboard:all",
        "reports:all",
    ],
    UserRole.MD: [
        "request:view:all",
        "approval:md",
        "dashboard:all",
        "reports:all",
        "config:view",
    ],
    UserRole.ADMIN: [
        "request:view:all",
        "request:edit:all",
        "approval:override",
        "user:manage",
        "config:manage",
        "reports:all",
        "system:manage",
    ],
}

# Roles that may act on each level; ADMIN may act on every level
LEVEL_APPROVER_ROLES: Dict[ApprovalLevel, List[UserRole]] = {
    ApprovalLevel.FINANCE_VETTING: [UserRole.FINANCE_TEAM],
    ApprovalLevel.FINANCE_PLANNER: [UserRole.FINANCE_CONTROLLER],
    ApprovalLevel.FINANCE_CONTROLLER: [UserRole.FINANCE_CONTROLLER],
    ApprovalLevel.DIRECTOR: [UserRole.DIRECTOR],
    ApprovalLevel.MD: [UserRole.MD],
}

DISBURSEMENT_ROLES: List[UserRole] = [UserRole.FINANCE_TEAM]

ROLE_LABELS: Dict[UserRole, str] = {
    UserRole.EMPLOYEE: "Employee",
    UserRole.FINANCE_TEAM: "Finance Team",
    UserRole.FINANCE_CONTROLLER: "Finance Controller",
    UserRole.DIRECTOR: "Director",
    UserRole.MD: "Managing Director",
    UserRole.ADMIN: "Administrator",
}


def has_permission(role: UserRole, permission: str) -> bool:
    """
    Check a permission grant for a role

    Args:
        role: User role
        permission: Permission string, e.g. "request:view:all"

    Returns:
        True if granted directly, through a "category:*" wildcard, or to ADMIN
    """
    if role == UserRole.ADMIN:
        return True

    permissions = ROLE_PERMISSIONS.get(role, [])
    if permission in permissions:
        return True

    category = permission.split(":")[0]
    return f"{category}:*" in permissions


def roles_for_level(level: ApprovalLevel) -> List[UserRole]:
    """Roles that may act on a level, ADMIN included"""
    return LEVEL_APPROVER_ROLES.get(level, []) + [UserRole.ADMIN]


def can_approve_level(role: UserRole, level: ApprovalLevel) -> bool:
    return role in roles_for_level(level)


def can_disburse(role: UserRole) -> bool:
    return role in DISBURSEMENT_ROLES or role == UserRole.ADMIN


def has_capability(role: UserRole, capability: Union[ApprovalLevel, str]) -> bool:
    """Capability check for a level or the DISBURSE action"""
    if capability == DISBURSE:
        return can_disburse(role)
    try:
        level = ApprovalLevel(capability)
    except ValueError:
        return False
    return can_approve_level(role, level)


def get_role_rank(role: UserRole) -> int:
    return ROLE_HIERARCHY.get(role, 0)


def get_role_label(role: UserRole) -> str:
    return ROLE_LABELS.get(role, role.value)

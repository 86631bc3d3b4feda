"""
Identity Service
Resolves approvers, disbursers and administrators, and answers capability
and entity-assignment questions for the workflow
"""

from sqlalchemy.orm import Session
from typing import List, Optional, Union

from src.config.permissions import DISBURSE, DISBURSEMENT_ROLES, has_capability, roles_for_level
from src.models.approval import ApprovalLevel
from src.models.user import User, UserRole
from src.utils.logger import setup_logger

logger = setup_logger()


class IdentityService:
    """Role and entity lookups over the users table"""

    def _active_users_with_roles(
        self,
        db: Session,
        roles: List[UserRole],
        entity_id: Optional[int] = None
    ) -> List[User]:
        users = db.query(User).filter(
            User.role.in_(roles),
            User.is_active == True  # noqa: E712
        ).order_by(User.id.asc()).all()

        if entity_id is None:
            return users

        # Users without any entity assignment act group-wide
        return [
            user for user in users
            if not user.entities or entity_id in self.entity_assignments(user)
        ]

    def resolve_approvers_for_level(
        self,
        db: Session,
        level: ApprovalLevel,
        entity_id: Optional[int] = None
    ) -> List[int]:
        """
        Get IDs of users who may act on a level for an entity

        Administrators are not included; they are addressed separately
        through resolve_admins.
        """
        roles = [role for role in roles_for_level(level) if role != UserRole.ADMIN]
        approvers = self._active_users_with_roles(db, roles, entity_id)

        if not approvers:
            logger.warning(f"No active approvers found for {level.value} (entity {entity_id})")

        return [user.id for user in approvers]

    def resolve_disbursers(self, db: Session, entity_id: int) -> List[int]:
        """Finance users able to pay out requests of an entity"""
        disbursers = [
            user for user in self._active_users_with_roles(db, DISBURSEMENT_ROLES)
            if entity_id in self.entity_assignments(user)
        ]
        return [user.id for user in disbursers]

    def resolve_admins(self, db: Session) -> List[int]:
        return [user.id for user in self._active_users_with_roles(db, [UserRole.ADMIN])]

    def has_capability(self, user: User, capability: Union[ApprovalLevel, str]) -> bool:
        """Whether an active user may act on a level or disburse (capability == "DISBURSE")"""
        if not user.is_active:
            return False
        return has_capability(user.role, capability)

    def can_disburse(self, user: User) -> bool:
        return self.has_capability(user, DISBURSE)

    def entity_assignments(self, user: User) -> List[int]:
        return [entity.id for entity in user.entities]


# Create singleton instance
identity_service = IdentityService()

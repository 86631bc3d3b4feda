"""
Ladder, SLA Policy, Resubmission Guard and Permission Tests
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.config.permissions import (
    DISBURSE, can_approve_level, can_disburse, get_role_rank, has_capability, has_permission
)
from src.config.workflow import CRITICAL, NON_CRITICAL, WorkflowConfig
from src.models.approval import ApprovalLevel
from src.models.user import UserRole
from src.services.approval_ladder import ApprovalLadder
from src.services.identity_service import identity_service
from src.services.resubmission_guard import ResubmissionGuard
from src.services.sla_policy import SLAPolicy


class TestApprovalLadder:
    """Routing over the configured ladder"""

    def test_default_ladder_order(self):
        ladder = ApprovalLadder(WorkflowConfig())
        assert ladder.levels == [
            ApprovalLevel.FINANCE_VETTING,
            ApprovalLevel.FINANCE_CONTROLLER,
            ApprovalLevel.DIRECTOR,
            ApprovalLevel.MD,
        ]
        assert ladder.first_level == ApprovalLevel.FINANCE_VETTING
        assert ladder.terminal_level == ApprovalLevel.MD

    def test_next_level_and_terminal(self):
        ladder = ApprovalLadder(WorkflowConfig())
        assert ladder.next_level(ApprovalLevel.FINANCE_VETTING) == ApprovalLevel.FINANCE_CONTROLLER
        assert ladder.next_level(ApprovalLevel.DIRECTOR) == ApprovalLevel.MD
        assert ladder.next_level(ApprovalLevel.MD) is None
        assert ladder.is_terminal(ApprovalLevel.MD)
        assert not ladder.is_terminal(ApprovalLevel.FINANCE_VETTING)

    def test_sequence_is_one_based(self):
        ladder = ApprovalLadder(WorkflowConfig())
        assert ladder.sequence(ApprovalLevel.FINANCE_VETTING) == 1
        assert ladder.sequence(ApprovalLevel.MD) == 4

    def test_level_outside_ladder(self):
        ladder = ApprovalLadder(WorkflowConfig())
        assert ApprovalLevel.FINANCE_PLANNER not in ladder
        with pytest.raises(ValueError):
            ladder.next_level(ApprovalLevel.FINANCE_PLANNER)

    def test_custom_ladder_with_planner(self):
        config = WorkflowConfig(approval_ladder=[
            ApprovalLevel.FINANCE_VETTING,
            ApprovalLevel.FINANCE_PLANNER,
            ApprovalLevel.MD,
        ])
        ladder = ApprovalLadder(config)
        assert len(ladder) == 3
        assert ladder.next_level(ApprovalLevel.FINANCE_VETTING) == ApprovalLevel.FINANCE_PLANNER

    def test_empty_or_repeated_ladder_rejected(self):
        with pytest.raises(PydanticValidationError):
            WorkflowConfig(approval_ladder=[])
        with pytest.raises(PydanticValidationError):
            WorkflowConfig(approval_ladder=[ApprovalLevel.MD, ApprovalLevel.MD])


class TestSLAPolicy:
    """SLA budget lookups"""

    def test_vetting_differs_by_classification(self):
        policy = SLAPolicy(WorkflowConfig())
        assert policy.hours_for(ApprovalLevel.FINANCE_VETTING, is_critical=True) == 24
        assert policy.hours_for(ApprovalLevel.FINANCE_VETTING, is_critical=False) == 72

    def test_other_levels_flat(self):
        policy = SLAPolicy(WorkflowConfig())
        for level in (ApprovalLevel.FINANCE_CONTROLLER, ApprovalLevel.DIRECTOR, ApprovalLevel.MD):
            assert policy.hours_for(level, is_critical=True) == 24
            assert policy.hours_for(level, is_critical=False) == 24

    def test_table_is_fully_configurable(self):
        config = WorkflowConfig(sla_hours={
            ApprovalLevel.FINANCE_VETTING: {CRITICAL: 12, NON_CRITICAL: 48},
            ApprovalLevel.DIRECTOR: {CRITICAL: 6, NON_CRITICAL: 36},
        })
        policy = SLAPolicy(config)
        assert policy.hours_for(ApprovalLevel.DIRECTOR, is_critical=True) == 6
        assert policy.hours_for(ApprovalLevel.DIRECTOR, is_critical=False) == 36

    def test_missing_level_uses_default(self):
        config = WorkflowConfig(sla_hours={}, default_sla_hours=30)
        assert SLAPolicy(config).hours_for(ApprovalLevel.MD, is_critical=False) == 30

    def test_high_value_override(self):
        config = WorkflowConfig(high_value_threshold=1_000_000, high_value_sla_hours=8)
        policy = SLAPolicy(config)
        assert policy.hours_for(ApprovalLevel.FINANCE_VETTING, False, amount=2_000_000) == 8
        assert policy.hours_for(ApprovalLevel.FINANCE_VETTING, False, amount=10_000) == 72

    def test_config_changes_after_construction_ignored(self):
        config = WorkflowConfig()
        policy = SLAPolicy(config)
        config.sla_hours[ApprovalLevel.FINANCE_VETTING][NON_CRITICAL] = 1
        assert policy.hours_for(ApprovalLevel.FINANCE_VETTING, is_critical=False) == 72

    def test_warning_threshold(self):
        policy = SLAPolicy(WorkflowConfig(sla_warning_threshold=0.75))
        assert policy.warning_after_hours(24) == 18


class TestResubmissionGuard:
    """Counter and ceiling"""

    def test_limit_of_two(self):
        guard = ResubmissionGuard(WorkflowConfig())
        assert not guard.exceeds_limit(guard.next_count(0))
        assert not guard.exceeds_limit(guard.next_count(1))
        assert guard.exceeds_limit(guard.next_count(2))

    def test_remaining(self):
        guard = ResubmissionGuard(WorkflowConfig(max_resubmissions=3))
        assert guard.remaining(0) == 3
        assert guard.remaining(5) == 0


class TestPermissions:
    """Role/permission table"""

    @pytest.mark.parametrize("role,level", [
        (UserRole.FINANCE_TEAM, ApprovalLevel.FINANCE_VETTING),
        (UserRole.FINANCE_CONTROLLER, ApprovalLevel.FINANCE_PLANNER),
        (UserRole.FINANCE_CONTROLLER, ApprovalLevel.FINANCE_CONTROLLER),
        (UserRole.DIRECTOR, ApprovalLevel.DIRECTOR),
        (UserRole.MD, ApprovalLevel.MD),
        (UserRole.ADMIN, ApprovalLevel.MD),
    ])
    def test_level_approvers(self, role, level):
        assert can_approve_level(role, level)
        assert has_capability(role, level)

    def test_wrong_level_denied(self):
        assert not can_approve_level(UserRole.DIRECTOR, ApprovalLevel.MD)
        assert not can_approve_level(UserRole.EMPLOYEE, ApprovalLevel.FINANCE_VETTING)
        assert not has_capability(UserRole.MD, "NOT_A_LEVEL")

    def test_disbursement_capability(self):
        assert can_disburse(UserRole.FINANCE_TEAM)
        assert can_disburse(UserRole.ADMIN)
        assert not can_disburse(UserRole.MD)
        assert has_capability(UserRole.FINANCE_TEAM, DISBURSE)

    def test_permission_grants(self):
        assert has_permission(UserRole.EMPLOYEE, "request:create")
        assert not has_permission(UserRole.EMPLOYEE, "request:view:all")
        assert has_permission(UserRole.ADMIN, "anything:at:all")

    def test_hierarchy(self):
        assert get_role_rank(UserRole.ADMIN) > get_role_rank(UserRole.MD) > get_role_rank(UserRole.EMPLOYEE)


class TestIdentityService:
    """Approver, disburser and admin resolution"""

    def test_level_approvers_filtered_by_entity(self, db, users, entities):
        hq = identity_service.resolve_approvers_for_level(db, ApprovalLevel.FINANCE_VETTING, entities["HQ"].id)
        ops = identity_service.resolve_approvers_for_level(db, ApprovalLevel.FINANCE_VETTING, entities["OPS"].id)

        assert hq == [users["finance"].id]
        assert ops == [users["finance_ops"].id]

    def test_admins_not_listed_as_level_approvers(self, db, users, entities):
        approvers = identity_service.resolve_approvers_for_level(db, ApprovalLevel.MD, entities["HQ"].id)
        assert approvers == [users["md"].id]
        assert identity_service.resolve_admins(db) == [users["admin"].id]

    def test_unassigned_user_acts_group_wide(self, db, users, entities):
        users["director"].entities = []
        db.commit()

        approvers = identity_service.resolve_approvers_for_level(db, ApprovalLevel.DIRECTOR, entities["OPS"].id)
        assert approvers == [users["director"].id]

    def test_disbursers_require_entity_assignment(self, db, users, entities):
        assert identity_service.resolve_disbursers(db, entities["HQ"].id) == [users["finance"].id]
        assert identity_service.resolve_disbursers(db, entities["OPS"].id) == [users["finance_ops"].id]

    def test_capabilities(self, db, users):
        assert identity_service.can_disburse(users["finance"])
        assert not identity_service.can_disburse(users["director"])
        assert identity_service.has_capability(users["director"], ApprovalLevel.DIRECTOR)

        users["finance"].is_active = False
        db.commit()
        assert not identity_service.has_capability(users["finance"], DISBURSE)

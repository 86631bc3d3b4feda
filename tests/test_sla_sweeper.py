"""
SLA Sweeper Tests
Breach detection, warnings and resolution with a controlled clock
"""

from datetime import datetime, timedelta

import pytest

from src.models.approval import ApprovalDecision, ApprovalLevel, ApprovalStep
from src.models.finance_request import PaymentType
from src.models.notification import NotificationType
from src.models.sla_log import SLALog
from src.services.workflow_repository import WorkflowRepository


def hours_later(hours):
    return datetime.utcnow() + timedelta(hours=hours)


async def submitted(service, db, users, request_data, **overrides):
    return await service.create_request(db, request_data(**overrides), users["employee"], save_as_draft=False)


def breach_logs(db, request):
    return WorkflowRepository(db).breach_logs(request.id)


class TestBreachDetection:
    """Breach logging"""

    @pytest.mark.asyncio
    async def test_nothing_overdue(self, db, users, service, sweeper, request_data):
        await submitted(service, db, users, request_data)

        result = await sweeper.run(db, now=hours_later(1))

        assert result.checked == 1
        assert result.breaches_logged == 0
        assert result.warnings_sent == 0

    @pytest.mark.asyncio
    async def test_overdue_step_logged(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)

        result = await sweeper.run(db, now=hours_later(73))

        assert result.breaches_logged == 1
        assert result.breached_references == [request.reference_number]
        logs = breach_logs(db, request)
        assert len(logs) == 1
        assert logs[0].level == ApprovalLevel.FINANCE_VETTING
        assert logs[0].sla_hours == 72
        assert logs[0].hours_overdue >= 1
        assert logs[0].is_open

        step = db.query(ApprovalStep).filter(ApprovalStep.finance_request_id == request.id).one()
        assert step.sla_breached

    @pytest.mark.asyncio
    async def test_critical_uses_shorter_budget(self, db, users, service, sweeper, request_data):
        critical = await submitted(service, db, users, request_data, payment_type=PaymentType.CRITICAL)
        await submitted(service, db, users, request_data)

        result = await sweeper.run(db, now=hours_later(25))

        assert result.checked == 2
        assert result.breached_references == [critical.reference_number]

    @pytest.mark.asyncio
    async def test_repeated_sweeps_log_once(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)

        first = await sweeper.run(db, now=hours_later(73))
        second = await sweeper.run(db, now=hours_later(80))

        assert first.breaches_logged == 1
        assert second.breaches_logged == 0
        assert len(breach_logs(db, request)) == 1

    @pytest.mark.asyncio
    async def test_existing_open_breach_not_duplicated(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)
        step = db.query(ApprovalStep).filter(ApprovalStep.finance_request_id == request.id).one()

        # Logged by a concurrent sweep that had not flagged the step yet
        db.add(SLALog(
            finance_request_id=request.id,
            approval_step_id=step.id,
            level=step.level,
            sla_hours=step.sla_hours,
            due_at=step.deadline,
            hours_overdue=1.0,
        ))
        db.commit()

        result = await sweeper.run(db, now=hours_later(73))

        assert result.breaches_logged == 0
        assert len(breach_logs(db, request)) == 1
        db.refresh(step)
        assert step.sla_breached

    @pytest.mark.asyncio
    async def test_breach_notifies_approvers_admins_and_requester(
        self, db, users, service, sweeper, request_data, notifier, sent
    ):
        await submitted(service, db, users, request_data)
        notifier.notify.reset_mock()

        await sweeper.run(db, now=hours_later(73))

        calls = sent()
        escalation = sorted([users["finance"].id, users["admin"].id])
        assert (NotificationType.SLA_BREACH, escalation) in calls
        assert (NotificationType.SLA_BREACH, [users["employee"].id]) in calls
        # OPS-only finance users are not escalated HQ breaches
        assert all(users["finance_ops"].id not in recipients for _, recipients in calls)

    @pytest.mark.asyncio
    async def test_deleted_requests_ignored(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)
        await service.delete_request(db, request.reference_number, users["admin"])

        result = await sweeper.run(db, now=hours_later(100))

        assert result.checked == 0
        assert result.breaches_logged == 0


class TestBreachResolution:
    """Decisions close open breaches"""

    @pytest.mark.asyncio
    async def test_decision_resolves_breach(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)
        await sweeper.run(db, now=hours_later(73))

        decided_at = hours_later(74)
        await service.decide(
            db, request.reference_number, ApprovalLevel.FINANCE_VETTING,
            ApprovalDecision.APPROVED, users["finance"], now=decided_at
        )

        logs = breach_logs(db, request)
        assert len(logs) == 1
        assert not logs[0].is_open
        assert logs[0].resolved_at == decided_at

        # The controller step starts its own 24h budget at the decision time
        result = await sweeper.run(db, now=decided_at + timedelta(hours=2))
        assert result.breaches_logged == 0

    @pytest.mark.asyncio
    async def test_next_level_breach_logged_separately(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)
        await sweeper.run(db, now=hours_later(73))

        decided_at = hours_later(74)
        await service.decide(
            db, request.reference_number, ApprovalLevel.FINANCE_VETTING,
            ApprovalDecision.APPROVED, users["finance"], now=decided_at
        )
        result = await sweeper.run(db, now=decided_at + timedelta(hours=25))

        assert result.breaches_logged == 1
        levels = [log.level for log in breach_logs(db, request)]
        assert levels == [ApprovalLevel.FINANCE_VETTING, ApprovalLevel.FINANCE_CONTROLLER]

    @pytest.mark.asyncio
    async def test_step_closed_after_scan_is_not_logged(
        self, db, users, service, sweeper, request_data, session_factory, notifier
    ):
        request = await submitted(service, db, users, request_data)

        sweep_db = session_factory()
        try:
            candidates = WorkflowRepository(sweep_db).overdue_candidates(hours_later(73))
            assert len(candidates) == 1

            # The approver acts between the scan and the breach write
            await service.decide(
                db, request.reference_number, ApprovalLevel.FINANCE_VETTING,
                ApprovalDecision.SENT_BACK, users["finance"], comments="Missing invoice"
            )
            notifier.notify.reset_mock()

            assert sweeper._log_breach(sweep_db, candidates[0], hours_later(73)) is None
        finally:
            sweep_db.close()

        assert breach_logs(db, request) == []
        assert notifier.notify.await_count == 0

    @pytest.mark.asyncio
    async def test_late_log_on_closed_step_resolved_and_next_round_logged(
        self, db, users, service, sweeper, request_data
    ):
        request = await submitted(service, db, users, request_data)
        first_step = db.query(ApprovalStep).filter(ApprovalStep.finance_request_id == request.id).one()
        await service.decide(
            db, request.reference_number, ApprovalLevel.FINANCE_VETTING,
            ApprovalDecision.SENT_BACK, users["finance"], comments="Missing invoice"
        )

        # Written by a sweep whose commit landed after the decision
        db.add(SLALog(
            finance_request_id=request.id,
            approval_step_id=first_step.id,
            level=first_step.level,
            sla_hours=first_step.sla_hours,
            due_at=first_step.deadline,
            hours_overdue=1.0,
        ))
        db.commit()

        await service.resubmit(db, request.reference_number, users["employee"])
        result = await sweeper.run(db, now=hours_later(200))

        assert result.breaches_resolved == 1
        assert result.breaches_logged == 1
        logs = breach_logs(db, request)
        assert len(logs) == 2
        assert not logs[0].is_open
        assert logs[1].is_open
        assert logs[1].approval_step_id != first_step.id
        assert logs[1].level == ApprovalLevel.FINANCE_VETTING


class TestWarnings:
    """Approaching-deadline warnings"""

    @pytest.mark.asyncio
    async def test_warning_sent_once(self, db, users, service, sweeper, request_data, notifier, sent):
        await submitted(service, db, users, request_data)
        notifier.notify.reset_mock()

        first = await sweeper.run(db, now=hours_later(60))
        second = await sweeper.run(db, now=hours_later(61))

        assert first.warnings_sent == 1
        assert second.warnings_sent == 0
        assert sent() == [(NotificationType.SLA_WARNING, [users["finance"].id])]

    @pytest.mark.asyncio
    async def test_no_warning_before_threshold(self, db, users, service, sweeper, request_data):
        await submitted(service, db, users, request_data)
        result = await sweeper.run(db, now=hours_later(50))
        assert result.warnings_sent == 0

    @pytest.mark.asyncio
    async def test_overdue_step_gets_breach_not_warning(self, db, users, service, sweeper, request_data):
        await submitted(service, db, users, request_data)
        result = await sweeper.run(db, now=hours_later(73))
        assert result.breaches_logged == 1
        assert result.warnings_sent == 0


class TestStatusReport:
    """Read-only SLA report"""

    @pytest.mark.asyncio
    async def test_status_lists_overdue_steps(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)
        await submitted(service, db, users, request_data, payment_type=PaymentType.CRITICAL)

        report = sweeper.status(db, now=hours_later(30))

        assert report["pending_steps"] == 2
        assert report["overdue_steps"] == 1
        overdue = report["overdue"][0]
        assert overdue["level"] == "FINANCE_VETTING"
        assert overdue["sla_hours"] == 24
        assert overdue["breach_logged"] is False
        assert overdue["reference_number"] != request.reference_number

    @pytest.mark.asyncio
    async def test_status_does_not_log(self, db, users, service, sweeper, request_data):
        request = await submitted(service, db, users, request_data)
        sweeper.status(db, now=hours_later(100))
        assert breach_logs(db, request) == []

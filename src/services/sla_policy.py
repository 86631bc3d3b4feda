"""
SLA Policy
Response-time budget for an approval level and request classification
"""

from typing import Optional

from src.config.workflow import WorkflowConfig, CRITICAL, NON_CRITICAL
from src.models.approval import ApprovalLevel
from src.utils.logger import setup_logger

logger = setup_logger()


class SLAPolicy:
    """Pure lookup over the configured SLA table"""

    def __init__(self, config: WorkflowConfig):
        # Snapshot of the table at construction time
        self._table = {level: dict(hours) for level, hours in config.sla_hours.items()}
        self._default_hours = config.default_sla_hours
        self._high_value_threshold = config.high_value_threshold
        self._high_value_hours = config.high_value_sla_hours
        self.warning_threshold = config.sla_warning_threshold

    def hours_for(
        self,
        level: ApprovalLevel,
        is_critical: bool,
        amount: Optional[float] = None
    ) -> int:
        """
        Get SLA hours for a level

        Args:
            level: Approval level the step is created at
            is_critical: Payment classification of the request
            amount: Base-currency amount, used for the high-value override

        Returns:
            Allowed response time in hours
        """
        if (
            self._high_value_threshold is not None
            and self._high_value_hours is not None
            and amount is not None
            and amount >= self._high_value_threshold
        ):
            return self._high_value_hours

        entry = self._table.get(level)
        if not entry:
            logger.warning(f"No SLA entry for {level.value}, using default {self._default_hours}h")
            return self._default_hours

        key = CRITICAL if is_critical else NON_CRITICAL
        return entry.get(key, self._default_hours)

    def warning_after_hours(self, sla_hours: int) -> float:
        """Elapsed hours after which a deadline warning is due"""
        return sla_hours * self.warning_threshold

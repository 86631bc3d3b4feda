"""
Resubmission Guard
Counts resubmissions and decides when a request needs administrator review
"""

from src.config.workflow import WorkflowConfig


class ResubmissionGuard:
    """Counter + threshold check invoked only from resubmit"""

    def __init__(self, config: WorkflowConfig):
        self.max_resubmissions = config.max_resubmissions

    def next_count(self, current_count: int) -> int:
        """Counter value after one more resubmission"""
        return (current_count or 0) + 1

    def exceeds_limit(self, count: int) -> bool:
        """True once the counter is past the ceiling"""
        return count > self.max_resubmissions

    def remaining(self, current_count: int) -> int:
        """Resubmissions left before administrator review is forced"""
        return max(0, self.max_resubmissions - (current_count or 0))

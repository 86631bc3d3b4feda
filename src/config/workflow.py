# ============================================
# WORKFLOW CONFIGURATION
# ============================================

"""
Explicit workflow configuration injected into the approval ladder,
the SLA policy, the resubmission guard and the workflow service
"""

from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional

from src.models.approval import ApprovalLevel

CRITICAL = "critical"
NON_CRITICAL = "non_critical"

DEFAULT_LADDER: List[ApprovalLevel] = [
    ApprovalLevel.FINANCE_VETTING,
    ApprovalLevel.FINANCE_CONTROLLER,
    ApprovalLevel.DIRECTOR,
    ApprovalLevel.MD,
]

# Hours per level and classification; only vetting differs out of the box
DEFAULT_SLA_HOURS: Dict[ApprovalLevel, Dict[str, int]] = {
    ApprovalLevel.FINANCE_VETTING: {CRITICAL: 24, NON_CRITICAL: 72},
    ApprovalLevel.FINANCE_PLANNER: {CRITICAL: 24, NON_CRITICAL: 24},
    ApprovalLevel.FINANCE_CONTROLLER: {CRITICAL: 24, NON_CRITICAL: 24},
    ApprovalLevel.DIRECTOR: {CRITICAL: 24, NON_CRITICAL: 24},
    ApprovalLevel.MD: {CRITICAL: 24, NON_CRITICAL: 24},
}


class WorkflowConfig(BaseModel):
    """Ladder, SLA table, thresholds and resubmission ceiling"""
    approval_ladder: List[ApprovalLevel] = Field(default_factory=lambda: list(DEFAULT_LADDER))
    sla_hours: Dict[ApprovalLevel, Dict[str, int]] = Field(
        default_factory=lambda: {level: dict(hours) for level, hours in DEFAULT_SLA_HOURS.items()}
    )
    default_sla_hours: int = Field(24, gt=0)
    high_value_threshold: Optional[float] = None
    high_value_sla_hours: Optional[int] = None
    sla_warning_threshold: float = Field(0.8, gt=0, lt=1)
    max_resubmissions: int = Field(2, ge=0)
    reference_prefix: str = "FIN"
    base_currency: str = "INR"

    @field_validator("approval_ladder")
    @classmethod
    def validate_ladder(cls, value: List[ApprovalLevel]) -> List[ApprovalLevel]:
        """Ladder must be non-empty and visit each level once"""
        if not value:
            raise ValueError("approval_ladder must contain at least one level")
        if len(set(value)) != len(value):
            raise ValueError("approval_ladder must not repeat a level")
        return value

    @classmethod
    def from_settings(cls, settings) -> "WorkflowConfig":
        """
        Build the workflow configuration from application settings

        Args:
            settings: Settings instance (see src.config.settings)

        Returns:
            WorkflowConfig
        """
        sla_hours = {}
        for level in ApprovalLevel:
            non_critical = getattr(settings, f"SLA_{level.value}_HOURS", settings.SLA_DEFAULT_HOURS)
            critical = getattr(settings, f"SLA_{level.value}_CRITICAL_HOURS", non_critical)
            sla_hours[level] = {CRITICAL: critical, NON_CRITICAL: non_critical}

        return cls(
            approval_ladder=[ApprovalLevel(name) for name in settings.approval_ladder_list],
            sla_hours=sla_hours,
            default_sla_hours=settings.SLA_DEFAULT_HOURS,
            high_value_threshold=settings.SLA_HIGH_VALUE_THRESHOLD,
            high_value_sla_hours=settings.SLA_HIGH_VALUE_HOURS,
            sla_warning_threshold=settings.SLA_WARNING_THRESHOLD,
            max_resubmissions=settings.MAX_RESUBMISSIONS,
            reference_prefix=settings.REFERENCE_PREFIX,
            base_currency=settings.BASE_CURRENCY,
        )

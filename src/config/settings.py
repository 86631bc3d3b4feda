"""
Application Configuration Settings
"""

from pydantic_settings import BaseSettings
from typing import List, Optional
import os


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Finance Approval Workflow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Cron trigger (bearer secret for /api/cron/check-sla, empty = open)
    CRON_SECRET: str = ""

    # SMTP Configuration
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    FROM_EMAIL: str = ""
    FROM_NAME: str = "Finance Approval Workflow"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"  # Comma-separated string

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated string to list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # Approval ladder (ordered, comma-separated ApprovalLevel names)
    APPROVAL_LADDER: str = "FINANCE_VETTING,FINANCE_CONTROLLER,DIRECTOR,MD"

    @property
    def approval_ladder_list(self) -> List[str]:
        """Convert comma-separated ladder to list of level names"""
        return [level.strip().upper() for level in self.APPROVAL_LADDER.split(",") if level.strip()]

    # SLA budgets in hours, per level and classification
    SLA_DEFAULT_HOURS: int = 24
    SLA_FINANCE_VETTING_HOURS: int = 72
    SLA_FINANCE_VETTING_CRITICAL_HOURS: int = 24
    SLA_FINANCE_PLANNER_HOURS: int = 24
    SLA_FINANCE_PLANNER_CRITICAL_HOURS: int = 24
    SLA_FINANCE_CONTROLLER_HOURS: int = 24
    SLA_FINANCE_CONTROLLER_CRITICAL_HOURS: int = 24
    SLA_DIRECTOR_HOURS: int = 24
    SLA_DIRECTOR_CRITICAL_HOURS: int = 24
    SLA_MD_HOURS: int = 24
    SLA_MD_CRITICAL_HOURS: int = 24
    SLA_HIGH_VALUE_THRESHOLD: Optional[float] = None  # base-currency amount, None disables
    SLA_HIGH_VALUE_HOURS: Optional[int] = None
    SLA_WARNING_THRESHOLD: float = 0.8  # fraction of budget before a warning goes out

    # Workflow
    MAX_RESUBMISSIONS: int = 2
    REFERENCE_PREFIX: str = "FIN"
    BASE_CURRENCY: str = "INR"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()


# Ensure log directory exists
os.makedirs("logs", exist_ok=True)

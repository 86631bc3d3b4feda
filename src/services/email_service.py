"""
Email Service
Sends workflow emails: pending approvals, decisions, disbursements and SLA alerts
"""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict, Any

from src.config.settings import settings
from src.utils.helpers import format_currency
from src.utils.logger import setup_logger

logger = setup_logger()


HTML_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: {accent}; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }}
        .content {{ background: #f9f9f9; padding: 20px; border: 1px solid #ddd; }}
        .details {{ background: white; padding: 15px; margin: 15px 0; border-left: 4px solid {accent}; }}
        .detail-row {{ margin: 10px 0; padding: 5px 0; border-bottom: 1px solid #eee; }}
        .label {{ font-weight: bold; color: #555; display: inline-block; width: 170px; }}
        .footer {{ background: #333; color: white; padding: 15px; text-align: center; font-size: 12px; border-radius: 0 0 5px 5px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{title}</h1></div>
        <div class="content">
            <p>Dear {recipient_name},</p>
            <p>{message}</p>
            <div class="details">
                {rows}
            </div>
        </div>
        <div class="footer">
            <p>This is an automated message from the {app_name}</p>
            <p>Please do not reply to this email</p>
        </div>
    </div>
</body>
</html>
"""

ROW_TEMPLATE = '<div class="detail-row"><span class="label">{label}:</span> <span>{value}</span></div>'

ACCENTS = {
    "SLA_BREACH": "#f44336",
    "SLA_WARNING": "#ff9800",
    "ADMIN_REVIEW": "#9c27b0",
    "DISBURSED": "#2196F3",
}


class EmailService:
    """Email service for workflow notifications"""

    def __init__(self):
        """Initialize email service with SMTP configuration"""
        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.FROM_EMAIL or self.smtp_username
        self.from_name = settings.FROM_NAME

        # Check if email is configured
        self.is_configured = bool(self.smtp_username and self.smtp_password)

        if not self.is_configured:
            logger.warning("Email service not configured. Set SMTP credentials in .env file.")

    def _send_email(self, to_email: str, subject: str, html_content: str, text_content: str = None) -> bool:
        """
        Send email via SMTP

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML email body
            text_content: Plain text fallback (optional)

        Returns:
            bool: True if sent, False when SMTP is not configured

        Raises:
            smtplib.SMTPException, OSError: Delivery failures propagate to the dispatcher
        """
        if not self.is_configured:
            logger.debug(f"Email not sent to {to_email} - SMTP not configured")
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to_email

        if text_content:
            msg.attach(MIMEText(text_content, 'plain'))
        msg.attach(MIMEText(html_content, 'html'))

        with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
            server.starttls()
            server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)

        logger.info(f"Email sent to {to_email}: {subject}")
        return True

    def send_workflow_email(
        self,
        to_email: str,
        recipient_name: str,
        kind: str,
        title: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Send a workflow notification email

        Args:
            to_email: Recipient email
            recipient_name: Recipient display name
            kind: Notification kind (drives the header colour)
            title: Heading and subject line
            message: Body paragraph
            details: Label/value pairs rendered as a table
        """
        details = dict(details or {})
        if isinstance(details.get("Amount"), (int, float)):
            details["Amount"] = format_currency(details["Amount"])

        rows = "\n".join(
            ROW_TEMPLATE.format(label=label, value=value if value is not None else "N/A")
            for label, value in details.items()
        )
        html_content = HTML_TEMPLATE.format(
            accent=ACCENTS.get(kind, "#4CAF50"),
            title=title,
            recipient_name=recipient_name,
            message=message,
            rows=rows,
            app_name=settings.APP_NAME,
        )

        text_lines = [title.upper(), "", f"Dear {recipient_name},", "", message, ""]
        text_lines += [f"- {label}: {value if value is not None else 'N/A'}" for label, value in details.items()]
        text_content = "\n".join(text_lines)

        reference = details.get("Reference")
        subject = f"{title} - {reference}" if reference else title
        return self._send_email(to_email, subject, html_content, text_content)


# Create singleton instance
email_service = EmailService()

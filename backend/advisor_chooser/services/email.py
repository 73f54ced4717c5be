"""
Transactional email for membership billing notices.

Sending is fire-and-forget: failures are logged and reported as False, never
raised, so billing state changes are never rolled back by a mail outage.
"""
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional

from jinja2 import Template

from advisor_chooser.core.config import settings

logger = logging.getLogger(__name__)

PLAN_LABEL = "Advisor Chooser membership"
TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "emails"


def format_day(moment) -> str:
    """e.g. 'March 5, 2026'."""
    return f"{moment.strftime('%B')} {moment.day}, {moment.year}"


class EmailService:
    """SMTP sender with Jinja2 HTML templates."""

    def __init__(self):
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_password
        self.from_email = settings.smtp_from_email or settings.smtp_user
        self.from_name = settings.smtp_from_name
        self.use_ssl = settings.smtp_use_ssl

    def frontend_link(self, path: str) -> str:
        return f"{settings.frontend_url.rstrip('/')}{path}"

    def _render_template(self, template_name: str, context: dict) -> str:
        template_path = TEMPLATE_DIR / template_name
        if not template_path.exists():
            raise FileNotFoundError(f"Template not found: {template_path}")

        with open(template_path, "r", encoding="utf-8") as f:
            template = Template(f.read(), autoescape=True)
        return template.render(**context)

    def _send_email(self, to: str, subject: str, html_content: str) -> bool:
        if not self.smtp_user or not self.smtp_password:
            logger.error("SMTP credentials not configured; email not sent")
            return False

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to
        message.attach(MIMEText(html_content, "html", "utf-8"))

        try:
            if self.use_ssl:
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context) as server:
                    server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, [to], message.as_string())
            else:
                with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                    server.starttls(context=ssl.create_default_context())
                    server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True

    def send_subscription_expired_email(
        self,
        email: str,
        advisor_name: Optional[str],
        expiry_date: str,
    ) -> bool:
        try:
            html = self._render_template(
                "subscription_expired.html",
                {
                    "advisor_name": advisor_name or "there",
                    "plan_label": PLAN_LABEL,
                    "expiry_date": expiry_date,
                    "cta_url": self.frontend_link("/advisor-payments?intent=reactivate"),
                },
            )
        except Exception as e:
            logger.error(f"Failed to render expiry email for {email}: {e}", exc_info=True)
            return False
        return self._send_email(email, "Your Advisor Chooser access has expired", html)

    def send_payment_failed_email(
        self,
        email: str,
        advisor_name: Optional[str],
        attempt_date: str,
        failure_reason: Optional[str] = None,
    ) -> bool:
        try:
            html = self._render_template(
                "payment_failed.html",
                {
                    "advisor_name": advisor_name or "there",
                    "plan_label": PLAN_LABEL,
                    "attempt_date": attempt_date,
                    "failure_reason": failure_reason or "",
                    "cta_url": self.frontend_link("/advisor-change-card"),
                },
            )
        except Exception as e:
            logger.error(f"Failed to render payment failure email for {email}: {e}", exc_info=True)
            return False
        return self._send_email(email, "Action required: update your Advisor Chooser billing details", html)


# Global service instance
email_service = EmailService()

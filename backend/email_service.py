"""
DCLense - SendGrid email service
- Daily reminder digest (one email per assignee, 08:00 Europe/Belgrade)
- Contact form messages
- Critical alerts (cron failures)
"""

import logging
from datetime import datetime, timezone
from html import escape
from typing import List, Optional

import pytz
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content, ReplyTo

from config import SENDGRID_API_KEY, SENDER_EMAIL, CONTACT_EMAIL, APP_BASE_URL, REMINDER_TIMEZONE

logger = logging.getLogger("email_service")


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _date_label(value: Optional[str]) -> str:
    if not value:
        return ""
    return str(value)[:10]


class EmailService:
    """Single entry point for outgoing email"""

    def __init__(self, api_key: str = None, sender: str = None, contact_recipient: str = None,
                 base_url: str = None):
        self.api_key = SENDGRID_API_KEY if api_key is None else api_key
        self.sender = sender or SENDER_EMAIL
        self.contact_recipient = contact_recipient or CONTACT_EMAIL
        self.base_url = (base_url or APP_BASE_URL).rstrip("/")

    def _send_email(self, to_email: str, subject: str, html_content: str, reply_to: str = None) -> bool:
        if not self.api_key:
            logger.error("SENDGRID_API_KEY not configured")
            return False

        try:
            message = Mail(
                from_email=Email(self.sender, "DCLense"),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content)
            )
            if reply_to:
                message.reply_to = ReplyTo(reply_to)

            sg = SendGridAPIClient(self.api_key)
            response = sg.send(message)

            if response.status_code in [200, 202]:
                logger.info(f"Email sent to {to_email}: {subject}")
                return True
            logger.error(f"Email send error: {response.status_code}")
            return False

        except Exception as e:
            logger.error(f"Email send exception: {str(e)}")
            return False

    # ==================== DAILY REMINDERS ====================

    def build_reminder_html(self, user: dict, representatives: List[dict], today_label: str = None) -> str:
        if today_label is None:
            today_label = datetime.now(pytz.timezone(REMINDER_TIMEZONE)).strftime("%A, %B %d, %Y")

        items_html = ""
        for rep in representatives:
            company = (rep.get("company") or {}).get("company_name")
            name = escape(f"{rep.get('first_name') or ''} {rep.get('last_name') or ''}".strip())
            items_html += f"""
                <div style="border-bottom: 1px solid #e5e7eb; padding: 15px 0;">
                    <h3 style="margin: 0 0 8px 0; color: #1f2937; font-size: 18px;">{name}</h3>
                    {f'<p style="margin: 0 0 5px 0; color: #6b7280;"><strong>Role:</strong> {escape(rep["role"])}</p>' if rep.get("role") else ''}
                    {f'<p style="margin: 0 0 5px 0; color: #6b7280;"><strong>Company:</strong> {escape(company)}</p>' if company else ''}
                    <p style="margin: 0 0 10px 0; color: #6b7280;"><strong>Reminder Date:</strong> {_date_label(rep.get("reminder_date"))}</p>
                    {f'<p style="margin: 0 0 10px 0; color: #6b7280; font-style: italic;">"{escape(rep["notes"])}"</p>' if rep.get("notes") else ''}
                    <a href="{self.base_url}/dashboard?repId={rep.get('id')}" style="display: inline-block; background: #2563eb; color: white; padding: 10px 20px; text-decoration: none; border-radius: 6px;">
                        View Representative
                    </a>
                </div>
            """

        return f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="utf-8"><title>Daily Reminders - DCLense</title></head>
        <body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f3f4f6;">
            <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden;">
                <div style="background: linear-gradient(135deg, #2563eb 0%, #7c3aed 100%); padding: 30px 20px; text-align: center;">
                    <h1 style="color: white; margin: 0; font-size: 28px;">DCLense</h1>
                    <p style="color: #e0e7ff; margin: 10px 0 0 0;">Daily Reminders</p>
                </div>
                <div style="padding: 30px 20px;">
                    <h2 style="color: #1f2937; margin: 0 0 10px 0;">Good morning, {escape(user.get("first_name") or "")}!</h2>
                    <p style="color: #6b7280;">Today is {today_label}. You have {_plural(len(representatives), "representative")} to follow up with:</p>
                    <div style="background: #f8fafc; border-radius: 8px; padding: 20px; margin: 20px 0;">
                        {items_html}
                    </div>
                    <div style="text-align: center; margin: 30px 0;">
                        <a href="{self.base_url}/dashboard" style="display: inline-block; background: #059669; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">View Dashboard</a>
                        <a href="{self.base_url}/reminders" style="display: inline-block; background: #7c3aed; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">Manage Reminders</a>
                    </div>
                </div>
                <div style="background: #f9fafb; padding: 20px; text-align: center; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 12px;">
                    This is an automated reminder from DCLense. You are receiving it because representatives assigned to you have a reminder today.
                </div>
            </div>
        </body>
        </html>
        """

    def send_reminder_digest(self, user: dict, representatives: List[dict]) -> bool:
        subject = f"Daily Reminders - {_plural(len(representatives), 'representative')} to follow up"
        return self._send_email(user["email"], subject, self.build_reminder_html(user, representatives))

    # ==================== CONTACT FORM ====================

    def send_contact_message(self, name: str, email: str, message: str, company: str = None) -> bool:
        subject = f"New contact request from {name}"
        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2>New contact request</h2>
            <p><strong>Name:</strong> {escape(name)}</p>
            <p><strong>Email:</strong> {escape(email)}</p>
            {f'<p><strong>Company:</strong> {escape(company)}</p>' if company else ''}
            <p><strong>Message:</strong></p>
            <p style="white-space: pre-wrap;">{escape(message)}</p>
        </body>
        </html>
        """
        return self._send_email(self.contact_recipient, subject, html_content, reply_to=email)

    # ==================== CRITICAL ALERTS ====================

    def send_critical_alert(self, alert_type: str, message: str, details: dict = None) -> bool:
        """Types: CRON_FAILURE, SYSTEM_ERROR"""
        details_html = ""
        if details:
            details_html = "<ul>" + "".join(
                f"<li><strong>{escape(str(k))}:</strong> {escape(str(v))}</li>" for k, v in details.items()
            ) + "</ul>"

        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <div style="background: #DC2626; color: white; padding: 20px;"><h1 style="margin: 0;">CRITICAL ALERT</h1></div>
            <p style="color: #9CA3AF;">{datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')} UTC</p>
            <div style="background: #FEF2F2; border-left: 4px solid #DC2626; padding: 15px;">
                <strong>Type:</strong> {escape(alert_type)}<br>
                <strong>Message:</strong> {escape(message)}
            </div>
            {details_html}
        </body>
        </html>
        """
        return self._send_email(self.contact_recipient, f"CRITICAL ALERT - {alert_type}", html_content)


# Singleton
email_service = EmailService()

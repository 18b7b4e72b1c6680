"""
nORM - Email Service
Alert notifications via SendGrid or SMTP
"""
import html
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To

logger = logging.getLogger(__name__)

SEVERITY_EMOJI = {
    'critical': '🚨',
    'high': '⚠️',
    'medium': '📢',
    'low': 'ℹ️',
}


class EmailService:
    """Email notification service"""

    @property
    def sendgrid_key(self):
        return current_app.config.get('SENDGRID_API_KEY')

    @property
    def from_email(self):
        return current_app.config.get('FROM_EMAIL', 'alerts@norm.app')

    @property
    def from_name(self):
        return current_app.config.get('FROM_NAME', 'nORM Alerts')

    @property
    def smtp_host(self):
        return current_app.config.get('SMTP_HOST', 'smtp.gmail.com')

    @property
    def smtp_port(self):
        return current_app.config.get('SMTP_PORT', 587)

    @property
    def smtp_user(self):
        return current_app.config.get('SMTP_USER')

    @property
    def smtp_pass(self):
        return current_app.config.get('SMTP_PASS')

    def send_simple(self, to: str, subject: str, body: str, html_body: bool = False) -> bool:
        """Send one email. Returns False instead of raising when delivery fails."""
        try:
            if self.sendgrid_key:
                return self._send_sendgrid(to, subject, body, html_body)
            elif self.smtp_user and self.smtp_pass:
                return self._send_smtp(to, subject, body, html_body)
            else:
                logger.warning(f"Email not configured. Would send to {to}: {subject}")
                return False
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

    def _send_sendgrid(self, to: str, subject: str, body: str, html_body: bool) -> bool:
        message = Mail(
            from_email=Email(self.from_email, self.from_name),
            to_emails=To(to),
            subject=subject,
            plain_text_content=body if not html_body else None,
            html_content=body if html_body else None
        )

        response = SendGridAPIClient(self.sendgrid_key).send(message)

        if response.status_code in (200, 201, 202):
            logger.info(f"Email sent to {to}: {subject}")
            return True
        logger.error(f"SendGrid error: {response.status_code}")
        return False

    def _send_smtp(self, to: str, subject: str, body: str, html_body: bool) -> bool:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to
        msg.attach(MIMEText(body, 'html' if html_body else 'plain'))

        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            server.starttls()
            server.login(self.smtp_user, self.smtp_pass)
            server.send_message(msg)

        logger.info(f"Email sent to {to}: {subject}")
        return True

    def render_alert_email(self, alert, client_name: str, dashboard_url: str) -> str:
        emoji = SEVERITY_EMOJI.get(alert.severity, '📢')
        url = html.escape(dashboard_url, quote=True)
        border_color = '#dc2626' if alert.severity in ('critical', 'high') else '#f59e0b'
        return f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background: #0B0C0E; color: #fff; padding: 20px; text-align: center;">
                <h1 style="margin: 0; font-size: 22px;">{emoji} {html.escape(alert.title)}</h1>
            </div>
            <div style="padding: 20px; margin: 20px 0; background: #f9f9f9; border-left: 3px solid {border_color};">
                <p><strong>Cliente:</strong> {html.escape(client_name)}</p>
                <p><strong>Severidade:</strong> {alert.severity}</p>
                <p>{html.escape(alert.message or '')}</p>
                <div style="text-align: center; margin: 20px 0;">
                    <a href="{url}" style="display: inline-block; padding: 12px 24px; background: #00ADE8; color: #fff; text-decoration: none; border-radius: 4px;">Ver Dashboard</a>
                    <a href="{url}/alerts" style="display: inline-block; padding: 12px 24px; background: #00ADE8; color: #fff; text-decoration: none; border-radius: 4px;">Ver Alertas</a>
                </div>
            </div>
            <div style="text-align: center; color: #666; font-size: 12px;">
                <p>nORM - Online Reputation Manager</p>
                <p>Este é um email automático. Por favor, não responda.</p>
            </div>
        </body>
        </html>
        """

    def send_alert_email(self, to: str, alert, client_name: str, dashboard_url: str) -> bool:
        """Notify one recipient about an alert"""
        emoji = SEVERITY_EMOJI.get(alert.severity, '📢')
        subject = f"{emoji} {alert.title} - {client_name}"
        body = self.render_alert_email(alert, client_name, dashboard_url)
        return self.send_simple(to, subject, body, html_body=True)


# Singleton instance
_email_service = None


def get_email_service() -> EmailService:
    """Get or create email service instance"""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service

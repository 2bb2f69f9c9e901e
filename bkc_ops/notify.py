#!/usr/bin/env python3
"""
Operator alerts via email and/or Slack
"""

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, Optional

import requests

from .config import Settings

logger = logging.getLogger(__name__)


class Notifier:
    """Best-effort alerts; delivery failures are logged, never raised"""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        s = self.settings
        return bool(s.slack_webhook or (s.smtp_username and s.smtp_password and s.notification_email))

    def send_alert(self, message: str, fields: Optional[Dict[str, str]] = None) -> None:
        """Send alert via email and/or Slack"""
        logger.error(f"ALERT: {message}")
        fields = fields or {}
        s = self.settings

        if s.smtp_username and s.smtp_password and s.notification_email:
            try:
                self._send_email_alert(message, fields)
            except Exception as e:
                logger.error(f"Failed to send email alert: {e}")

        if s.slack_webhook:
            try:
                self._send_slack_alert(message, fields)
            except Exception as e:
                logger.error(f"Failed to send Slack alert: {e}")

    def _send_email_alert(self, message: str, fields: Dict[str, str]) -> None:
        s = self.settings
        msg = MIMEMultipart()
        msg['From'] = s.smtp_username
        msg['To'] = s.notification_email
        msg['Subject'] = f"Backchain deployment alert ({s.network})"

        details = "\n".join(f"- {k}: {v}" for k, v in fields.items())
        body = (
            f"Backchain Deployment Alert\n\n"
            f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"Network: {s.network}\n"
            f"Message: {message}\n"
        )
        if details:
            body += f"\nDetails:\n{details}\n"

        msg.attach(MIMEText(body, 'plain'))

        server = smtplib.SMTP(s.smtp_server, s.smtp_port)
        try:
            server.starttls()
            server.login(s.smtp_username, s.smtp_password)
            server.send_message(msg)
        finally:
            server.quit()

    def _send_slack_alert(self, message: str, fields: Dict[str, str]) -> None:
        payload = {
            "text": f"🚨 Backchain deployment alert ({self.settings.network}): {message}",
            "attachments": [
                {
                    "fields": [
                        {"title": title, "value": str(value), "short": True}
                        for title, value in fields.items()
                    ]
                }
            ],
        }
        response = requests.post(self.settings.slack_webhook, json=payload, timeout=10)
        response.raise_for_status()

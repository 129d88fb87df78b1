"""
Welcome e-mail for accounts created by a bulk upload.

Sending is fire-and-forget: it is scheduled after the row commits and a failure
is only logged. Messages never carry credentials. When SMTP_HOST or
SMTP_FROM_EMAIL is not set the mailer is disabled and scheduling is a no-op.
"""

import asyncio
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Set

import aiosmtplib

from app.core.config import Settings, settings

from .enroller import EnrolledAccount


logger = logging.getLogger(__name__)


class WelcomeMailer:
    def __init__(self, config: Settings) -> None:
        self.config = config
        # Strong references so scheduled sends are not garbage-collected mid-flight
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.config.smtp_configured

    def schedule(self, account: EnrolledAccount) -> None:
        if not self.enabled:
            logger.debug("SMTP not configured; skipping welcome e-mail for %s", account.id)
            return
        task = asyncio.create_task(self._send_safely(account))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def build_message(self, account: EnrolledAccount) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = self.config.smtp_from_email
        message["To"] = account.email
        message["Subject"] = "Welcome to your learning center"

        lines = [
            f"Hello {account.first_name},",
            "",
            f"A {account.role} account has been created for you with the username {account.username}.",
            "Your administrator will share your sign-in details separately.",
        ]
        if self.config.app_login_url:
            lines += ["", f"Sign in at {self.config.app_login_url}"]
        message.attach(MIMEText("\n".join(lines), "plain", "utf-8"))
        return message

    async def send(self, account: EnrolledAccount) -> None:
        await aiosmtplib.send(
            self.build_message(account),
            hostname=self.config.smtp_host,
            port=self.config.smtp_port,
            username=self.config.smtp_username,
            password=self.config.smtp_password,
            start_tls=self.config.smtp_use_tls,
        )
        logger.info("Welcome e-mail sent to account %s", account.id)

    async def _send_safely(self, account: EnrolledAccount) -> None:
        try:
            await self.send(account)
        except Exception:
            logger.exception("Failed to send welcome e-mail to account %s", account.id)


mailer = WelcomeMailer(settings)


def get_mailer() -> WelcomeMailer:
    return mailer

import asyncio
import logging

import pytest

from app.api.v1.bulk_uploads import notifications
from app.api.v1.bulk_uploads.enroller import EnrolledAccount
from app.api.v1.bulk_uploads.notifications import WelcomeMailer
from app.core.config import settings


ACCOUNT = EnrolledAccount("a" * 24, "kid@example.com", "kid1", "student", "Tom", "Smith")


def _smtp_settings():
    return settings.model_copy(
        update={
            "smtp_host": "smtp.example.com",
            "smtp_from_email": "noreply@example.com",
            "app_login_url": "https://app.example.com/login",
        }
    )


def test_message_has_username_and_no_password() -> None:
    message = WelcomeMailer(_smtp_settings()).build_message(ACCOUNT)

    body = message.get_payload()[0].get_payload(decode=True).decode("utf-8")
    assert message["To"] == "kid@example.com"
    assert "kid1" in body
    assert "https://app.example.com/login" in body
    assert "password" not in body.lower()


@pytest.mark.asyncio
async def test_schedule_is_noop_without_smtp() -> None:
    mailer = WelcomeMailer(settings.model_copy(update={"smtp_host": None}))

    mailer.schedule(ACCOUNT)

    assert not mailer.enabled
    assert mailer._tasks == set()


@pytest.mark.asyncio
async def test_send_failure_is_logged_not_raised(monkeypatch, caplog) -> None:
    async def refuse(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(notifications.aiosmtplib, "send", refuse)
    mailer = WelcomeMailer(_smtp_settings())

    with caplog.at_level(logging.ERROR, logger=notifications.__name__):
        mailer.schedule(ACCOUNT)
        await asyncio.gather(*list(mailer._tasks))

    assert "Failed to send welcome e-mail to account" in caplog.text
    assert mailer._tasks == set()

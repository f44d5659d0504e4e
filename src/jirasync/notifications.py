"""
Operator notifications for unrecoverable sync failures.

Sinks:
  LogNotificationSink       ERROR log lines tagged [ADMIN_NOTIFICATION]
  TelegramNotificationSink  same text pushed to an operator chat

Escalator wraps a sink so that a broken notification channel never breaks
the sync run that is trying to report through it.
"""
import asyncio
import logging
from typing import Optional, Protocol

from telegram import Bot

logger = logging.getLogger(__name__)

ADMIN_NOTIFICATION_PREFIX = "[ADMIN_NOTIFICATION]"


class NotificationSink(Protocol):
    def notify_auth_failure(self, message: str, status_code: int, query_name: str) -> None:
        ...

    def notify_retry_exhausted(
        self,
        message: str,
        query_name: str,
        attempt_count: int,
        last_error: Optional[BaseException],
    ) -> None:
        ...


def format_auth_failure(message: str, status_code: int, query_name: str) -> str:
    return (
        "Jira authentication error - immediate action required.\n"
        f"Query: {query_name}\nStatus: {status_code}\nError: {message}"
    )


def format_retry_exhausted(
    message: str,
    query_name: str,
    attempt_count: int,
    last_error: Optional[BaseException],
) -> str:
    error_type = last_error.__class__.__name__ if last_error is not None else "Unknown"
    return (
        "Jira sync retries exhausted - manual check required.\n"
        f"Query: {query_name}\nAttempts: {attempt_count}\n"
        f"Error: {message}\nException: {error_type}: {last_error}"
    )


class LogNotificationSink:
    """Writes operator alerts to the application log."""

    def notify_auth_failure(self, message: str, status_code: int, query_name: str) -> None:
        logger.error(
            "%s %s",
            ADMIN_NOTIFICATION_PREFIX,
            format_auth_failure(message, status_code, query_name),
        )

    def notify_retry_exhausted(
        self,
        message: str,
        query_name: str,
        attempt_count: int,
        last_error: Optional[BaseException],
    ) -> None:
        logger.error(
            "%s %s",
            ADMIN_NOTIFICATION_PREFIX,
            format_retry_exhausted(message, query_name, attempt_count, last_error),
        )


class TelegramNotificationSink(LogNotificationSink):
    """
    Logs the alert, then sends it to a Telegram chat.

    The sync engine is synchronous, so each alert runs its own short event
    loop around Bot.send_message.
    """

    def __init__(self, token: str, chat_id: int, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self._bot = bot or Bot(token=token)

    def notify_auth_failure(self, message: str, status_code: int, query_name: str) -> None:
        super().notify_auth_failure(message, status_code, query_name)
        self._send(format_auth_failure(message, status_code, query_name))

    def notify_retry_exhausted(
        self,
        message: str,
        query_name: str,
        attempt_count: int,
        last_error: Optional[BaseException],
    ) -> None:
        super().notify_retry_exhausted(message, query_name, attempt_count, last_error)
        self._send(format_retry_exhausted(message, query_name, attempt_count, last_error))

    def _send(self, text: str) -> None:
        asyncio.run(self._send_async(f"⚠️ {text}"))

    async def _send_async(self, text: str) -> None:
        async with self._bot:
            await self._bot.send_message(chat_id=self.chat_id, text=text[:4096])


class Escalator:
    """Best-effort front for a NotificationSink: sink errors are logged, never raised."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def auth_failure(self, message: str, status_code: int, query_name: str) -> None:
        try:
            self.sink.notify_auth_failure(message, status_code, query_name)
        except Exception:
            logger.exception("Auth-failure notification failed for query %s", query_name)

    def retry_exhausted(
        self,
        message: str,
        query_name: str,
        attempt_count: int,
        last_error: Optional[BaseException],
    ) -> None:
        try:
            self.sink.notify_retry_exhausted(message, query_name, attempt_count, last_error)
        except Exception:
            logger.exception("Retry-exhausted notification failed for query %s", query_name)


def build_notification_sink(settings) -> NotificationSink:
    """Telegram when a bot token and chat id are configured, logging otherwise."""
    if settings.telegram_bot_token and settings.telegram_alert_chat_id:
        return TelegramNotificationSink(
            token=settings.telegram_bot_token,
            chat_id=settings.telegram_alert_chat_id,
        )
    logger.info("Telegram alerts not configured; operator alerts go to the log only.")
    return LogNotificationSink()
